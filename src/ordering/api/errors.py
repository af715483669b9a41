"""HTTP mapping for order lifecycle failures.

Every ``OrderingError`` is returned as ``{"kind", "message", "details"}``
with a status code chosen by its kind. Protean's own validation and
not-found errors keep Protean's FastAPI handlers.
"""

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from protean.integrations.fastapi import register_exception_handlers

from ordering.order.errors import OrderingError

logger = structlog.get_logger(__name__)

STATUS_BY_KIND = {
    "invalid_transition": 409,
    "stale_state": 409,
    "item_unavailable": 409,
    "missing_context": 422,
    "negative_amount": 400,
    "empty_order": 400,
    "not_found": 404,
    "persistence_error": 503,
    "persistence_timeout": 504,
}


async def ordering_error_handler(request: Request, exc: OrderingError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    if status_code >= 500:
        logger.error("Order request failed", path=request.url.path, kind=exc.kind, error=exc.message)
    else:
        logger.info("Order request rejected", path=request.url.path, kind=exc.kind, error=exc.message)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def register_error_handlers(app: FastAPI) -> None:
    register_exception_handlers(app)
    app.add_exception_handler(OrderingError, ordering_error_handler)
