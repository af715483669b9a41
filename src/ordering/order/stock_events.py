"""Stock implications of cancellation.

Placement reserves stock through the catalog. When an order is cancelled
before it leaves the warehouse the reservation is handed back; once shipped
the goods are physically out, so stock only returns when they are received
back, which is not tracked here.
"""

import json

import structlog
from protean.utils.mixins import handle

from ordering.catalog import get_catalog
from ordering.domain import ordering
from ordering.order.events import OrderCancelled
from ordering.order.order import Order, OrderStatus

logger = structlog.get_logger(__name__)

_RELEASABLE_STATES = {
    OrderStatus.PENDING.value,
    OrderStatus.CONFIRMED.value,
    OrderStatus.PROCESSING.value,
}


@ordering.event_handler(part_of=Order)
class OrderStockEventHandler:
    """Hands reserved stock back to the catalog on early cancellation."""

    @handle(OrderCancelled)
    def on_order_cancelled(self, event: OrderCancelled) -> None:
        if event.previous_status not in _RELEASABLE_STATES:
            logger.info(
                "Cancelled order was already shipped, stock not released",
                order_id=str(event.order_id),
                order_number=event.order_number,
                previous_status=event.previous_status,
            )
            return

        lines = json.loads(event.items) if event.items else []
        catalog = get_catalog()
        for line in lines:
            catalog.release(line["product_id"], line.get("variant_id"), line.get("size_id"), line["quantity"])

        logger.info(
            "Released stock for cancelled order",
            order_id=str(event.order_id),
            order_number=event.order_number,
            lines=len(lines),
        )
