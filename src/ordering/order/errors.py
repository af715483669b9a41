"""Failure taxonomy for the order lifecycle engine.

Every error carries a stable machine-readable ``kind`` and a human-readable
message that the admin UI can show as-is ("Cannot move order from cancelled
to shipped"). None of these are retried inside the engine; ``StaleState`` is
the one the caller is expected to retry after re-reading the order.
"""

from typing import Any


class OrderingError(Exception):
    """Base class for all order lifecycle failures."""

    kind = "ordering_error"

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "message": self.message,
            "details": {key: value for key, value in self.details.items() if value is not None},
        }


class InvalidTransition(OrderingError):
    """The requested status is not reachable from the order's current status."""

    kind = "invalid_transition"


class MissingContext(OrderingError):
    """The transition needs data the caller did not supply."""

    kind = "missing_context"


class StaleState(OrderingError):
    """The order changed since the caller last read it."""

    kind = "stale_state"


class NegativeAmount(OrderingError):
    kind = "negative_amount"


class EmptyOrder(OrderingError):
    kind = "empty_order"


class NotFound(OrderingError):
    kind = "not_found"


class ItemUnavailable(OrderingError):
    """The catalog refused to quote a requested line."""

    kind = "item_unavailable"


class PersistenceTimeout(OrderingError):
    """A repository call exceeded its time bound. Nothing was written."""

    kind = "persistence_timeout"


class PersistenceError(OrderingError):
    """Unexpected failure from the persistence provider, wrapped with its cause."""

    kind = "persistence_error"
