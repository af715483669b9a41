"""Order repository: the only way the engine reads and writes orders.

Wraps the provider DAO with the contract the lifecycle engine relies on:

- ``get_order`` raises ``NotFound`` instead of the provider's error.
- ``save_order`` is a compare-and-set on ``version``: a save based on an
  outdated read raises ``StaleState`` and writes nothing.
- ``query_orders`` returns a lazy, restartable iterable that pages through
  the provider; rollups consume it.

Every provider call is bounded by ``persistence_timeout``. A provider
``TimeoutError``, or a read that overruns the bound before the write is
issued, surfaces as ``PersistenceTimeout``. Anything else unexpected is
wrapped in ``PersistenceError`` with the original exception chained.
"""

import time
from dataclasses import dataclass
from datetime import UTC, date, datetime

import structlog
from protean.exceptions import ObjectNotFoundError, ValidationError

from ordering.domain import ordering
from ordering.order import pricing
from ordering.order.errors import (
    NotFound,
    OrderingError,
    PersistenceError,
    PersistenceTimeout,
    StaleState,
)
from ordering.order.order import ACTIVE_RENTAL_STATUSES, Order, parse_status
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)

DEFAULT_PAGE_SIZE = 100


def _aware(moment: datetime) -> datetime:
    """Naive datetimes are taken to be UTC."""
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


@dataclass(frozen=True)
class OrderScope:
    """Which orders a query or rollup covers. Empty scope means all orders."""

    customer_id: str | None = None
    statuses: tuple[str, ...] = ()
    payment_status: str | None = None
    order_number: str | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None

    def __post_init__(self):
        # Reject typos early rather than silently matching nothing
        for status in self.statuses:
            parse_status(status)

    def provider_filters(self) -> dict:
        """Equality filters pushed down to the provider."""
        filters = {}
        if self.customer_id:
            filters["customer_id"] = str(self.customer_id)
        if self.order_number:
            filters["order_number"] = self.order_number.strip().upper()
        return filters

    def matches(self, order) -> bool:
        if self.customer_id and str(order.customer_id) != str(self.customer_id):
            return False
        if self.statuses and order.status not in {parse_status(s).value for s in self.statuses}:
            return False
        if self.payment_status and order.payment_status != self.payment_status:
            return False
        if self.order_number and order.order_number != self.order_number.strip().upper():
            return False
        if self.created_from and (order.created_at is None or _aware(order.created_at) < _aware(self.created_from)):
            return False
        if self.created_to and (order.created_at is None or _aware(order.created_at) > _aware(self.created_to)):
            return False
        return True


class OrderQuery:
    """Lazy, finite, restartable iteration over the orders in a scope.

    Each ``iter()`` starts again from the first page, so the same query
    object can back several passes (e.g. current and previous period).
    """

    def __init__(self, repository, scope: OrderScope, page_size: int = DEFAULT_PAGE_SIZE):
        self._repository = repository
        self._scope = scope
        self._page_size = page_size

    def __iter__(self):
        offset = 0
        while True:
            page = self._repository._fetch_page(self._scope, offset, self._page_size)
            for order in page:
                if self._scope.matches(order):
                    yield order
            if len(page) < self._page_size:
                return
            offset += self._page_size


@ordering.repository(part_of=Order)
class OrderRepository:
    """Repository for the Order aggregate."""

    # Monotonic clock used for the persistence bound; tests may swap it
    clock = staticmethod(time.monotonic)

    def _timeout(self) -> float:
        return get_settings().persistence_timeout

    def _call(self, operation, fn, *args, started=None, **kwargs):
        """Run a provider call inside the persistence bound."""
        started = self.clock() if started is None else started
        timeout = self._timeout()
        try:
            result = fn(*args, **kwargs)
        except (OrderingError, ObjectNotFoundError, ValidationError):
            raise
        except TimeoutError as exc:
            logger.warning("Persistence call timed out", operation=operation, timeout=timeout)
            raise PersistenceTimeout(
                f"{operation} did not complete within {timeout}s",
                operation=operation,
                timeout=timeout,
            ) from exc
        except Exception as exc:
            logger.error("Persistence call failed", operation=operation, error=str(exc))
            raise PersistenceError(f"{operation} failed: {exc}", operation=operation) from exc

        if self.clock() - started > timeout:
            logger.warning("Persistence call overran its bound", operation=operation, timeout=timeout)
            raise PersistenceTimeout(
                f"{operation} did not complete within {timeout}s",
                operation=operation,
                timeout=timeout,
            )
        return result

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get_order(self, order_id) -> Order:
        try:
            return self._call("get_order", self.get, order_id)
        except ObjectNotFoundError:
            raise NotFound(f"Order {order_id} does not exist", order_id=str(order_id)) from None

    def find_by_order_number(self, order_number) -> Order | None:
        if not order_number:
            return None
        results = self._call(
            "find_by_order_number",
            lambda: self._dao.query.filter(order_number=order_number.strip().upper()).all().items,
        )
        return results[0] if results else None

    def query_orders(self, scope: OrderScope | None = None, page_size: int = DEFAULT_PAGE_SIZE) -> OrderQuery:
        return OrderQuery(self, scope or OrderScope(), page_size=page_size)

    def active_rentals(self, customer_id=None, now: datetime | date | None = None) -> list[Order]:
        """Orders whose goods are out, or about to go out, and not yet due back, soonest delivery first."""
        scope = OrderScope(
            customer_id=customer_id,
            statuses=tuple(sorted(status.value for status in ACTIVE_RENTAL_STATUSES)),
        )
        rentals = [order for order in self.query_orders(scope) if order.is_active_on(now)]
        return sorted(rentals, key=lambda order: (order.delivery_date or date.max, order.order_number))

    def _fetch_page(self, scope: OrderScope, offset: int, limit: int) -> list[Order]:
        def fetch():
            query = self._dao.query
            filters = scope.provider_filters()
            if filters:
                query = query.filter(**filters)
            return query.order_by("created_at").offset(offset).limit(limit).all().items

        return list(self._call("query_orders", fetch))

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def save_order(self, order: Order, expected_version: int | None) -> Order:
        """Persist ``order`` if the stored copy is still at ``expected_version``.

        ``expected_version=None`` inserts a new order. The version is bumped
        on every successful save.
        """
        started = self.clock()
        try:
            stored = self._call("save_order", self.get, order.id, started=started)
        except ObjectNotFoundError:
            stored = None

        if expected_version is None:
            if stored is not None:
                raise StaleState(
                    f"Order {order.order_number} already exists",
                    order_id=str(order.id),
                )
            duplicate = self.find_by_order_number(order.order_number)
            if duplicate is not None:
                raise ValidationError({"order_number": [f"Order number {order.order_number} is already assigned"]})
            order.version = 0
        else:
            if stored is None:
                raise NotFound(f"Order {order.id} does not exist", order_id=str(order.id))
            if stored.version != expected_version:
                logger.info(
                    "Rejected stale order write",
                    order_id=str(order.id),
                    expected_version=expected_version,
                    stored_version=stored.version,
                )
                raise StaleState(
                    f"Order {order.order_number} was modified by someone else "
                    f"(expected version {expected_version}, found {stored.version}); reload and retry",
                    order_id=str(order.id),
                    expected_version=expected_version,
                    stored_version=stored.version,
                    stored_status=stored.status,
                )
            self._assert_snapshot_unchanged(stored, order)
            order.version = expected_version + 1

        if self.clock() - started > self._timeout():
            raise PersistenceTimeout(
                f"save_order did not complete within {self._timeout()}s",
                operation="save_order",
                timeout=self._timeout(),
            )

        self._call("save_order", self.add, order, started=started)
        return order

    def _assert_snapshot_unchanged(self, stored: Order, order: Order) -> None:
        """Placement data is frozen: number, creation time and money never change."""
        if stored.order_number != order.order_number:
            raise ValidationError({"order_number": ["Order number cannot change once assigned"]})
        if stored.created_at != order.created_at:
            raise ValidationError({"created_at": ["Creation time cannot change"]})
        for field in ("subtotal", "shipping_charge", "discount", "tax", "total_amount"):
            if pricing.to_money(getattr(stored, field)) != pricing.to_money(getattr(order, field)):
                raise ValidationError({field: ["Order amounts are frozen once the order is placed"]})

