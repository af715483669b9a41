"""Order statistics, rolled up on demand from persisted orders.

Nothing here keeps running counters: every figure is recomputed from the
orders in scope each time it is asked for, so the numbers can never drift
from the orders themselves.
"""

from collections import Counter, defaultdict
from dataclasses import asdict, dataclass, field, replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from ordering.order.order import Order, OrderStatus, PaymentStatus
from ordering.order.pricing import CENT, to_money
from ordering.order.repository import OrderScope

logger = structlog.get_logger(__name__)

TOP_PRODUCTS = 5

# Dashboard ranges; None means no lower bound
STATS_RANGES = {
    "7d": timedelta(days=7),
    "30d": timedelta(days=30),
    "90d": timedelta(days=90),
    "1y": timedelta(days=365),
    "all": None,
}


@dataclass
class OrderStats:
    total_orders: int = 0
    total_amount: Decimal = Decimal("0.00")
    average_order_value: Decimal = Decimal("0.00")
    pending_orders: int = 0
    confirmed_orders: int = 0
    processing_orders: int = 0
    shipped_orders: int = 0
    delivered_orders: int = 0
    cancelled_orders: int = 0
    refunded_orders: int = 0
    active_rentals: int = 0
    total_spent: Decimal = Decimal("0.00")
    payment_status_counts: dict = field(default_factory=lambda: {status.value: 0 for status in PaymentStatus})
    revenue_trend: list = field(default_factory=list)
    top_products: list = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["total_amount"] = float(self.total_amount)
        data["average_order_value"] = float(self.average_order_value)
        data["total_spent"] = float(self.total_spent)
        return data


def rollup(orders, scope: OrderScope | None = None, now: datetime | None = None) -> OrderStats:
    """Aggregate counts and amounts over ``orders``.

    ``scope`` filters the input; orders outside it are ignored. An empty
    input yields all-zero figures. ``total_spent`` counts delivered orders
    only; ``active_rentals`` counts rentals still out on ``now``.
    """
    stats = OrderStats()
    total = Decimal("0.00")
    statuses = Counter()
    daily = defaultdict(lambda: {"revenue": Decimal("0.00"), "orders": 0})
    products = {}

    for order in orders:
        if scope is not None and not scope.matches(order):
            continue

        amount = to_money(order.total_amount)
        total += amount
        statuses[order.status] += 1
        if order.status == OrderStatus.DELIVERED.value:
            stats.total_spent += amount
        if order.is_active_on(now):
            stats.active_rentals += 1
        stats.payment_status_counts[order.payment_status] = stats.payment_status_counts.get(order.payment_status, 0) + 1

        if order.created_at is not None:
            day = daily[order.created_at.date().isoformat()]
            day["revenue"] += amount
            day["orders"] += 1

        for item in order.items or []:
            entry = products.setdefault(
                str(item.product_id),
                {"product_name": item.product_name, "quantity": 0, "revenue": Decimal("0.00")},
            )
            entry["quantity"] += item.quantity
            entry["revenue"] += to_money(item.line_total)

    stats.total_orders = sum(statuses.values())
    stats.total_amount = total
    if stats.total_orders:
        stats.average_order_value = (total / stats.total_orders).quantize(CENT)
    for status in OrderStatus:
        setattr(stats, f"{status.value}_orders", statuses[status.value])

    stats.revenue_trend = [
        {"date": date, "revenue": float(day["revenue"]), "orders": day["orders"]} for date, day in sorted(daily.items())
    ]
    ranked = sorted(products.items(), key=lambda pair: (-pair[1]["quantity"], pair[0]))
    stats.top_products = [
        {
            "product_id": product_id,
            "product_name": entry["product_name"],
            "quantity": entry["quantity"],
            "revenue": float(entry["revenue"]),
        }
        for product_id, entry in ranked[:TOP_PRODUCTS]
    ]
    return stats


def _percentage_change(current, previous) -> float:
    if previous:
        return round(float((Decimal(current) - Decimal(previous)) / Decimal(previous) * 100), 2)
    return 100.0 if current > 0 else 0.0


@dataclass
class PeriodStats:
    """Rollup for a dashboard range, compared with the period just before it."""

    period: str
    start: datetime | None
    end: datetime
    stats: OrderStats
    percentage_change: dict

    def to_dict(self) -> dict:
        return {
            **self.stats.to_dict(),
            "percentage_change": self.percentage_change,
            "time_range": {
                "range": self.period,
                "start": self.start.isoformat() if self.start else None,
                "end": self.end.isoformat(),
            },
        }


def order_stats(scope: OrderScope | None = None, period: str = "30d", now: datetime | None = None) -> PeriodStats:
    """Statistics for ``period`` (7d, 30d, 90d, 1y or all) ending ``now``."""
    if period not in STATS_RANGES:
        raise ValidationError({"range": [f"Unknown range '{period}', expected one of {', '.join(STATS_RANGES)}"]})

    scope = scope or OrderScope()
    now = now or datetime.now(UTC)
    length = STATS_RANGES[period]
    start = now - length if length else None

    orders = current_domain.repository_for(Order).query_orders(scope)
    current = rollup(orders, replace(scope, created_from=start, created_to=now), now=now)

    if start is None:
        change = {"orders": 0.0, "revenue": 0.0}
    else:
        previous = rollup(
            orders,
            replace(scope, created_from=start - length, created_to=start - timedelta(microseconds=1)),
            now=now,
        )
        change = {
            "orders": _percentage_change(current.total_orders, previous.total_orders),
            "revenue": _percentage_change(current.total_amount, previous.total_amount),
        }

    logger.info(
        "Computed order statistics",
        period=period,
        total_orders=current.total_orders,
        total_amount=float(current.total_amount),
    )
    return PeriodStats(period=period, start=start, end=now, stats=current, percentage_change=change)
