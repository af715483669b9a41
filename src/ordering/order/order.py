"""Order aggregate — the core of the ordering domain.

An Order is placed once with a frozen snapshot of items, prices and addresses,
and afterwards changes only by moving along the status state machine. Order
status and payment status are tracked separately but move together on
delivery, cancellation and refund.

State Machine (7 states):
    pending → confirmed → processing → shipped → delivered → refunded
    cancelled (from pending, confirmed, processing, shipped) → refunded
"""

import json
from dataclasses import dataclass
from datetime import UTC, date, datetime
from enum import Enum

from protean import atomic_change, invariant
from protean.exceptions import ValidationError
from protean.fields import (
    Date,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    ValueObject,
)

from ordering.domain import ordering
from ordering.order import pricing
from ordering.order.errors import InvalidTransition, MissingContext
from ordering.order.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderDelivered,
    OrderPlaced,
    OrderProcessing,
    OrderRefunded,
    OrderShipped,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PaymentStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"  # Terminal, nothing left to collect
    REFUNDED = "refunded"


class PaymentMethod(Enum):
    CASH_ON_DELIVERY = "cod"


class CancellationActor(Enum):
    CUSTOMER = "customer"
    ADMIN = "admin"
    SYSTEM = "system"


# State machine transition map. List order is the order offered to callers.
_VALID_TRANSITIONS = {
    OrderStatus.PENDING: [OrderStatus.CONFIRMED, OrderStatus.CANCELLED],
    OrderStatus.CONFIRMED: [OrderStatus.PROCESSING, OrderStatus.CANCELLED],
    OrderStatus.PROCESSING: [OrderStatus.SHIPPED, OrderStatus.CANCELLED],
    OrderStatus.SHIPPED: [OrderStatus.DELIVERED, OrderStatus.CANCELLED],
    OrderStatus.DELIVERED: [OrderStatus.REFUNDED],
    OrderStatus.CANCELLED: [OrderStatus.REFUNDED],  # Only when payment was captured
    OrderStatus.REFUNDED: [],  # Terminal
}

TERMINAL_STATUSES = frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.REFUNDED})

# Customers may only cancel before the parcel leaves the warehouse
_CUSTOMER_CANCELLABLE_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
}

_PRE_DELIVERY_STATES = {
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PROCESSING,
    OrderStatus.SHIPPED,
    OrderStatus.CANCELLED,
}

# Statuses in which goods are (or are about to be) out with the customer
ACTIVE_RENTAL_STATUSES = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
)


def _as_date(moment) -> date:
    if moment is None:
        return datetime.now(UTC).date()
    if isinstance(moment, datetime):
        return (moment if moment.tzinfo else moment.replace(tzinfo=UTC)).astimezone(UTC).date()
    return moment


def parse_status(value) -> OrderStatus:
    """Coerce a status value into ``OrderStatus``; unknown values are invalid transitions."""
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(str(value).strip().lower())
    except ValueError:
        raise InvalidTransition(
            f"Unknown order status '{value}'",
            to_status=str(value),
            allowed=[status.value for status in OrderStatus],
        ) from None


def allowed_transitions(status) -> list[str]:
    """Statuses an order in ``status`` may move to next."""
    return [target.value for target in _VALID_TRANSITIONS[parse_status(status)]]


@dataclass(frozen=True)
class TransitionContext:
    """Caller-supplied data for a transition.

    ``reason`` is required for cancellation; ``tracking_number`` for shipping
    (unless the strict tracking policy is relaxed). ``expected_status`` and
    ``expected_version`` are what the caller last observed; the engine
    refuses to act on an order that has moved on since.
    """

    reason: str | None = None
    cancelled_by: str = CancellationActor.ADMIN.value
    tracking_number: str | None = None
    courier: str | None = None
    expected_delivery: str | None = None
    admin_note: str | None = None
    expected_status: str | None = None
    expected_version: int | None = None


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@ordering.value_object(part_of="Order")
class PostalAddress:
    """A delivery or billing address captured when the order was placed.

    Once recorded on an Order the address is immutable. It is where the order
    went, regardless of later changes to the customer's address book.
    """

    name = String(max_length=100)
    phone = String(max_length=20)
    street = String(required=True, max_length=255)
    landmark = String(max_length=255)
    city = String(required=True, max_length=100)
    state = String(required=True, max_length=100)
    postal_code = String(required=True, max_length=20)
    country = String(required=True, max_length=100)


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@ordering.entity(part_of="Order")
class OrderItem:
    """A line item: one product/variant/size with its price frozen at placement.

    Later catalog price changes never touch ``unit_price`` or ``line_total``.
    """

    product_id = Identifier(required=True)
    variant_id = Identifier()
    size_id = Identifier()
    sku = String(max_length=50)
    product_name = String(required=True, max_length=255)
    size_label = String(max_length=20)
    color = String(max_length=50)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    line_total = Float(required=True, min_value=0.0)
    position = Integer(default=0)

    # Rental window; empty for outright purchases
    rental_days = Integer(min_value=1)
    start_date = Date()
    end_date = Date()

    @invariant.post
    def line_total_must_equal_price_times_quantity(self):
        if self.unit_price is None or self.quantity is None or self.line_total is None:
            return
        expected = pricing.to_money(self.unit_price) * self.quantity
        if pricing.to_money(self.line_total) != expected:
            raise ValidationError(
                {"line_total": [f"Line total {self.line_total} does not equal {self.unit_price} x {self.quantity}"]}
            )

    @invariant.post
    def rental_must_end_after_it_starts(self):
        if self.start_date and self.end_date and self.end_date <= self.start_date:
            raise ValidationError(
                {"end_date": [f"Rental of {self.product_name} must end after {self.start_date.isoformat()}"]}
            )


# ---------------------------------------------------------------------------
# Aggregate Root
# ---------------------------------------------------------------------------
@ordering.aggregate
class Order:
    order_number = String(required=True, max_length=32)
    customer_id = Identifier(required=True)
    items = HasMany(OrderItem)
    shipping_address = ValueObject(PostalAddress)
    billing_address = ValueObject(PostalAddress)

    subtotal = Float(default=0.0, min_value=0.0)
    shipping_charge = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    tax = Float(default=0.0, min_value=0.0)
    total_amount = Float(default=0.0, min_value=0.0)
    currency = String(max_length=3, default="INR")

    payment_method = String(choices=PaymentMethod, default=PaymentMethod.CASH_ON_DELIVERY.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.PENDING.value)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)

    tracking_number = String(max_length=255)
    courier = String(max_length=100)
    expected_delivery = String(max_length=10)  # ISO date string
    shipped_at = DateTime()
    delivered_at = DateTime()
    paid_at = DateTime()
    cancelled_at = DateTime()
    cancellation_reason = String(max_length=500)
    cancelled_by = String(max_length=20)
    refunded_at = DateTime()

    # Rental window: goods go out on delivery_date and come back by return_date
    delivery_date = Date()
    return_date = Date()

    customer_note = String(max_length=500)
    admin_note = String(max_length=1000)

    created_at = DateTime()
    updated_at = DateTime()
    version = Integer(default=0)

    # -------------------------------------------------------------------
    # Invariants
    # -------------------------------------------------------------------
    @invariant.post
    def order_must_have_items(self):
        if not self.items:
            raise ValidationError({"items": ["An order needs at least one item"]})

    @invariant.post
    def subtotal_must_equal_sum_of_lines(self):
        lines = sum((pricing.to_money(item.line_total) for item in self.items or []), pricing.to_money(0))
        if pricing.to_money(self.subtotal) != lines:
            raise ValidationError({"subtotal": [f"Subtotal {self.subtotal} does not match line totals {lines}"]})

    @invariant.post
    def total_must_balance(self):
        expected = (
            pricing.to_money(self.subtotal)
            + pricing.to_money(self.shipping_charge)
            + pricing.to_money(self.tax)
            - pricing.to_money(self.discount)
        )
        if pricing.to_money(self.total_amount) != expected:
            raise ValidationError(
                {"total_amount": [f"Total {self.total_amount} must equal subtotal + shipping + tax - discount"]}
            )

    @invariant.post
    def lifecycle_stamps_must_match_status(self):
        status = OrderStatus(self.status)

        if status == OrderStatus.DELIVERED and self.delivered_at is None:
            raise ValidationError({"delivered_at": ["Delivered orders must record when they were delivered"]})
        if status in _PRE_DELIVERY_STATES and self.delivered_at is not None:
            raise ValidationError({"delivered_at": [f"A {status.value} order cannot have a delivery date"]})

        if status == OrderStatus.CANCELLED and (self.cancelled_at is None or not self.cancellation_reason):
            raise ValidationError({"cancelled_at": ["Cancelled orders must record when and why"]})
        if status not in (OrderStatus.CANCELLED, OrderStatus.REFUNDED) and (
            self.cancelled_at is not None or self.cancellation_reason
        ):
            raise ValidationError({"cancelled_at": [f"A {status.value} order cannot carry cancellation details"]})

        if status == OrderStatus.REFUNDED and self.payment_status != PaymentStatus.REFUNDED.value:
            raise ValidationError({"payment_status": ["Refunded orders must have a refunded payment"]})

    @invariant.post
    def return_date_must_follow_delivery_date(self):
        if self.delivery_date and self.return_date and self.return_date <= self.delivery_date:
            raise ValidationError({"return_date": ["Return date must be after the delivery date"]})

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        order_number,
        customer_id,
        lines,
        totals,
        shipping_address,
        billing_address=None,
        payment_method=PaymentMethod.CASH_ON_DELIVERY.value,
        currency="INR",
        customer_note=None,
        delivery_date=None,
        return_date=None,
    ):
        """Place a new order from priced lines.

        Args:
            order_number: Human-facing unique number, assigned once.
            customer_id: The customer placing the order.
            lines: List of dicts with product_id, variant_id, size_id, sku,
                product_name, size_label, color, unit_price, quantity.
            totals: ``pricing.Totals`` computed for the same lines.
            shipping_address: Dict of ``PostalAddress`` fields.
            billing_address: Dict of ``PostalAddress`` fields; defaults to
                the shipping address.
            delivery_date, return_date: Rental window of the whole order;
                defaults to the earliest start and latest end among the
                lines that carry one.
        """
        now = datetime.now(UTC)

        items = [
            OrderItem(
                **line,
                line_total=float(pricing.line_total(line["unit_price"], line["quantity"])),
                position=index,
            )
            for index, line in enumerate(lines)
        ]
        starts = [item.start_date for item in items if item.start_date]
        ends = [item.end_date for item in items if item.end_date]
        delivery_date = delivery_date or (min(starts) if starts else None)
        return_date = return_date or (max(ends) if ends else None)

        order = cls(
            order_number=order_number,
            customer_id=customer_id,
            items=items,
            shipping_address=PostalAddress(**shipping_address),
            billing_address=PostalAddress(**(billing_address or shipping_address)),
            currency=currency,
            payment_method=payment_method,
            payment_status=PaymentStatus.PENDING.value,
            status=OrderStatus.PENDING.value,
            customer_note=customer_note,
            delivery_date=delivery_date,
            return_date=return_date,
            created_at=now,
            updated_at=now,
            version=0,
            **totals.as_floats(),
        )

        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                customer_id=str(customer_id),
                items=json.dumps([{**line, "unit_price": float(line["unit_price"])} for line in lines], default=str),
                item_count=totals.item_count,
                subtotal=order.subtotal,
                shipping_charge=order.shipping_charge,
                discount=order.discount,
                tax=order.tax,
                total_amount=order.total_amount,
                currency=currency,
                payment_method=payment_method,
                delivery_date=delivery_date,
                return_date=return_date,
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Derived values
    # -------------------------------------------------------------------
    @property
    def item_count(self):
        return pricing.item_count(self)

    @property
    def ordered_items(self):
        """Items in the order they were placed."""
        return sorted(self.items or [], key=lambda item: item.position or 0)

    @property
    def next_statuses(self):
        return allowed_transitions(self.status)

    @property
    def is_terminal(self):
        return OrderStatus(self.status) in TERMINAL_STATUSES

    @property
    def rental_duration(self):
        """Days between delivery and return; 0 when the order is not a rental."""
        if not self.delivery_date or not self.return_date:
            return 0
        return abs((self.return_date - self.delivery_date).days)

    def is_active_on(self, moment=None):
        """Whether the rented goods are out with the customer on ``moment`` (default today, UTC)."""
        if not self.return_date or OrderStatus(self.status) not in ACTIVE_RENTAL_STATUSES:
            return False
        return self.return_date >= _as_date(moment)

    @property
    def is_active(self):
        return self.is_active_on()

    # -------------------------------------------------------------------
    # State transitions
    # -------------------------------------------------------------------
    def _assert_edge(self, current, target):
        if target not in _VALID_TRANSITIONS[current]:
            raise InvalidTransition(
                f"Cannot move order {self.order_number} from {current.value} to {target.value}",
                order_id=str(self.id),
                from_status=current.value,
                to_status=target.value,
                allowed=allowed_transitions(current),
            )

    def _assert_can_transition(self, current, target, context, require_tracking):
        """Validate the context a step needs, then the edge itself, before anything changes.

        Closed orders reject every edge outright. For open orders a missing
        reason or tracking number is reported ahead of the edge check, so a
        caller skipping ahead without the data learns what is missing.
        """
        if current in TERMINAL_STATUSES:
            self._assert_edge(current, target)

        if target == OrderStatus.CANCELLED:
            if not (context.reason or "").strip():
                raise MissingContext(
                    f"A reason is required to cancel order {self.order_number}",
                    order_id=str(self.id),
                    field="reason",
                )

        if target == OrderStatus.SHIPPED and require_tracking and not (context.tracking_number or "").strip():
            raise MissingContext(
                f"A tracking number is required to ship order {self.order_number}",
                order_id=str(self.id),
                field="tracking_number",
            )

        self._assert_edge(current, target)

        if target == OrderStatus.CANCELLED:
            try:
                actor = CancellationActor(context.cancelled_by)
            except ValueError:
                raise ValidationError(
                    {"cancelled_by": [f"Unknown cancellation actor '{context.cancelled_by}'"]}
                ) from None
            if actor == CancellationActor.CUSTOMER and current not in _CUSTOMER_CANCELLABLE_STATES:
                raise InvalidTransition(
                    f"Order {self.order_number} cannot be cancelled at this stage ({current.value})",
                    order_id=str(self.id),
                    from_status=current.value,
                    to_status=target.value,
                )

        if target == OrderStatus.REFUNDED and current == OrderStatus.CANCELLED:
            if self.payment_status != PaymentStatus.PAID.value:
                raise InvalidTransition(
                    f"Cannot refund order {self.order_number}: no payment was captured",
                    order_id=str(self.id),
                    from_status=current.value,
                    to_status=target.value,
                    payment_status=self.payment_status,
                )

    def transition_to(self, target_status, context=None, require_tracking=True):
        """Move the order to ``target_status``, applying that step's side effects.

        Returns False when the order is already in ``target_status`` (a
        retried request) and nothing changed, True otherwise.
        """
        context = context or TransitionContext()
        target = parse_status(target_status)
        current = OrderStatus(self.status)

        if target == current:
            return False

        self._assert_can_transition(current, target, context, require_tracking)

        now = datetime.now(UTC)
        with atomic_change(self):
            self.status = target.value
            self.updated_at = now
            if context.admin_note:
                self.admin_note = context.admin_note

            if target == OrderStatus.SHIPPED:
                self.tracking_number = (context.tracking_number or "").strip() or None
                self.courier = context.courier
                self.expected_delivery = context.expected_delivery
                self.shipped_at = now

            elif target == OrderStatus.DELIVERED:
                self.delivered_at = now
                if (
                    self.payment_method == PaymentMethod.CASH_ON_DELIVERY.value
                    and self.payment_status == PaymentStatus.PENDING.value
                ):
                    self.payment_status = PaymentStatus.PAID.value
                    self.paid_at = now

            elif target == OrderStatus.CANCELLED:
                self.cancelled_at = now
                self.cancellation_reason = context.reason.strip()
                self.cancelled_by = context.cancelled_by
                # A captured payment stays captured; refunding it is its own step
                if self.payment_status != PaymentStatus.PAID.value:
                    self.payment_status = PaymentStatus.CANCELLED.value

            elif target == OrderStatus.REFUNDED:
                self.payment_status = PaymentStatus.REFUNDED.value
                self.refunded_at = now

        self.raise_(self._event_for(current, target, now))
        return True

    def _stock_lines(self):
        return [
            {
                "product_id": str(item.product_id),
                "variant_id": str(item.variant_id) if item.variant_id else None,
                "size_id": str(item.size_id) if item.size_id else None,
                "quantity": item.quantity,
            }
            for item in self.ordered_items
        ]

    def _event_for(self, previous, target, now):
        order_id = str(self.id)
        if target == OrderStatus.CONFIRMED:
            return OrderConfirmed(order_id=order_id, order_number=self.order_number, confirmed_at=now)
        if target == OrderStatus.PROCESSING:
            return OrderProcessing(order_id=order_id, order_number=self.order_number, started_at=now)
        if target == OrderStatus.SHIPPED:
            return OrderShipped(
                order_id=order_id,
                order_number=self.order_number,
                tracking_number=self.tracking_number,
                courier=self.courier,
                expected_delivery=self.expected_delivery,
                shipped_at=now,
            )
        if target == OrderStatus.DELIVERED:
            return OrderDelivered(
                order_id=order_id,
                order_number=self.order_number,
                payment_status=self.payment_status,
                delivered_at=now,
            )
        if target == OrderStatus.CANCELLED:
            return OrderCancelled(
                order_id=order_id,
                order_number=self.order_number,
                previous_status=previous.value,
                reason=self.cancellation_reason,
                cancelled_by=self.cancelled_by,
                payment_status=self.payment_status,
                items=json.dumps(self._stock_lines()),
                cancelled_at=now,
            )
        return OrderRefunded(
            order_id=order_id,
            order_number=self.order_number,
            previous_status=previous.value,
            refund_amount=self.total_amount,
            refunded_at=now,
        )
