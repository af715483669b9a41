"""Domain events for the Order aggregate.

One event per lifecycle step. They are facts for downstream consumers
(stock release, notifications, dashboards); the Order itself is stored as
current state, not rebuilt from these.
"""

from protean.fields import Date, DateTime, Float, Identifier, Integer, String, Text

from ordering.domain import ordering


@ordering.event(part_of="Order")
class OrderPlaced:
    """A new order was placed with a snapshot of items, prices and addresses."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True, max_length=32)
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: list of line snapshots
    item_count = Integer(required=True)
    subtotal = Float(required=True)
    shipping_charge = Float()
    discount = Float()
    tax = Float()
    total_amount = Float(required=True)
    currency = String(max_length=3)
    payment_method = String(max_length=20)
    delivery_date = Date()
    return_date = Date()
    placed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderConfirmed:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    confirmed_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderProcessing:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    started_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderShipped:
    """The order was handed to a courier."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    tracking_number = String(max_length=255)
    courier = String(max_length=100)
    expected_delivery = String(max_length=10)  # ISO date string
    shipped_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    payment_status = String(max_length=20)
    delivered_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderCancelled:
    """The order was cancelled. ``previous_status`` tells consumers whether goods had left."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    previous_status = String(required=True, max_length=20)
    reason = String(required=True, max_length=500)
    cancelled_by = String(max_length=20)
    payment_status = String(max_length=20)
    items = Text()  # JSON: product_id, variant_id, size_id, quantity per line
    cancelled_at = DateTime(required=True)


@ordering.event(part_of="Order")
class OrderRefunded:
    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(max_length=32)
    previous_status = String(required=True, max_length=20)
    refund_amount = Float(required=True)
    refunded_at = DateTime(required=True)
