"""Order placement — command, handler and the ``create_order`` entry point.

A placement request names only what the customer wants (product, variant,
size, quantity). Names and prices come from the catalog at the moment of
placement and are frozen on the order; stock is reserved in the same unit of
work, so a failure anywhere leaves neither an order nor a reservation behind.
"""

import json
import uuid
from datetime import UTC, date, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Date, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from ordering.catalog import get_catalog
from ordering.domain import ordering
from ordering.order import pricing
from ordering.order.errors import ItemUnavailable, PersistenceError
from ordering.order.order import Order, PaymentMethod
from ordering.settings import get_settings

logger = structlog.get_logger(__name__)

ORDER_NUMBER_ATTEMPTS = 5


@ordering.command(part_of="Order")
class PlaceOrder:
    customer_id = Identifier(required=True)
    items = Text(required=True)  # JSON: [{product_id, variant_id, size_id, quantity, rental window}]
    shipping_address = Text(required=True)  # JSON: address dict
    billing_address = Text()  # JSON: address dict, defaults to shipping
    shipping_charge = Float(default=0.0)
    discount = Float(default=0.0)
    tax = Float(default=0.0)
    payment_method = String(max_length=20, default=PaymentMethod.CASH_ON_DELIVERY.value)
    customer_note = String(max_length=500)
    delivery_date = Date()
    return_date = Date()


def generate_order_number(now=None) -> str:
    """``ORD-YYYYMMDD-XXXXXX`` with six random hex digits."""
    now = now or datetime.now(UTC)
    return f"ORD-{now:%Y%m%d}-{uuid.uuid4().hex[:6].upper()}"


def _load(value):
    return json.loads(value) if isinstance(value, str) else value


def _parse_date(value, field, index):
    if value is None or value == "":
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value)[:10])
    except ValueError:
        label = field.replace("_", " ")
        raise ValidationError({field: [f"Item {index + 1} has an invalid {label}"]}) from None


def _rental_window(item, index) -> dict:
    """Rental days, start and end of a requested line; days follow from the dates when omitted."""
    start = _parse_date(item.get("start_date"), "start_date", index)
    end = _parse_date(item.get("end_date"), "end_date", index)
    days = item.get("rental_days")
    if days in (None, ""):
        days = (end - start).days if start and end and end > start else None
    else:
        try:
            days = int(days)
        except (TypeError, ValueError):
            raise ValidationError({"rental_days": [f"Item {index + 1} has invalid rental days"]}) from None
        if days < 1:
            raise ValidationError({"rental_days": [f"Item {index + 1} must be rented for at least one day"]})
    return {"rental_days": days, "start_date": start, "end_date": end}


def _requested_lines(items) -> list[dict]:
    lines = []
    for index, item in enumerate(items or []):
        if not item.get("product_id"):
            raise ValidationError({"items": [f"Item {index + 1} has no product"]})
        try:
            quantity = int(item.get("quantity"))
        except (TypeError, ValueError):
            raise ValidationError({"quantity": [f"Item {index + 1} has an invalid quantity"]}) from None
        if quantity < 1:
            raise ValidationError({"quantity": [f"Item {index + 1} must have a quantity of at least 1"]})
        lines.append(
            {
                "product_id": str(item["product_id"]),
                "variant_id": item.get("variant_id"),
                "size_id": item.get("size_id"),
                "quantity": quantity,
                **_rental_window(item, index),
            }
        )
    return lines


def _priced_lines(catalog, requested) -> list[dict]:
    """Quote every line; report all unavailable lines together."""
    priced, unavailable = [], []
    for line in requested:
        quote = catalog.quote(line["product_id"], line["variant_id"], line["size_id"], line["quantity"])
        if not quote.available:
            unavailable.append({"product_id": line["product_id"], "reason": quote.unavailable_reason})
            continue
        priced.append(
            {
                "product_id": line["product_id"],
                "variant_id": line["variant_id"],
                "size_id": line["size_id"],
                "sku": quote.sku,
                "product_name": quote.product_name,
                "size_label": quote.size_label,
                "color": quote.color,
                "unit_price": float(quote.unit_price),
                "quantity": line["quantity"],
                "rental_days": line.get("rental_days"),
                "start_date": line.get("start_date"),
                "end_date": line.get("end_date"),
            }
        )

    if unavailable:
        raise ItemUnavailable(
            "; ".join(entry["reason"] for entry in unavailable),
            items=unavailable,
        )
    return priced


def _unique_order_number(repo) -> str:
    for _ in range(ORDER_NUMBER_ATTEMPTS):
        candidate = generate_order_number()
        if repo.find_by_order_number(candidate) is None:
            return candidate
        logger.warning("Order number collision, retrying", order_number=candidate)
    raise PersistenceError(
        f"Could not allocate a unique order number after {ORDER_NUMBER_ATTEMPTS} attempts",
        operation="generate_order_number",
    )


def _reserve_stock(catalog, order):
    reserved = []
    try:
        for item in order.ordered_items:
            catalog.reserve(item.product_id, item.variant_id, item.size_id, item.quantity)
            reserved.append(item)
    except ValueError as exc:
        for item in reserved:
            catalog.release(item.product_id, item.variant_id, item.size_id, item.quantity)
        raise ItemUnavailable(str(exc), order_number=order.order_number) from exc


@ordering.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        catalog = get_catalog()
        repo = current_domain.repository_for(Order)

        requested = _requested_lines(_load(command.items))
        lines = _priced_lines(catalog, requested)
        totals = pricing.compute_totals(
            lines,
            shipping_charge=command.shipping_charge,
            discount=command.discount,
            tax=command.tax,
        )

        shipping_address = _load(command.shipping_address)
        billing_address = _load(command.billing_address) if command.billing_address else None

        order = Order.create(
            order_number=_unique_order_number(repo),
            customer_id=command.customer_id,
            lines=lines,
            totals=totals,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_method=command.payment_method or PaymentMethod.CASH_ON_DELIVERY.value,
            currency=get_settings().currency,
            customer_note=command.customer_note,
            delivery_date=command.delivery_date,
            return_date=command.return_date,
        )
        repo.save_order(order, None)
        _reserve_stock(catalog, order)

        logger.info(
            "Order placed",
            order_id=str(order.id),
            order_number=order.order_number,
            customer_id=str(order.customer_id),
            item_count=totals.item_count,
            total_amount=order.total_amount,
        )
        return str(order.id)


def create_order(
    customer_id,
    items,
    shipping_address,
    billing_address=None,
    shipping_charge=0.0,
    discount=0.0,
    tax=0.0,
    payment_method=PaymentMethod.CASH_ON_DELIVERY.value,
    customer_note=None,
    delivery_date=None,
    return_date=None,
) -> Order:
    """Place an order and return it as stored."""
    order_id = current_domain.process(
        PlaceOrder(
            customer_id=customer_id,
            items=json.dumps(items, default=str),
            shipping_address=json.dumps(shipping_address),
            billing_address=json.dumps(billing_address) if billing_address else None,
            shipping_charge=shipping_charge,
            discount=discount,
            tax=tax,
            payment_method=payment_method,
            customer_note=customer_note,
            delivery_date=delivery_date,
            return_date=return_date,
        ),
        asynchronous=False,
    )
    return current_domain.repository_for(Order).get_order(order_id)
