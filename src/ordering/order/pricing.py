"""Order totals — exact decimal arithmetic for line totals and order totals.

Amounts are persisted as floats on the aggregate, but every computation goes
through ``Decimal`` quantized to cents so that summing many lines never
drifts by a cent.

    total = subtotal + shipping_charge + tax - discount
"""

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ordering.order.errors import EmptyOrder, NegativeAmount

CENT = Decimal("0.01")


def to_money(value) -> Decimal:
    """Convert a float/int/str/Decimal amount into a cent-quantized Decimal.

    Floats are converted through ``str`` so 0.1 stays 0.1 rather than its
    binary expansion.
    """
    if value is None:
        return Decimal("0.00")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, float):
        amount = Decimal(str(value))
    else:
        amount = Decimal(value)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    shipping_charge: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    item_count: int

    def as_floats(self) -> dict[str, float]:
        """Values in the shape stored on the Order aggregate."""
        return {
            "subtotal": float(self.subtotal),
            "shipping_charge": float(self.shipping_charge),
            "discount": float(self.discount),
            "tax": float(self.tax),
            "total_amount": float(self.total),
        }


def _read(item, name):
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def line_total(unit_price, quantity) -> Decimal:
    """Unit price times quantity, frozen at the moment the order is placed."""
    price = to_money(unit_price)
    if price < 0:
        raise NegativeAmount(f"Unit price cannot be negative (got {price})", field="unit_price")
    if quantity is None or int(quantity) < 0:
        raise NegativeAmount(f"Quantity cannot be negative (got {quantity})", field="quantity")
    return (price * int(quantity)).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_totals(items: Iterable, shipping_charge=0, discount=0, tax=0) -> Totals:
    """Compute subtotal and total for a set of line items.

    ``items`` may be mappings or objects exposing ``unit_price`` and
    ``quantity``.

    Raises:
        EmptyOrder: no items were given.
        NegativeAmount: a price, quantity or charge is negative, or the
            discount exceeds everything else on the order.
    """
    items = list(items or [])
    if not items:
        raise EmptyOrder("An order needs at least one item")

    charges = {
        "shipping_charge": to_money(shipping_charge),
        "discount": to_money(discount),
        "tax": to_money(tax),
    }
    for name, amount in charges.items():
        if amount < 0:
            raise NegativeAmount(f"{name.replace('_', ' ').capitalize()} cannot be negative (got {amount})", field=name)

    subtotal = Decimal("0.00")
    count = 0
    for item in items:
        quantity = _read(item, "quantity")
        subtotal += line_total(_read(item, "unit_price"), quantity)
        count += int(quantity)

    total = subtotal + charges["shipping_charge"] + charges["tax"] - charges["discount"]
    if total < 0:
        raise NegativeAmount(
            f"Discount {charges['discount']} exceeds the order value {total + charges['discount']}",
            field="discount",
        )

    return Totals(
        subtotal=subtotal,
        shipping_charge=charges["shipping_charge"],
        discount=charges["discount"],
        tax=charges["tax"],
        total=total,
        item_count=count,
    )


def item_count(order) -> int:
    """Sum of quantities across the order's items. Always derived, never stored."""
    return sum(int(_read(item, "quantity") or 0) for item in (_read(order, "items") or []))
