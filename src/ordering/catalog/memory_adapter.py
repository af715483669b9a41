"""In-memory catalog adapter — default catalog for development and tests.

Holds a flat table of sellable units keyed by (product, variant, size) with
their price, stock and ordering rules. Quotes apply the same checks the
back-office applies at checkout: the product must be published, the
variant and size active, stock sufficient and the minimum order quantity met.
"""

from dataclasses import dataclass, field
from decimal import Decimal

import structlog

from ordering.catalog.port import CatalogPort, CatalogQuote
from ordering.order.pricing import to_money

logger = structlog.get_logger(__name__)


@dataclass
class StockEntry:
    product_name: str
    unit_price: Decimal
    inventory: int
    sku: str | None = None
    size_label: str | None = None
    color: str | None = None
    min_order_quantity: int = 1
    published: bool = True
    active: bool = True
    # Bulk pricing: minimum quantity -> unit price
    tier_prices: dict[int, Decimal] = field(default_factory=dict)

    def price_for(self, quantity: int) -> Decimal:
        price = self.unit_price
        for threshold in sorted(self.tier_prices):
            if quantity >= threshold:
                price = self.tier_prices[threshold]
        return price


def _key(product_id, variant_id, size_id):
    return (str(product_id), str(variant_id) if variant_id else None, str(size_id) if size_id else None)


class InMemoryCatalog(CatalogPort):
    """Catalog backed by a dict."""

    def __init__(self):
        self._entries: dict[tuple, StockEntry] = {}

    def add_product(
        self,
        product_id,
        product_name,
        unit_price,
        inventory,
        variant_id=None,
        size_id=None,
        sku=None,
        size_label=None,
        color=None,
        min_order_quantity=1,
        published=True,
        active=True,
        tier_prices=None,
    ) -> StockEntry:
        """Register a sellable unit (for seeding and tests)."""
        entry = StockEntry(
            product_name=product_name,
            unit_price=to_money(unit_price),
            inventory=inventory,
            sku=sku,
            size_label=size_label,
            color=color,
            min_order_quantity=min_order_quantity,
            published=published,
            active=active,
            tier_prices={int(qty): to_money(price) for qty, price in (tier_prices or {}).items()},
        )
        self._entries[_key(product_id, variant_id, size_id)] = entry
        return entry

    def stock_level(self, product_id, variant_id=None, size_id=None) -> int:
        entry = self._entries.get(_key(product_id, variant_id, size_id))
        return entry.inventory if entry else 0

    def quote(self, product_id, variant_id, size_id, quantity) -> CatalogQuote:
        entry = self._entries.get(_key(product_id, variant_id, size_id))

        def unavailable(reason):
            return CatalogQuote(
                product_id=str(product_id),
                variant_id=variant_id,
                size_id=size_id,
                available=False,
                product_name=entry.product_name if entry else None,
                unavailable_reason=reason,
            )

        if entry is None:
            return unavailable("Product is no longer available")
        if not entry.published:
            return unavailable(f"{entry.product_name} is not available for purchase")
        if not entry.active:
            return unavailable(f"Selected option for {entry.product_name} is not available")
        if quantity < entry.min_order_quantity:
            return unavailable(f"Minimum order quantity for {entry.product_name} is {entry.min_order_quantity}")
        if entry.inventory < quantity:
            return unavailable(f"Only {entry.inventory} items available for {entry.product_name}")

        return CatalogQuote(
            product_id=str(product_id),
            variant_id=variant_id,
            size_id=size_id,
            available=True,
            unit_price=entry.price_for(quantity),
            product_name=entry.product_name,
            sku=entry.sku,
            size_label=entry.size_label,
            color=entry.color,
        )

    def reserve(self, product_id, variant_id, size_id, quantity) -> None:
        entry = self._entries.get(_key(product_id, variant_id, size_id))
        if entry is None or entry.inventory < quantity:
            raise ValueError(f"Cannot reserve {quantity} units of {product_id}: insufficient stock")
        entry.inventory -= quantity

    def release(self, product_id, variant_id, size_id, quantity) -> None:
        entry = self._entries.get(_key(product_id, variant_id, size_id))
        if entry is None:
            # Product was removed from the catalog after the order was placed
            logger.warning("Stock release skipped for unknown product", product_id=str(product_id))
            return
        entry.inventory += quantity
