"""Catalog port — abstract interface to the product catalog.

The order engine only needs three things from the catalog: a price and
availability quote for a product/variant/size at placement time, and a way
to take stock out and put it back. Product and category management live
elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal


@dataclass(frozen=True)
class CatalogQuote:
    """Price and availability for one requested line."""

    product_id: str
    variant_id: str | None
    size_id: str | None
    available: bool
    unit_price: Decimal = Decimal("0.00")
    product_name: str | None = None
    sku: str | None = None
    size_label: str | None = None
    color: str | None = None
    unavailable_reason: str | None = None


class CatalogPort(ABC):
    """Abstract interface for catalog adapters."""

    @abstractmethod
    def quote(
        self,
        product_id: str,
        variant_id: str | None,
        size_id: str | None,
        quantity: int,
    ) -> CatalogQuote:
        """Quote a unit price and availability for ``quantity`` units."""
        ...

    @abstractmethod
    def reserve(self, product_id: str, variant_id: str | None, size_id: str | None, quantity: int) -> None:
        """Take ``quantity`` units out of available stock."""
        ...

    @abstractmethod
    def release(self, product_id: str, variant_id: str | None, size_id: str | None, quantity: int) -> None:
        """Return ``quantity`` units to available stock."""
        ...
