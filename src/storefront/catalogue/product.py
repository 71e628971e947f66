"""Product aggregate: the catalogue record the fulfillment engine reads and adjusts.

A Product carries the raw physical attributes that feed shipping quotes
(weight, free-text box dimensions, shipping class), the stock counters the
inventory ledger moves, and the time-boxed sale flags the sale sweeper flips.

Variants own their own SKU, optional physical overrides and stock counters.
Every counter change is recorded as an InventoryTransaction in the product's
append-only history.
"""

from datetime import UTC, datetime
from enum import Enum

from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
)

from storefront.domain import storefront


class TransactionType(Enum):
    SALE = "sale"
    RETURN = "return"
    RESERVATION = "reservation"
    RELEASE = "release"


@storefront.entity(part_of="Product")
class Variant:
    sku = String(required=True, max_length=100)
    title = String(max_length=255)
    shipping_weight = Float(min_value=0.0)
    box_dimensions = String(max_length=50)
    quantity_in_stock = Integer(default=0)
    quantity_reserved = Integer(default=0)

    @property
    def quantity_available(self) -> int:
        return (self.quantity_in_stock or 0) - (self.quantity_reserved or 0)


@storefront.entity(part_of="Product")
class InventoryTransaction:
    """Audit entry for a single counter movement. Never edited once written."""

    timestamp = DateTime(required=True)
    transaction_type = String(choices=TransactionType, required=True)
    quantity = Integer(required=True)
    reference = String(max_length=255)
    reason = String(max_length=255)
    variant_sku = String(max_length=100)


@storefront.aggregate
class Product:
    sku = String(required=True, max_length=100)
    title = String(required=True, max_length=255)
    price = Float(default=0.0, min_value=0.0)

    shipping_weight = Float(min_value=0.0)
    box_dimensions = String(max_length=50)
    shipping_class = String(max_length=50)
    ships_alone = Boolean(default=False)

    quantity_in_stock = Integer(default=0)
    quantity_reserved = Integer(default=0)

    on_sale = Boolean(default=False)
    sale_active = Boolean(default=False)
    sale_price = Float(min_value=0.0)
    sale_start_date = DateTime()
    sale_end_date = DateTime()

    variants = HasMany(Variant)
    inventory_history = HasMany(InventoryTransaction)

    vendor_id = Identifier()

    @property
    def quantity_available(self) -> int:
        # Reservations are best-effort, so this may go negative
        return (self.quantity_in_stock or 0) - (self.quantity_reserved or 0)

    @property
    def effective_price(self) -> float:
        if self.sale_active and self.sale_price:
            return self.sale_price
        return self.price or 0.0

    def find_variant(self, variant_sku: str | None) -> Variant | None:
        if not variant_sku:
            return None
        wanted = variant_sku.strip().lower()
        for variant in self.variants or []:
            if (variant.sku or "").strip().lower() == wanted:
                return variant
        return None

    def adjust_stock(
        self,
        transaction_type: TransactionType,
        quantity: int,
        in_stock_delta: int = 0,
        reserved_delta: int = 0,
        variant: Variant | None = None,
        reference: str | None = None,
        reason: str | None = None,
    ) -> InventoryTransaction:
        """Move the product (or variant) counters and append the matching audit entry.

        ``quantity`` is the signed delta recorded on the audit entry; the counter
        deltas are applied as given and are allowed to drive availability negative.
        """
        target = variant if variant is not None else self
        target.quantity_in_stock = (target.quantity_in_stock or 0) + in_stock_delta
        target.quantity_reserved = (target.quantity_reserved or 0) + reserved_delta

        entry = InventoryTransaction(
            timestamp=datetime.now(UTC),
            transaction_type=transaction_type.value,
            quantity=quantity,
            reference=reference,
            reason=reason,
            variant_sku=variant.sku if variant is not None else None,
        )
        self.add_inventory_history(entry)
        return entry

    def sale_should_activate(self, now: datetime) -> bool:
        if not self.on_sale or self.sale_active:
            return False
        start = as_utc(self.sale_start_date)
        end = as_utc(self.sale_end_date)
        if start is None or start > now:
            return False
        return end is None or end > now

    def sale_should_deactivate(self, now: datetime) -> bool:
        if not self.on_sale or not self.sale_active:
            return False
        end = as_utc(self.sale_end_date)
        return end is not None and end <= now


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive datetimes as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
