"""Inventory ledger: reserve, commit (sale) and release against order lines.

Every line is applied independently: a malformed line is skipped with a
reason, and a failure while loading or saving one product is logged and
recorded without touching the others. Each operation returns a
``LedgerReport`` instead of raising, so callers and tests can see exactly
which lines landed.

Counters are plain increments/decrements; nothing here serializes two orders
touching the same product, and availability is allowed to go negative.
``commit_sale`` is not idempotent for counters: callers guard it with the
order's payment status.
"""

import math
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product, TransactionType

logger = structlog.get_logger(__name__)

RESERVE_REASON = "Checkout hold"
RELEASE_REASON = "Order cancelled/refunded"
EXPIRED_REASON = "expired"


@dataclass(frozen=True)
class LedgerLine:
    product_id: str
    quantity: int
    variant_sku: str | None = None


@dataclass(frozen=True)
class AppliedLine:
    index: int
    product_id: str
    quantity: int
    variant_sku: str | None = None


@dataclass(frozen=True)
class SkippedLine:
    index: int
    product_id: str | None
    reason: str


@dataclass
class LedgerReport:
    operation: str
    applied: list[AppliedLine] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)

    def as_dict(self) -> dict:
        return {
            "operation": self.operation,
            "applied": self.applied_count,
            "skipped": [{"index": s.index, "product_id": s.product_id, "reason": s.reason} for s in self.skipped],
        }


def _validate(index: int, item) -> LedgerLine | SkippedLine:
    if isinstance(item, LedgerLine):
        data = {"product_id": item.product_id, "quantity": item.quantity, "variant_sku": item.variant_sku}
    elif isinstance(item, dict):
        data = item
    else:
        return SkippedLine(index, None, "unrecognised line")

    product_id = data.get("product_id") or data.get("productId")
    if not product_id or not isinstance(product_id, str):
        return SkippedLine(index, None, "missing product reference")

    quantity = data.get("quantity")
    if isinstance(quantity, bool) or not isinstance(quantity, int | float):
        return SkippedLine(index, product_id, "quantity is not a number")
    if not math.isfinite(quantity) or quantity <= 0:
        return SkippedLine(index, product_id, "quantity must be a positive finite number")
    if quantity != int(quantity):
        return SkippedLine(index, product_id, "quantity must be a whole number")

    variant_sku = data.get("variant_sku") or data.get("variantSku")
    return LedgerLine(product_id=product_id, quantity=int(quantity), variant_sku=variant_sku or None)


class InventoryLedger:
    def __init__(self, repository=None):
        self._repository = repository

    @property
    def repository(self):
        return self._repository or current_domain.repository_for(Product)

    def reserve(self, items, order_id: str | None = None) -> LedgerReport:
        """Hold stock for a checkout: ``reserved += q``."""
        return self._apply(
            "reserve",
            items,
            order_id,
            lambda q: dict(
                transaction_type=TransactionType.RESERVATION,
                quantity=q,
                reserved_delta=q,
                reason=RESERVE_REASON,
            ),
        )

    def commit_sale(self, order_id: str, items, order=None, held: bool = True) -> LedgerReport:
        """Turn held stock into a sale: ``in_stock -= q`` and ``reserved -= q``.

        Pass ``held=False`` when the checkout hold is already gone (the order
        expired and was swept); only ``in_stock`` moves then. When ``order`` is
        given, its fulfillment record is initialized afterwards on a best-effort
        basis.
        """
        report = self._apply(
            "commit_sale",
            items,
            order_id,
            lambda q: dict(
                transaction_type=TransactionType.SALE,
                quantity=-q,
                in_stock_delta=-q,
                reserved_delta=-q if held else 0,
                reason=f"Order {order_id}",
            ),
        )

        if order is not None:
            try:
                order.start_fulfillment()
            except Exception as exc:
                logger.warning("Could not initialize fulfillment", order_id=order_id, error=str(exc))

        return report

    def release(self, order_id: str | None, items, reason: str = RELEASE_REASON, restock: bool = True) -> LedgerReport:
        """Give held stock back: ``reserved -= q``, and ``in_stock += q`` when restocking."""
        return self._apply(
            "release",
            items,
            order_id,
            lambda q: dict(
                transaction_type=TransactionType.RELEASE,
                quantity=q,
                in_stock_delta=q if restock else 0,
                reserved_delta=-q,
                reason=reason,
            ),
        )

    def restock(self, order_id: str | None, items, reason: str = RELEASE_REASON) -> LedgerReport:
        """Put sold units back on the shelf: ``in_stock += q``, reserved untouched."""
        return self._apply(
            "restock",
            items,
            order_id,
            lambda q: dict(
                transaction_type=TransactionType.RETURN,
                quantity=q,
                in_stock_delta=q,
                reason=reason,
            ),
        )

    def _apply(self, operation: str, items, order_id, movement) -> LedgerReport:
        report = LedgerReport(operation=operation)
        # The same product can appear on several lines; keep one instance per run
        loaded: dict[str, Product] = {}

        for index, item in enumerate(items or []):
            line = _validate(index, item)
            if isinstance(line, SkippedLine):
                logger.info("Skipping ledger line", operation=operation, order_id=order_id, reason=line.reason)
                report.skipped.append(line)
                continue

            try:
                product = loaded.get(line.product_id) or self.repository.get(line.product_id)
                loaded[line.product_id] = product
                variant = None
                if line.variant_sku:
                    variant = product.find_variant(line.variant_sku)
                    if variant is None:
                        report.skipped.append(SkippedLine(index, line.product_id, "variant not found"))
                        logger.warning(
                            "Variant not found for ledger line",
                            operation=operation,
                            product_id=line.product_id,
                            variant_sku=line.variant_sku,
                        )
                        continue

                product.adjust_stock(variant=variant, reference=order_id, **movement(line.quantity))
                self.repository.add(product)
            except ObjectNotFoundError:
                report.skipped.append(SkippedLine(index, line.product_id, "product not found"))
                logger.warning("Product not found for ledger line", operation=operation, product_id=line.product_id)
                continue
            except Exception as exc:
                # The cached instance may hold this line's unsaved movement
                loaded.pop(line.product_id, None)
                report.skipped.append(SkippedLine(index, line.product_id, str(exc)))
                logger.warning(
                    "Ledger line failed",
                    operation=operation,
                    order_id=order_id,
                    product_id=line.product_id,
                    error=str(exc),
                )
                continue

            report.applied.append(AppliedLine(index, line.product_id, line.quantity, line.variant_sku))

        logger.info(
            "Ledger operation complete",
            operation=operation,
            order_id=order_id,
            applied=report.applied_count,
            skipped=len(report.skipped),
        )
        return report
