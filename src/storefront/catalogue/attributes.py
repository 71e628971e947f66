"""Physical attributes resolver.

Turns a cart line into the weight, box dimensions and shipping class used for
package planning. Raw catalogue values are loosely typed free text, so this
is the one place they get parsed: box dimensions from "LxWxH" and the shipping
class into the closed ``ShippingClass`` enum. Anything missing or unparseable
falls back to the configured packaging defaults; checkout never fails here.
"""

import math
import re
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product
from storefront.config import PackagingDefaults

logger = structlog.get_logger(__name__)

_NUMBER = r"(\d+(?:\.\d+)?|\.\d+)"
_BOX_DIMENSIONS = re.compile(
    rf"^\s*{_NUMBER}\s*x\s*{_NUMBER}\s*x\s*{_NUMBER}\s*$",
    re.IGNORECASE,
)
_NON_ALPHANUMERIC = re.compile(r"[^a-z0-9]")


class ShippingClass(Enum):
    STANDARD = "standard"
    FREIGHT = "freight"
    INSTALL_ONLY = "installonly"
    HAZARDOUS = "hazardous"
    FREE_SHIPPING = "freeshipping"


_CLASS_ALIASES = {
    "installservice": ShippingClass.INSTALL_ONLY,
}


def parse_box_dimensions(text: str | None) -> tuple[float, float, float] | None:
    """Parse ``"<L>x<W>x<H>"``. Returns None for any other shape or a non-positive side."""
    if not text:
        return None
    match = _BOX_DIMENSIONS.match(str(text))
    if not match:
        return None
    sides = tuple(float(part) for part in match.groups())
    if not all(side > 0 and math.isfinite(side) for side in sides):
        return None
    return sides


def normalize_shipping_class(raw: str | None) -> ShippingClass:
    """Map free-text shipping class onto ``ShippingClass``; unknown or empty means STANDARD."""
    key = _NON_ALPHANUMERIC.sub("", str(raw or "").lower())
    if not key:
        return ShippingClass.STANDARD
    try:
        return ShippingClass(key)
    except ValueError:
        return _CLASS_ALIASES.get(key, ShippingClass.STANDARD)


@dataclass(frozen=True)
class CartLine:
    """A cart or order line as received from checkout or stored on an order."""

    quantity: float
    product_id: str | None = None
    sku: str | None = None
    variant_sku: str | None = None

    @classmethod
    def from_dict(cls, data: dict) -> "CartLine":
        return cls(
            quantity=data.get("quantity", 1),
            product_id=data.get("product_id") or data.get("productId") or data.get("id"),
            sku=data.get("sku"),
            variant_sku=data.get("variant_sku") or data.get("variantSku"),
        )


@dataclass(frozen=True)
class ResolvedLine:
    quantity: int
    weight: float
    dimensions: tuple[float, float, float]
    shipping_class: ShippingClass
    ships_alone: bool = False
    found: bool = True
    reference: str | None = None


ProductFinder = Callable[[str | None, str | None], Product | None]


def find_product(product_id: str | None, sku: str | None) -> Product | None:
    """Look a product up by id, then by SKU, in the active domain's repository."""
    repo = current_domain.repository_for(Product)
    if product_id:
        try:
            return repo.get(product_id)
        except ObjectNotFoundError:
            pass
    if sku:
        matches = repo._dao.query.filter(sku=sku).all().items
        if matches:
            return matches[0]
    return None


def _line_quantity(value) -> int:
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return 0
    if not math.isfinite(quantity) or quantity <= 0:
        return 0
    return max(1, int(quantity))


class PhysicalAttributesResolver:
    def __init__(self, defaults: PackagingDefaults | None = None, finder: ProductFinder | None = None):
        self.defaults = defaults or PackagingDefaults()
        self.finder = finder or find_product

    def resolve(self, line: CartLine) -> ResolvedLine:
        reference = line.variant_sku or line.sku or line.product_id
        quantity = _line_quantity(line.quantity)

        product = None
        try:
            product = self.finder(line.product_id, line.sku)
        except Exception as exc:
            logger.warning("Product lookup failed, using defaults", reference=reference, error=str(exc))

        if product is None:
            logger.info("Product not found, using packaging defaults", reference=reference)
            return ResolvedLine(
                quantity=quantity,
                weight=self.defaults.default_weight_lb,
                dimensions=self.defaults.default_dims,
                shipping_class=ShippingClass.STANDARD,
                found=False,
                reference=reference,
            )

        variant = product.find_variant(line.variant_sku)
        weight = variant.shipping_weight if variant is not None and variant.shipping_weight else None
        if not weight:
            weight = product.shipping_weight
        if not weight or weight <= 0:
            weight = self.defaults.default_weight_lb

        dimensions = None
        if variant is not None:
            dimensions = parse_box_dimensions(variant.box_dimensions)
        if dimensions is None:
            dimensions = parse_box_dimensions(product.box_dimensions)
        if dimensions is None:
            dimensions = self.defaults.default_dims

        return ResolvedLine(
            quantity=quantity,
            weight=float(weight),
            dimensions=dimensions,
            shipping_class=normalize_shipping_class(product.shipping_class),
            ships_alone=bool(product.ships_alone),
            found=True,
            reference=reference or product.sku,
        )

    def resolve_all(self, lines: list[CartLine]) -> list[ResolvedLine]:
        return [self.resolve(line) for line in lines]
