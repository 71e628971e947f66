"""Package planner: turns resolved cart lines into shippable packages.

Packing is deliberately simple: one package per unit for ships-alone items
(and for items whose product record could not be found), otherwise one
package per line. Billable weight is the larger of actual and volumetric
weight. Classification flags are evaluated per line and OR-ed across the
cart, so a single freight line turns the whole shipment into freight.
"""

from dataclasses import dataclass, field

from storefront.catalogue.attributes import (
    CartLine,
    PhysicalAttributesResolver,
    ResolvedLine,
    ShippingClass,
)
from storefront.config import FreightThresholds, PackagingDefaults


@dataclass(frozen=True)
class Package:
    weight: float
    length: float
    width: float
    height: float
    chargeable: bool = True
    hazardous: bool = False
    reference: str | None = None

    @property
    def longest_side(self) -> float:
        return max(self.length, self.width, self.height)

    def as_rate_payload(self) -> dict:
        return {
            "weight": {"value": round(self.weight, 2), "unit": "pound"},
            "dimensions": {
                "unit": "inch",
                "length": self.length,
                "width": self.width,
                "height": self.height,
            },
        }


@dataclass(frozen=True)
class PackagePlan:
    packages: tuple[Package, ...] = ()
    total_weight: float = 0.0
    chargeable_weight: float = 0.0
    freight: bool = False
    oversize: bool = False
    install_only_count: int = 0
    unresolved: tuple[str, ...] = field(default_factory=tuple)

    @property
    def package_count(self) -> int:
        return len(self.packages)

    @property
    def hazardous(self) -> bool:
        return any(package.hazardous for package in self.packages)

    @property
    def requires_shipping(self) -> bool:
        return self.package_count > 0

    @property
    def install_only_cart(self) -> bool:
        return self.package_count == 0 and self.install_only_count > 0

    def summary(self) -> dict:
        return {
            "requires_shipping": self.requires_shipping,
            "install_only_cart": self.install_only_cart,
            "package_count": self.package_count,
            "total_weight": round(self.total_weight, 2),
            "chargeable_weight": round(self.chargeable_weight, 2),
            "freight": self.freight,
            "oversize": self.oversize,
            "hazardous": self.hazardous,
            "install_only_count": self.install_only_count,
        }


def billable_weight(weight: float, dimensions: tuple[float, float, float], dim_divisor: float) -> float:
    length, width, height = dimensions
    volumetric = (length * width * height) / dim_divisor
    return max(weight, volumetric)


def plan_packages(
    lines: list[ResolvedLine],
    defaults: PackagingDefaults | None = None,
    thresholds: FreightThresholds | None = None,
) -> PackagePlan:
    defaults = defaults or PackagingDefaults()
    thresholds = thresholds or FreightThresholds()

    packages: list[Package] = []
    install_only_count = 0
    freight = False
    oversize = False
    unresolved: list[str] = []

    for line in lines:
        if line.quantity <= 0:
            continue

        if line.shipping_class is ShippingClass.INSTALL_ONLY:
            install_only_count += line.quantity
            continue

        if not line.found and line.reference:
            unresolved.append(line.reference)

        unit_weight = billable_weight(line.weight, line.dimensions, defaults.dim_divisor)
        length, width, height = line.dimensions
        chargeable = line.shipping_class is not ShippingClass.FREE_SHIPPING
        hazardous = line.shipping_class is ShippingClass.HAZARDOUS

        if line.ships_alone or not line.found:
            line_packages = [
                Package(unit_weight, length, width, height, chargeable, hazardous, line.reference)
                for _ in range(line.quantity)
            ]
        else:
            line_packages = [
                Package(unit_weight * line.quantity, length, width, height, chargeable, hazardous, line.reference)
            ]

        longest_side = max(line.dimensions)
        line_weight = sum(package.weight for package in line_packages)
        heaviest_piece = max(package.weight for package in line_packages)

        if (
            line.shipping_class is ShippingClass.FREIGHT
            or longest_side >= thresholds.freight_dimension_in
            or heaviest_piece >= thresholds.single_piece_limit_lb
            or line_weight >= thresholds.freight_weight_lb
        ):
            freight = True

        if longest_side >= thresholds.oversize_dimension_in:
            oversize = True

        packages.extend(line_packages)

    return PackagePlan(
        packages=tuple(packages),
        total_weight=sum(package.weight for package in packages),
        chargeable_weight=sum(package.weight for package in packages if package.chargeable),
        freight=freight,
        oversize=oversize,
        install_only_count=install_only_count,
        unresolved=tuple(unresolved),
    )


def plan_cart(
    cart: list[CartLine],
    resolver: PhysicalAttributesResolver,
    thresholds: FreightThresholds | None = None,
) -> PackagePlan:
    """Resolve every cart line and plan the resulting packages."""
    return plan_packages(resolver.resolve_all(cart), resolver.defaults, thresholds)
