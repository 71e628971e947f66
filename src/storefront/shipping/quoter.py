"""Rate quoting strategies.

``FormulaQuoter`` prices a package plan from a static ground-rate table and is
used inline at checkout because it can never fail. ``LiveRateQuoter`` asks the
carrier rate API and picks the cheapest rate; any failure there degrades to an
empty, still-successful result so callers can fall back to the formula.
``quote_cart`` puts the two together for a cart and a destination address.
"""

import math
import re
from dataclasses import dataclass, field

import structlog
from protean.exceptions import ValidationError

from storefront.catalogue.attributes import CartLine, PhysicalAttributesResolver
from storefront.config import CarrierConfig, RateFormulaConfig, ShipFrom, StorefrontConfig, get_config
from storefront.shipping.carrier import get_rate_api
from storefront.shipping.carrier.port import CarrierError, RateApiPort
from storefront.shipping.planner import PackagePlan, plan_cart

logger = structlog.get_logger(__name__)

MAX_CARRIER_IDS = 10

_CARRIER_ID_SHAPE = re.compile(r"^(se-|car_)|^[0-9a-f-]{16,}$", re.IGNORECASE)
_ID_SEPARATORS = re.compile(r"[\s,]+")

# Default ShipEngine accounts, used only when nothing else is configured
FALLBACK_CARRIERS = (
    ("se-3809552", "USPS (Stamps.com)"),
    ("se-3809716", "DHL Express"),
    ("se-3809553", "UPS"),
    ("se-3809712", "SEKO LTL"),
    ("se-3809554", "FedEx"),
    ("se-3809713", "GlobalPost"),
)


@dataclass(frozen=True)
class ShippingQuote:
    amount_cents: int
    label: str
    min_days: int | None = None
    max_days: int | None = None
    freight: bool = False
    requires_shipping: bool = True

    def as_dict(self) -> dict:
        return {
            "amount_cents": self.amount_cents,
            "label": self.label,
            "min_days": self.min_days,
            "max_days": self.max_days,
            "freight": self.freight,
            "requires_shipping": self.requires_shipping,
        }


@dataclass(frozen=True)
class Rate:
    carrier: str
    carrier_id: str | None
    service_code: str | None
    service_name: str | None
    amount_cents: int
    currency: str
    delivery_days: int | None = None
    estimated_delivery_date: str | None = None
    rate_id: str | None = None


@dataclass(frozen=True)
class RateQuoteResult:
    success: bool = True
    rates: tuple[Rate, ...] = field(default_factory=tuple)
    carrier_ids: tuple[str, ...] = field(default_factory=tuple)

    @property
    def best_rate(self) -> Rate | None:
        return self.rates[0] if self.rates else None


class FormulaQuoter:
    def __init__(self, config: RateFormulaConfig | None = None):
        self.config = config or RateFormulaConfig()

    def quote(self, plan: PackagePlan) -> ShippingQuote:
        config = self.config

        if not plan.requires_shipping:
            return ShippingQuote(amount_cents=0, label="No Shipping Required", requires_shipping=False)

        if plan.freight:
            amount = max(config.freight_base_cents, plan.chargeable_weight * config.freight_per_lb_cents)
            return ShippingQuote(
                amount_cents=int(round(amount)),
                label="Freight Shipping",
                min_days=5,
                max_days=10,
                freight=True,
            )

        if plan.chargeable_weight <= 0:
            return ShippingQuote(amount_cents=0, label="Free Shipping", min_days=3, max_days=5)

        extra_weight = max(0.0, plan.chargeable_weight - config.ground_base_weight_lb)
        amount = config.ground_base_cents + extra_weight * config.ground_per_lb_cents
        if plan.oversize:
            amount += config.oversize_surcharge_cents
        if plan.hazardous:
            amount += config.hazmat_surcharge_cents

        return ShippingQuote(amount_cents=int(round(amount)), label="Ground Shipping", min_days=3, max_days=5)


def looks_like_carrier_id(value: str) -> bool:
    return bool(value) and bool(_CARRIER_ID_SHAPE.search(value.strip()))


def parse_carrier_ids(raw) -> list[str]:
    if not raw:
        return []
    if isinstance(raw, str):
        parts = _ID_SEPARATORS.split(raw)
    else:
        parts = [str(item) for item in raw]
    return [part.strip() for part in parts if part and part.strip()]


def _clean(ids: list[str]) -> list[str]:
    seen: list[str] = []
    for carrier_id in ids:
        if carrier_id not in seen and looks_like_carrier_id(carrier_id):
            seen.append(carrier_id)
    return seen


def resolve_carrier_ids(supplied=None, config: CarrierConfig | None = None) -> list[str]:
    """Pick the carrier-id allowlist: supplied ids, then the env list, then the env id, then fallbacks."""
    config = config or CarrierConfig()
    tiers = (
        parse_carrier_ids(supplied),
        parse_carrier_ids(config.carrier_ids),
        parse_carrier_ids(config.carrier_id),
    )
    for tier in tiers:
        ids = _clean(tier)
        if ids:
            return ids[:MAX_CARRIER_IDS]

    fallback = [carrier_id for carrier_id, label in FALLBACK_CARRIERS if "usps" not in label.lower()]
    return _clean(fallback)[:MAX_CARRIER_IDS]


def _amount_cents(amount) -> int | None:
    if isinstance(amount, dict):
        amount = amount.get("amount")
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value):
        return None
    return int(round(value * 100))


def normalize_rate(raw: dict) -> Rate | None:
    """Normalize one carrier rate; returns None when it has no usable amount."""
    shipping_amount = raw.get("shipping_amount") or {}
    amount_cents = _amount_cents(shipping_amount)
    if amount_cents is None:
        return None

    # Estimates split the charge into shipping plus surcharges
    for extra in ("insurance_amount", "confirmation_amount", "other_amount"):
        extra_cents = _amount_cents(raw.get(extra))
        if extra_cents:
            amount_cents += extra_cents

    currency = (shipping_amount.get("currency") if isinstance(shipping_amount, dict) else None) or "usd"
    delivery_days = raw.get("delivery_days")
    return Rate(
        carrier=raw.get("carrier_friendly_name") or raw.get("carrier_nickname") or raw.get("carrier_code") or "",
        carrier_id=raw.get("carrier_id"),
        service_code=raw.get("service_code"),
        service_name=raw.get("service_type") or raw.get("service_code"),
        amount_cents=amount_cents,
        currency=str(currency).upper(),
        delivery_days=int(delivery_days) if isinstance(delivery_days, int | float) else None,
        estimated_delivery_date=raw.get("estimated_delivery_date"),
        rate_id=raw.get("rate_id"),
    )


class LiveRateQuoter:
    def __init__(self, rate_api: RateApiPort, config: CarrierConfig | None = None):
        self.rate_api = rate_api
        self.config = config or CarrierConfig()

    def build_payload(self, plan: PackagePlan, ship_from: ShipFrom, ship_to: dict, carrier_ids: list[str]) -> dict:
        from_address = ship_from.as_payload()
        payload = {
            "carrier_ids": carrier_ids,
            "from_country_code": from_address.get("country_code", "US"),
            "from_postal_code": from_address.get("postal_code", ""),
            "from_city_locality": from_address.get("city_locality", ""),
            "from_state_province": from_address.get("state_province", ""),
            "to_country_code": ship_to.get("country_code") or ship_to.get("country") or "US",
            "to_postal_code": ship_to.get("postal_code", ""),
            "to_city_locality": ship_to.get("city_locality") or ship_to.get("city", ""),
            "to_state_province": ship_to.get("state_province") or ship_to.get("state", ""),
        }
        # Estimates take one weight/dimension pair: the plan total and the bulkiest box
        if plan.packages:
            bulkiest = max(plan.packages, key=lambda package: package.length * package.width * package.height)
            payload["weight"] = {"value": round(plan.total_weight, 2), "unit": "pound"}
            payload["dimensions"] = bulkiest.as_rate_payload()["dimensions"]
        return payload

    def quote(self, plan: PackagePlan, ship_from: ShipFrom, ship_to: dict, carrier_ids=None) -> RateQuoteResult:
        resolved_ids = resolve_carrier_ids(carrier_ids, self.config)
        payload = self.build_payload(plan, ship_from, ship_to, resolved_ids)

        try:
            raw_rates = self.rate_api.estimate_rates(payload)
        except CarrierError as exc:
            logger.warning(
                "Rate estimate unavailable",
                error=str(exc),
                status_code=exc.status_code,
                carrier_ids=resolved_ids,
            )
            return RateQuoteResult(success=True, rates=(), carrier_ids=tuple(resolved_ids))

        rates = [rate for rate in (normalize_rate(raw) for raw in raw_rates or []) if rate is not None]
        rates.sort(key=lambda rate: rate.amount_cents)

        if not rates:
            logger.info("No carrier rates returned", carrier_ids=resolved_ids)

        return RateQuoteResult(success=True, rates=tuple(rates), carrier_ids=tuple(resolved_ids))


# Destination fields a parcel rate request cannot do without
REQUIRED_DESTINATION_FIELDS = ("address_line1", "city", "state", "postal_code")


@dataclass(frozen=True)
class CartQuote:
    plan: PackagePlan
    result: RateQuoteResult = field(default_factory=RateQuoteResult)
    fallback: ShippingQuote | None = None
    message: str | None = None

    @property
    def install_only(self) -> bool:
        return self.plan.install_only_cart

    @property
    def freight(self) -> bool:
        return self.plan.freight and not self.plan.install_only_cart


def _missing_destination_fields(ship_to: dict) -> list[str]:
    return [name for name in REQUIRED_DESTINATION_FIELDS if not str(ship_to.get(name) or "").strip()]


def quote_cart(
    cart: list[CartLine],
    ship_to: dict,
    rate_api: RateApiPort | None = None,
    config: StorefrontConfig | None = None,
    carrier_ids=None,
) -> CartQuote:
    """Quote a cart for a full destination address.

    Install-only carts and freight plans never reach the carrier. Otherwise the
    live rates are returned, and the formula quote stands in when none come back.
    Raises ``ValidationError`` for an empty cart or an incomplete destination.
    """
    if not cart:
        raise ValidationError({"items": ["Missing cart"]})
    missing = _missing_destination_fields(ship_to or {})
    if missing:
        raise ValidationError({"ship_to": [f"Missing destination.{name}" for name in missing]})

    config = config or get_config()
    plan = plan_cart(cart, PhysicalAttributesResolver(config.packaging), config.thresholds)
    formula = FormulaQuoter(config.rates)

    if plan.install_only_cart:
        return CartQuote(
            plan=plan,
            fallback=formula.quote(plan),
            message="Selected products are install-only and do not require shipping.",
        )

    if plan.freight:
        logger.info("Freight cart, skipping live rates", total_weight=plan.total_weight)
        return CartQuote(
            plan=plan,
            fallback=formula.quote(plan),
            message="Freight required due to weight/dimensions or product class.",
        )

    rate_api = rate_api or get_rate_api()
    result = LiveRateQuoter(rate_api, config.carrier).quote(plan, config.ship_from, ship_to, carrier_ids)
    fallback = None if result.rates else formula.quote(plan)
    return CartQuote(plan=plan, result=result, fallback=fallback)
