"""Explicit configuration for the fulfillment engine.

Every tunable threshold and credential lives on a frozen dataclass that is
handed to the component that needs it. ``from_env`` builds each one from the
process environment; tests construct them directly.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass, field


def _float(environ: Mapping[str, str], key: str, default: float, allow_zero: bool = False) -> float:
    raw = (environ.get(key) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value > 0 or (allow_zero and value == 0):
        return value
    return default


def _int(environ: Mapping[str, str], key: str, default: int) -> int:
    return int(round(_float(environ, key, default, allow_zero=True)))


def _str(environ: Mapping[str, str], key: str, default: str = "") -> str:
    return (environ.get(key) or default).strip()


@dataclass(frozen=True)
class PackagingDefaults:
    """Fallback physical attributes and the dimensional-weight divisor."""

    dim_divisor: float = 139.0
    default_weight_lb: float = 2.0
    default_length: float = 12.0
    default_width: float = 9.0
    default_height: float = 3.0

    @property
    def default_dims(self) -> tuple[float, float, float]:
        return (self.default_length, self.default_width, self.default_height)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "PackagingDefaults":
        return cls(
            dim_divisor=_float(environ, "DIM_DIVISOR", cls.dim_divisor),
            default_weight_lb=_float(environ, "DEFAULT_BOX_WEIGHT_LB", cls.default_weight_lb),
            default_length=_float(environ, "DEFAULT_BOX_LENGTH", cls.default_length),
            default_width=_float(environ, "DEFAULT_BOX_WIDTH", cls.default_width),
            default_height=_float(environ, "DEFAULT_BOX_HEIGHT", cls.default_height),
        )


@dataclass(frozen=True)
class FreightThresholds:
    freight_dimension_in: float = 60.0
    oversize_dimension_in: float = 40.0
    single_piece_limit_lb: float = 70.0
    freight_weight_lb: float = 150.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "FreightThresholds":
        return cls(
            freight_dimension_in=_float(environ, "FREIGHT_DIMENSION_IN", cls.freight_dimension_in),
            oversize_dimension_in=_float(environ, "OVERSIZE_DIMENSION_IN", cls.oversize_dimension_in),
            single_piece_limit_lb=_float(environ, "SINGLE_PIECE_LIMIT_LB", cls.single_piece_limit_lb),
            freight_weight_lb=_float(environ, "FREIGHT_WEIGHT_THRESHOLD_LB", cls.freight_weight_lb),
        )


@dataclass(frozen=True)
class RateFormulaConfig:
    """Ground-rate table used by the formula quoter. All amounts are cents."""

    ground_base_cents: int = 995
    ground_base_weight_lb: float = 5.0
    ground_per_lb_cents: int = 75
    oversize_surcharge_cents: int = 2500
    hazmat_surcharge_cents: int = 1500
    freight_base_cents: int = 19900
    freight_per_lb_cents: int = 45

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "RateFormulaConfig":
        return cls(
            ground_base_cents=_int(environ, "GROUND_BASE_CENTS", cls.ground_base_cents),
            ground_base_weight_lb=_float(environ, "GROUND_BASE_WEIGHT_LB", cls.ground_base_weight_lb),
            ground_per_lb_cents=_int(environ, "GROUND_PER_LB_CENTS", cls.ground_per_lb_cents),
            oversize_surcharge_cents=_int(environ, "OVERSIZE_SURCHARGE_CENTS", cls.oversize_surcharge_cents),
            hazmat_surcharge_cents=_int(environ, "HAZMAT_SURCHARGE_CENTS", cls.hazmat_surcharge_cents),
            freight_base_cents=_int(environ, "FREIGHT_BASE_CENTS", cls.freight_base_cents),
            freight_per_lb_cents=_int(environ, "FREIGHT_PER_LB_CENTS", cls.freight_per_lb_cents),
        )


@dataclass(frozen=True)
class CarrierConfig:
    """Rate/label API credentials and the carrier-id allowlist sources."""

    api_key: str = ""
    base_url: str = "https://api.shipengine.com"
    carrier_ids: str = ""
    carrier_id: str = ""
    timeout: float = 10.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "CarrierConfig":
        return cls(
            api_key=_str(environ, "SHIPENGINE_API_KEY"),
            base_url=_str(environ, "SHIPENGINE_BASE_URL", cls.base_url).rstrip("/"),
            carrier_ids=_str(environ, "SHIPENGINE_CARRIER_IDS") or _str(environ, "DEFAULT_SHIPENGINE_CARRIER_IDS"),
            carrier_id=_str(environ, "SHIPENGINE_CARRIER_ID") or _str(environ, "DEFAULT_SHIPENGINE_CARRIER_ID"),
            timeout=_float(environ, "SHIPENGINE_TIMEOUT_SECONDS", cls.timeout),
        )


@dataclass(frozen=True)
class ShipFrom:
    """Origin address for rate estimates and labels."""

    name: str = "Storefront Warehouse"
    phone: str = ""
    company_name: str = ""
    address_line1: str = ""
    address_line2: str = ""
    city_locality: str = ""
    state_province: str = ""
    postal_code: str = ""
    country_code: str = "US"

    def as_payload(self) -> dict:
        payload = {
            "name": self.name,
            "phone": self.phone,
            "company_name": self.company_name,
            "address_line1": self.address_line1,
            "address_line2": self.address_line2,
            "city_locality": self.city_locality,
            "state_province": self.state_province,
            "postal_code": self.postal_code,
            "country_code": self.country_code,
        }
        return {key: value for key, value in payload.items() if value}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "ShipFrom":
        return cls(
            name=_str(environ, "ORIGIN_NAME", cls.name),
            phone=_str(environ, "ORIGIN_PHONE"),
            company_name=_str(environ, "ORIGIN_COMPANY"),
            address_line1=_str(environ, "ORIGIN_ADDRESS1"),
            address_line2=_str(environ, "ORIGIN_ADDRESS2"),
            city_locality=_str(environ, "ORIGIN_CITY"),
            state_province=_str(environ, "ORIGIN_STATE"),
            postal_code=_str(environ, "ORIGIN_POSTAL"),
            country_code=_str(environ, "ORIGIN_COUNTRY", cls.country_code),
        )


@dataclass(frozen=True)
class ShipStationConfig:
    api_key: str = ""
    api_secret: str = ""
    webhook_secret: str = ""
    base_url: str = "https://ssapi.shipstation.com"
    timeout: float = 10.0

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "ShipStationConfig":
        return cls(
            api_key=_str(environ, "SHIPSTATION_API_KEY"),
            api_secret=_str(environ, "SHIPSTATION_API_SECRET"),
            webhook_secret=_str(environ, "SHIPSTATION_WEBHOOK_SECRET"),
            base_url=_str(environ, "SHIPSTATION_BASE_URL", cls.base_url).rstrip("/"),
            timeout=_float(environ, "SHIPSTATION_TIMEOUT_SECONDS", cls.timeout),
        )


@dataclass(frozen=True)
class SweeperConfig:
    reservation_ttl_hours: int = 24

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "SweeperConfig":
        return cls(reservation_ttl_hours=_int(environ, "RESERVATION_TTL_HOURS", cls.reservation_ttl_hours))


@dataclass(frozen=True)
class AdminConfig:
    """Shared token guarding admin and maintenance endpoints. Empty disables the check."""

    api_token: str = ""

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "AdminConfig":
        return cls(api_token=_str(environ, "ADMIN_API_TOKEN"))


@dataclass(frozen=True)
class StorefrontConfig:
    packaging: PackagingDefaults = field(default_factory=PackagingDefaults)
    thresholds: FreightThresholds = field(default_factory=FreightThresholds)
    rates: RateFormulaConfig = field(default_factory=RateFormulaConfig)
    carrier: CarrierConfig = field(default_factory=CarrierConfig)
    ship_from: ShipFrom = field(default_factory=ShipFrom)
    shipstation: ShipStationConfig = field(default_factory=ShipStationConfig)
    sweepers: SweeperConfig = field(default_factory=SweeperConfig)
    admin: AdminConfig = field(default_factory=AdminConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "StorefrontConfig":
        return cls(
            packaging=PackagingDefaults.from_env(environ),
            thresholds=FreightThresholds.from_env(environ),
            rates=RateFormulaConfig.from_env(environ),
            carrier=CarrierConfig.from_env(environ),
            ship_from=ShipFrom.from_env(environ),
            shipstation=ShipStationConfig.from_env(environ),
            sweepers=SweeperConfig.from_env(environ),
            admin=AdminConfig.from_env(environ),
        )


_config: StorefrontConfig | None = None


def get_config() -> StorefrontConfig:
    """Return the process-wide configuration, loading it from the environment once."""
    global _config
    if _config is None:
        _config = StorefrontConfig.from_env()
    return _config


def set_config(config: StorefrontConfig) -> None:
    """Override the active configuration (useful for tests)."""
    global _config
    _config = config


def reset_config() -> None:
    global _config
    _config = None
