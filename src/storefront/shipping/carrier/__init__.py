"""Carrier adapter registry: rate/label API and shipment lookup.

Fake adapters are used by default. Set ``RATE_API=shipengine`` and
``SHIPMENT_LOOKUP=shipstation`` to talk to the real services.
"""

import os

from storefront.config import get_config
from storefront.shipping.carrier.port import RateApiPort, ShipmentLookupPort

_rate_api: RateApiPort | None = None
_shipment_lookup: ShipmentLookupPort | None = None


def get_rate_api() -> RateApiPort:
    """Return the configured rate/label adapter (singleton)."""
    global _rate_api
    if _rate_api is None:
        adapter = os.environ.get("RATE_API", "fake")
        if adapter == "fake":
            from storefront.shipping.carrier.fake_adapter import FakeRateApi

            _rate_api = FakeRateApi()
        elif adapter == "shipengine":
            from storefront.shipping.carrier.shipengine_adapter import ShipEngineRateApi

            _rate_api = ShipEngineRateApi(get_config().carrier)
        else:
            raise ValueError(f"Unknown rate API adapter: {adapter}")
    return _rate_api


def get_shipment_lookup() -> ShipmentLookupPort:
    """Return the configured shipment lookup adapter (singleton)."""
    global _shipment_lookup
    if _shipment_lookup is None:
        adapter = os.environ.get("SHIPMENT_LOOKUP", "fake")
        if adapter == "fake":
            from storefront.shipping.carrier.fake_adapter import FakeShipmentLookup

            _shipment_lookup = FakeShipmentLookup()
        elif adapter == "shipstation":
            from storefront.shipping.carrier.shipstation_adapter import ShipStationShipmentLookup

            _shipment_lookup = ShipStationShipmentLookup(get_config().shipstation)
        else:
            raise ValueError(f"Unknown shipment lookup adapter: {adapter}")
    return _shipment_lookup


def set_rate_api(adapter: RateApiPort) -> None:
    global _rate_api
    _rate_api = adapter


def set_shipment_lookup(adapter: ShipmentLookupPort) -> None:
    global _shipment_lookup
    _shipment_lookup = adapter


def reset_carriers() -> None:
    """Reset the carrier singletons (useful for testing)."""
    global _rate_api, _shipment_lookup
    _rate_api = None
    _shipment_lookup = None
