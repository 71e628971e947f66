"""Carrier ports: abstract interfaces for the rate/label API and the shipment lookup API.

Domain code programs against these ports; adapters are swapped via
configuration (``RATE_API`` / ``SHIPMENT_LOOKUP``) or ``set_*`` in tests.
"""

from abc import ABC, abstractmethod


class CarrierError(Exception):
    """Raised by adapters when the remote carrier API fails or cannot be reached."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class RateApiPort(ABC):
    """Rate estimate and label purchase API (ShipEngine-style)."""

    @abstractmethod
    def estimate_rates(self, payload: dict) -> list[dict]:
        """Request rate estimates.

        Args:
            payload: dict with carrier_ids, from/to address fields, weight and dimensions

        Returns:
            list of raw rate dicts as returned by the carrier API

        Raises:
            CarrierError: on transport failure or a non-2xx response
        """
        ...

    @abstractmethod
    def create_label(self, payload: dict) -> dict:
        """Purchase a shipping label, either for a ``shipment`` or a quoted ``rate_id``.

        Returns:
            dict with keys: label_id, tracking_number, carrier_code, service_code,
            label_url, shipment_cost (optional)

        Raises:
            CarrierError: on transport failure or a non-2xx response
        """
        ...


class ShipmentLookupPort(ABC):
    """Fetches the shipment resource a ShipStation webhook points at."""

    @abstractmethod
    def fetch_shipment(self, resource_url: str) -> dict:
        """Return the first shipment found at ``resource_url``.

        Raises:
            CarrierError: on transport failure, a non-2xx response, or no shipment
        """
        ...
