"""ShipStation shipment lookup over httpx (Basic auth)."""

import httpx
import structlog

from storefront.config import ShipStationConfig
from storefront.shipping.carrier.port import CarrierError, ShipmentLookupPort

logger = structlog.get_logger(__name__)


class ShipStationShipmentLookup(ShipmentLookupPort):
    def __init__(self, config: ShipStationConfig, transport: httpx.BaseTransport | None = None):
        if not config.api_key or not config.api_secret:
            raise ValueError("SHIPSTATION_API_KEY and SHIPSTATION_API_SECRET must be configured")
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            auth=(config.api_key, config.api_secret),
            headers={"Accept": "application/json"},
            timeout=config.timeout,
            transport=transport,
        )

    def fetch_shipment(self, resource_url: str) -> dict:
        try:
            response = self._client.get(resource_url)
        except httpx.RequestError as exc:
            logger.warning("ShipStation request failed", resource_url=resource_url, error=str(exc))
            raise CarrierError(f"ShipStation request failed: {exc}") from exc

        if response.status_code >= 300:
            raise CarrierError(f"ShipStation error {response.status_code}", status_code=response.status_code)

        try:
            data = response.json()
        except ValueError as exc:
            raise CarrierError("ShipStation returned invalid JSON", status_code=response.status_code) from exc

        if isinstance(data, dict) and isinstance(data.get("shipments"), list):
            shipments = data["shipments"]
        elif isinstance(data, list):
            shipments = data
        elif isinstance(data, dict) and data:
            shipments = [data]
        else:
            shipments = []

        if not shipments:
            raise CarrierError("No shipment found at resource URL", status_code=404)
        return shipments[0]

    def close(self) -> None:
        self._client.close()
