"""ShipEngine rate/label adapter over httpx."""

import httpx
import structlog

from storefront.config import CarrierConfig
from storefront.shipping.carrier.port import CarrierError, RateApiPort

logger = structlog.get_logger(__name__)


class ShipEngineRateApi(RateApiPort):
    def __init__(self, config: CarrierConfig, transport: httpx.BaseTransport | None = None):
        if not config.api_key:
            raise ValueError("SHIPENGINE_API_KEY is not configured")
        self.config = config
        self._client = httpx.Client(
            base_url=config.base_url,
            headers={"API-Key": config.api_key, "Content-Type": "application/json"},
            timeout=config.timeout,
            transport=transport,
        )

    def _post(self, path: str, payload: dict):
        try:
            response = self._client.post(path, json=payload)
        except httpx.RequestError as exc:
            logger.warning("ShipEngine request failed", path=path, error=str(exc))
            raise CarrierError(f"ShipEngine request failed: {exc}") from exc

        if response.status_code >= 300:
            logger.warning(
                "ShipEngine returned an error",
                path=path,
                status_code=response.status_code,
                body=response.text[:500],
            )
            raise CarrierError(f"ShipEngine error {response.status_code}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as exc:
            raise CarrierError("ShipEngine returned invalid JSON", status_code=response.status_code) from exc

    def estimate_rates(self, payload: dict) -> list[dict]:
        data = self._post("/v1/rates/estimate", payload)
        # The estimate endpoint answers with a bare list; the full rates endpoint nests it
        if isinstance(data, list):
            return data
        if isinstance(data, dict):
            rates = (data.get("rate_response") or {}).get("rates") or data.get("rates") or []
            return list(rates)
        return []

    def create_label(self, payload: dict) -> dict:
        payload = dict(payload)
        rate_id = payload.pop("rate_id", None)
        payload.setdefault("label_download", {"format": "pdf", "size": "4x6", "display_scheme": "label"})
        # A quoted rate is bought through its own endpoint
        path = f"/v1/labels/rates/{rate_id}" if rate_id else "/v1/labels"
        data = self._post(path, payload)
        download = data.get("label_download") or {}
        return {
            "label_id": data.get("label_id"),
            "tracking_number": data.get("tracking_number"),
            "carrier_code": data.get("carrier_code") or (data.get("shipment") or {}).get("carrier_code"),
            "service_code": data.get("service_code"),
            "label_url": download.get("pdf") or download.get("href"),
            "shipment_cost": data.get("shipment_cost"),
        }

    def close(self) -> None:
        self._client.close()
