"""Fake carrier adapters: deterministic rate, label and shipment lookups for tests and development."""

from uuid import uuid4

from storefront.shipping.carrier.port import CarrierError, RateApiPort, ShipmentLookupPort


class FakeRateApi(RateApiPort):
    """Returns canned rates; records every request for assertions."""

    def __init__(self):
        self.requests: list[dict] = []
        self.labels: list[dict] = []
        self.label_requests: list[dict] = []
        self.rates: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"

    def configure(
        self,
        should_succeed: bool = True,
        failure_reason: str = "Carrier unavailable",
        rates: list[dict] | None = None,
    ):
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason
        if rates is not None:
            self.rates = list(rates)

    def estimate_rates(self, payload: dict) -> list[dict]:
        self.requests.append(payload)
        if not self.should_succeed:
            raise CarrierError(self.failure_reason, status_code=503)
        return list(self.rates)

    def create_label(self, payload: dict) -> dict:
        self.label_requests.append(payload)
        if not self.should_succeed:
            raise CarrierError(self.failure_reason, status_code=503)

        label_id = f"se-{uuid4().hex[:10]}"
        label = {
            "label_id": label_id,
            "tracking_number": f"FAKE{uuid4().hex[:12].upper()}",
            "carrier_code": payload.get("carrier_code") or "fake_carrier",
            "service_code": payload.get("service_code") or "fake_ground",
            "label_url": f"https://labels.example.com/{label_id}.pdf",
            "shipment_cost": {"amount": 9.95, "currency": "usd"},
        }
        self.labels.append(label)
        return label

    def reset(self):
        self.requests.clear()
        self.labels.clear()
        self.label_requests.clear()
        self.rates.clear()
        self.should_succeed = True
        self.failure_reason = "Carrier unavailable"


class FakeShipmentLookup(ShipmentLookupPort):
    """Serves shipments registered against a resource URL."""

    def __init__(self):
        self.shipments: dict[str, dict] = {}
        self.fetched: list[str] = []
        self.should_succeed = True
        self.failure_reason = "ShipStation unavailable"

    def configure(self, should_succeed: bool = True, failure_reason: str = "ShipStation unavailable"):
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def register(self, resource_url: str, shipment: dict) -> None:
        self.shipments[resource_url] = shipment

    def fetch_shipment(self, resource_url: str) -> dict:
        self.fetched.append(resource_url)
        if not self.should_succeed:
            raise CarrierError(self.failure_reason, status_code=503)
        if resource_url not in self.shipments:
            raise CarrierError("No shipment found at resource URL", status_code=404)
        return self.shipments[resource_url]

    def reset(self):
        self.shipments.clear()
        self.fetched.clear()
        self.should_succeed = True
        self.failure_reason = "ShipStation unavailable"
