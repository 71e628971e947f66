"""ShipStation shipment webhook: attach carrier, label and tracking data to an order.

ShipStation only sends a pointer to the shipment (a resource URL or a
shipment id); the shipment itself is fetched through the lookup port. The
order is found by the id stored in ``advancedOptions.customField1`` when the
shipment was created from our order, else by order number.
"""

import json
import math
import re
from urllib.parse import quote_plus

import structlog
from protean import handle
from protean.exceptions import ObjectNotFoundError
from protean.fields import Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.order import Order, find_order_by
from storefront.shipping.carrier import get_shipment_lookup

logger = structlog.get_logger(__name__)

_RESOURCE_PREFIX = re.compile(r"^(shipments|orders|fulfillments)/", re.IGNORECASE)


def _text(value) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _number(value) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def normalize_resource_path(resource: str) -> str:
    """Absolute URLs and rooted paths pass through; bare ids become ``/shipments/<id>``."""
    resource = resource.strip()
    if re.match(r"^https?://", resource, re.IGNORECASE) or resource.startswith("/"):
        return resource
    if _RESOURCE_PREFIX.match(resource):
        return f"/{resource}"
    return f"/shipments/{resource}"


def resolve_resource_url(payload: dict) -> str | None:
    """Where to fetch the shipment from, or None when the payload names no resource."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    for candidate in (
        payload.get("resource_url"),
        payload.get("resourceUrl"),
        data.get("resource_url"),
        data.get("resourceUrl"),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return normalize_resource_path(candidate)

    for candidate in (
        payload.get("shipmentId"),
        payload.get("resource_id"),
        payload.get("resourceId"),
        data.get("shipmentId"),
        data.get("ShipmentID"),
        data.get("shipmentID"),
    ):
        shipment_id = _text(candidate)
        if shipment_id:
            return f"/shipments/{shipment_id}"
    return None


def extract_order_id(shipment: dict) -> str | None:
    return _text((shipment.get("advancedOptions") or {}).get("customField1"))


def extract_order_number(shipment: dict, payload: dict | None = None) -> str | None:
    payload = payload or {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    for candidate in (
        shipment.get("orderNumber"),
        shipment.get("orderKey"),
        payload.get("orderNumber"),
        data.get("orderNumber"),
    ):
        number = _text(candidate)
        if number:
            return number
    return None


def _label_url(shipment: dict) -> str | None:
    download = shipment.get("labelDownload") or {}
    for candidate in (download.get("pdf"), download.get("href"), download.get("url"), shipment.get("labelUrl")):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return None


def _tracking_url(shipment: dict) -> str | None:
    tracking_url = shipment.get("trackingUrl")
    if isinstance(tracking_url, str) and tracking_url.strip():
        return tracking_url.strip()
    tracking_number = _text(shipment.get("trackingNumber"))
    if tracking_number:
        return f"https://www.google.com/search?q={quote_plus(tracking_number)}"
    return None


def _weight(shipment: dict) -> tuple[float, str] | None:
    weight = shipment.get("weight") or {}
    value = _number(weight.get("value"))
    if value is None:
        return None
    unit = _text(weight.get("units")) or _text(weight.get("unit")) or "ounce"
    return value, unit


def build_order_patch(shipment: dict) -> dict:
    """Order fields derivable from the shipment; absent source data is simply left out."""
    patch = {}

    carrier = (
        _text(shipment.get("carrierFriendlyName"))
        or _text(shipment.get("carrierCode"))
        or _text(shipment.get("serviceName"))
    )
    if carrier:
        patch["shipping_carrier"] = carrier

    if _text(shipment.get("carrierCode")):
        patch["service_carrier"] = _text(shipment["carrierCode"])
    if _text(shipment.get("serviceName")):
        patch["service_name"] = _text(shipment["serviceName"])
    if _text(shipment.get("serviceCode")):
        patch["service_code"] = _text(shipment["serviceCode"])

    cost = shipment.get("shipmentCost") or {}
    amount = _number(cost.get("amount"))
    if amount is not None:
        patch["service_amount"] = amount
    if _text(cost.get("currency")):
        patch["service_currency"] = _text(cost["currency"])

    if _text(shipment.get("orderId")):
        patch["shipstation_order_id"] = _text(shipment["orderId"])
    if _text(shipment.get("shipmentId")):
        patch["shipstation_label_id"] = _text(shipment["shipmentId"])

    label_url = _label_url(shipment)
    if label_url:
        patch["label_url"] = label_url

    if _text(shipment.get("trackingNumber")):
        patch["tracking_number"] = _text(shipment["trackingNumber"])

    tracking_url = _tracking_url(shipment)
    if tracking_url:
        patch["tracking_url"] = tracking_url

    weight = _weight(shipment)
    if weight:
        patch["weight_value"], patch["weight_unit"] = weight

    return patch


def build_shipping_log_entry(shipment: dict) -> dict:
    carrier = _text(shipment.get("carrierFriendlyName")) or _text(shipment.get("carrierCode")) or "Carrier"
    service = _text(shipment.get("serviceName")) or _text(shipment.get("serviceCode"))
    label = f"{carrier}, {service}" if service else carrier
    message = f"ShipStation label created ({label})"

    entry = {"status": "Label Created", "message": message}
    if _text(shipment.get("trackingNumber")):
        entry["tracking_number"] = _text(shipment["trackingNumber"])
    tracking_url = _tracking_url(shipment)
    if tracking_url:
        entry["tracking_url"] = tracking_url
    label_url = _label_url(shipment)
    if label_url:
        entry["label_url"] = label_url
    weight = _weight(shipment)
    if weight:
        entry["weight_value"], entry["weight_unit"] = weight
    return entry


@storefront.command(part_of="Order")
class ReconcileShipStationEvent:
    body = Text(required=True, sanitize=False)  # JSON: the verified webhook body


@storefront.command_handler(part_of=Order)
class ReconcileShipStationEventHandler:
    @handle(ReconcileShipStationEvent)
    def reconcile_shipstation_event(self, command):
        payload = json.loads(command.body)

        resource_url = resolve_resource_url(payload)
        if not resource_url:
            logger.warning("ShipStation webhook missing resource reference", event=payload.get("resource_type"))
            return {"status": "ignored", "reason": "Missing resource reference"}

        shipment = get_shipment_lookup().fetch_shipment(resource_url) or {}
        order = self._resolve_order(shipment, payload)
        if order is None:
            logger.warning(
                "Unable to resolve order for ShipStation shipment",
                shipment_id=shipment.get("shipmentId"),
                order_number=extract_order_number(shipment, payload),
                resource_url=resource_url,
            )
            return {"status": "pending", "reason": "Order not found"}

        patched = order.apply_shipment_patch(build_order_patch(shipment), build_shipping_log_entry(shipment))
        current_domain.repository_for(Order).add(order)

        logger.info(
            "ShipStation webhook processed",
            order_id=str(order.id),
            shipment_id=shipment.get("shipmentId"),
            resource_url=resource_url,
        )
        return {
            "status": "ok",
            "order_id": str(order.id),
            "shipment_id": _text(shipment.get("shipmentId")),
            "resource_url": resource_url,
            "patched": patched,
        }

    def _resolve_order(self, shipment: dict, payload: dict) -> Order | None:
        order_id = extract_order_id(shipment)
        if order_id:
            try:
                return current_domain.repository_for(Order).get(order_id)
            except ObjectNotFoundError:
                logger.info("customField1 does not name a known order", order_id=order_id)

        return find_order_by(order_number=extract_order_number(shipment, payload))
