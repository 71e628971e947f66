"""Carrier tracking updates, keyed by tracking number."""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.lifecycle import map_tracking_status
from storefront.ordering.order import Order, find_order_by

logger = structlog.get_logger(__name__)


def tracking_events_from_details(details) -> list[dict]:
    """Flatten the carrier's ``tracking_details`` list into order tracking events."""
    events = []
    for detail in details if isinstance(details, list) else []:
        if not isinstance(detail, dict):
            continue
        location = detail.get("tracking_location") or {}
        events.append(
            {
                "status": detail.get("status"),
                "status_detail": detail.get("status_detail"),
                "message": detail.get("message"),
                "city": location.get("city"),
                "state": location.get("state"),
                "zip": location.get("zip"),
                "country": location.get("country"),
                "occurred_at": detail.get("datetime"),
            }
        )
    return events


@storefront.command(part_of="Order")
class RecordTrackingUpdate:
    tracking_number = String(required=True, max_length=255)
    status = String(max_length=50)
    status_detail = String(max_length=255)
    estimated_delivery = String(max_length=50)
    events = Text(sanitize=False)  # JSON: list of tracking event dicts
    source = String(max_length=50, default="carrier")


@storefront.command_handler(part_of=Order)
class RecordTrackingUpdateHandler:
    @handle(RecordTrackingUpdate)
    def record_tracking_update(self, command):
        order = find_order_by(tracking_number=command.tracking_number)
        if order is None:
            logger.info("No order for tracking number", tracking_number=command.tracking_number)
            return {"status": "pending", "reason": "Order not found"}

        fulfillment_status = map_tracking_status(command.status)
        order.record_tracking(
            fulfillment_status,
            status_detail=command.status_detail,
            estimated_delivery=command.estimated_delivery,
            events=json.loads(command.events) if command.events else None,
            source=command.source or "carrier",
        )
        current_domain.repository_for(Order).add(order)

        logger.info(
            "Tracking update recorded",
            order_id=str(order.id),
            tracking_number=command.tracking_number,
            fulfillment_status=fulfillment_status.value,
        )
        return {"status": "ok", "order_id": str(order.id), "fulfillment_status": fulfillment_status.value}


def tracking_command_from_payload(payload: dict) -> RecordTrackingUpdate | None:
    """Build the command from a tracker webhook body; the tracker may be wrapped in ``result``."""
    tracker = payload.get("result") if isinstance(payload.get("result"), dict) else payload
    tracking_number = tracker.get("tracking_code") or tracker.get("tracking_number")
    if not tracking_number:
        return None
    events = tracking_events_from_details(tracker.get("tracking_details"))
    return RecordTrackingUpdate(
        tracking_number=str(tracking_number),
        status=tracker.get("status"),
        status_detail=tracker.get("status_detail"),
        estimated_delivery=tracker.get("est_delivery_date"),
        events=json.dumps(events) if events else None,
        source=tracker.get("source") or "easypost",
    )
