"""Application tests for ShipStation shipment notifications."""

import json

import pytest
from protean import current_domain

from storefront.ordering.lifecycle import FulfillmentStatus
from storefront.ordering.order import Order
from storefront.reconciliation.shipstation import ReconcileShipStationEvent
from storefront.reconciliation.tracking import RecordTrackingUpdate
from storefront.shipping.carrier import get_shipment_lookup
from storefront.shipping.carrier.port import CarrierError

RESOURCE_URL = "https://ssapi.shipstation.com/shipments?batchId=42"


def _create_order(order_number=None):
    order = Order.place(
        [{"product_id": "prod-1", "sku": "LIFT-KIT-4IN", "quantity": 1, "price": 199.0}],
        order_number=order_number,
        stripe_session_id="cs_test_ship",
    )
    current_domain.repository_for(Order).add(order)
    return order


def _shipment(**overrides):
    shipment = {
        "shipmentId": 987654,
        "orderId": 123456,
        "carrierCode": "ups",
        "carrierFriendlyName": "UPS",
        "serviceName": "UPS Ground",
        "trackingNumber": "1Z999AA10123456784",
        "shipmentCost": {"amount": 14.25, "currency": "USD"},
        "weight": {"value": 32, "units": "ounces"},
    }
    shipment.update(overrides)
    return shipment


def _reconcile(payload):
    return current_domain.process(ReconcileShipStationEvent(body=json.dumps(payload)), asynchronous=False)


class TestReconcileShipment:
    def test_order_found_by_custom_field(self):
        order = _create_order()
        get_shipment_lookup().register(RESOURCE_URL, _shipment(advancedOptions={"customField1": str(order.id)}))

        result = _reconcile({"resource_url": RESOURCE_URL, "resource_type": "SHIP_NOTIFY"})

        assert result["status"] == "ok"
        assert result["order_id"] == str(order.id)
        assert result["shipment_id"] == "987654"
        assert "tracking_number" in result["patched"]

        order = current_domain.repository_for(Order).get(str(order.id))
        assert order.shipping_carrier == "UPS"
        assert order.tracking_number == "1Z999AA10123456784"
        assert order.service_amount == 14.25
        assert order.weight_unit == "ounces"
        assert order.fulfillment_status == FulfillmentStatus.LABEL_CREATED.value
        assert order.shipping_log[0].message == "ShipStation label created (UPS, UPS Ground)"

    def test_order_found_by_number_when_custom_field_is_stale(self):
        order = _create_order(order_number="ORD-20240309-ABC123")
        get_shipment_lookup().register(
            "/shipments/987654",
            _shipment(orderNumber="ORD-20240309-ABC123", advancedOptions={"customField1": "not-an-order"}),
        )

        result = _reconcile({"shipmentId": 987654})

        assert result["status"] == "ok"
        assert result["order_id"] == str(order.id)

    def test_unknown_order_is_pending(self):
        get_shipment_lookup().register(RESOURCE_URL, _shipment(orderNumber="ORD-NOPE"))

        result = _reconcile({"resource_url": RESOURCE_URL})

        assert result["status"] == "pending"

    def test_payload_without_resource_is_ignored(self):
        result = _reconcile({"resource_type": "SHIP_NOTIFY"})

        assert result["status"] == "ignored"
        assert get_shipment_lookup().fetched == []

    def test_lookup_failure_propagates(self):
        get_shipment_lookup().configure(should_succeed=False)

        with pytest.raises(CarrierError):
            _reconcile({"resource_url": RESOURCE_URL})


class TestNotificationOrdering:
    def _tracked_order(self):
        order = _create_order()
        get_shipment_lookup().register(RESOURCE_URL, _shipment(advancedOptions={"customField1": str(order.id)}))
        return str(order.id)

    def test_late_notification_keeps_carrier_progress(self):
        order_id = self._tracked_order()
        _reconcile({"resource_url": RESOURCE_URL})
        current_domain.process(
            RecordTrackingUpdate(tracking_number="1Z999AA10123456784", status="in_transit"),
            asynchronous=False,
        )

        result = _reconcile({"resource_url": RESOURCE_URL})

        assert result["status"] == "ok"
        assert "fulfillment_status" not in result["patched"]
        order = current_domain.repository_for(Order).get(order_id)
        assert order.fulfillment_status == FulfillmentStatus.IN_TRANSIT.value
        assert len(order.shipping_log) == 2

    def test_unfulfilled_order_moves_to_label_created(self):
        order_id = self._tracked_order()
        order = current_domain.repository_for(Order).get(order_id)
        order.start_fulfillment()
        current_domain.repository_for(Order).add(order)

        result = _reconcile({"resource_url": RESOURCE_URL})

        assert "fulfillment_status" in result["patched"]
        order = current_domain.repository_for(Order).get(order_id)
        assert order.fulfillment_status == FulfillmentStatus.LABEL_CREATED.value
