"""Tests for the order status lifecycle and carrier updates on the Order aggregate."""

from datetime import UTC, datetime

import pytest
from protean.exceptions import ValidationError

from storefront.ordering.events import OrderDelivered, OrderPaid, OrderPlaced, TrackingUpdated
from storefront.ordering.lifecycle import (
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    is_invalid_transition,
    map_tracking_status,
)
from storefront.ordering.order import Order, generate_order_number


def _order(status=OrderStatus.PENDING, **attributes):
    lines = [{"product_id": "prod-1", "sku": "LIFT-KIT-4IN", "name": "Lift Kit", "quantity": 2, "price": 199.0}]
    return Order.place(lines, status=status, stripe_session_id="cs_test_abc123XYZ", **attributes)


class TestTransitionGuard:
    def test_fulfilled_cannot_go_back_to_pending(self):
        assert is_invalid_transition("fulfilled", "pending")

    def test_pending_cannot_jump_to_fulfilled(self):
        assert is_invalid_transition(OrderStatus.PENDING, OrderStatus.FULFILLED)

    def test_terminal_statuses_accept_nothing_else(self):
        assert is_invalid_transition("cancelled", "processing")
        assert is_invalid_transition("refunded", "pending")

    def test_terminal_status_to_itself_is_allowed(self):
        assert not is_invalid_transition("cancelled", "cancelled")

    def test_anything_unlisted_is_allowed(self):
        assert not is_invalid_transition("pending", "paid")
        assert not is_invalid_transition("paid", "processing")
        assert not is_invalid_transition("processing", "pending")

    def test_no_current_status_allows_anything(self):
        assert not is_invalid_transition(None, "fulfilled")

    def test_comparison_ignores_case(self):
        assert is_invalid_transition(" Fulfilled ", "PENDING")


class TestTrackingStatusMap:
    @pytest.mark.parametrize(
        "code, expected",
        [
            ("pre_transit", FulfillmentStatus.LABEL_CREATED),
            ("in_transit", FulfillmentStatus.IN_TRANSIT),
            ("out_for_delivery", FulfillmentStatus.OUT_FOR_DELIVERY),
            ("delivered", FulfillmentStatus.DELIVERED),
            ("return_to_sender", FulfillmentStatus.RETURNED),
            ("failure", FulfillmentStatus.FAILED),
            ("unknown", FulfillmentStatus.EXCEPTION),
        ],
    )
    def test_known_codes(self, code, expected):
        assert map_tracking_status(code) is expected

    def test_unrecognised_code_is_exception(self):
        assert map_tracking_status("available_for_pickup") is FulfillmentStatus.EXCEPTION
        assert map_tracking_status(None) is FulfillmentStatus.EXCEPTION


class TestPlaceOrder:
    def test_place_captures_lines_and_number(self):
        order = _order()

        assert order.status == OrderStatus.PENDING.value
        assert order.payment_status == PaymentStatus.UNPAID.value
        assert len(order.cart) == 1
        assert order.order_number.endswith("123XYZ")
        assert order.ledger_items() == [{"product_id": "prod-1", "variant_sku": None, "quantity": 2}]

    def test_place_raises_order_placed(self):
        order = _order()
        assert any(isinstance(event, OrderPlaced) for event in order._events)

    def test_order_number_format(self):
        number = generate_order_number("cs_test_a1b2c3d4", datetime(2024, 3, 9, tzinfo=UTC))
        assert number == "ORD-20240309-B2C3D4"


class TestStatusChanges:
    def test_mark_paid(self):
        order = _order()
        order.mark_paid(payment_intent_id="pi_123", card_brand="visa", card_last4="4242")

        assert order.status == OrderStatus.PAID.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.payment_intent_id == "pi_123"
        assert order.is_paid
        assert any(isinstance(event, OrderPaid) for event in order._events)

    def test_forbidden_transition_raises(self):
        order = _order()
        with pytest.raises(ValidationError):
            order.transition_to(OrderStatus.FULFILLED)
        assert order.status == OrderStatus.PENDING.value

    def test_cancelled_order_cannot_be_paid(self):
        order = _order()
        order.cancel(PaymentStatus.CANCELED)

        with pytest.raises(ValidationError):
            order.mark_paid(payment_intent_id="pi_late")
        assert order.payment_status == PaymentStatus.CANCELED.value

    def test_same_status_is_a_no_op(self):
        order = _order()
        order.transition_to("pending")
        assert order.status == OrderStatus.PENDING.value


class TestCarrierUpdates:
    def test_shipment_patch_writes_present_fields_only(self):
        order = _order()
        patched = order.apply_shipment_patch(
            {"shipping_carrier": "UPS", "tracking_number": "1Z999", "label_url": None, "service_name": ""},
            {"status": "Label Created", "message": "ShipStation label created (UPS)"},
        )

        assert order.shipping_carrier == "UPS"
        assert order.tracking_number == "1Z999"
        assert order.label_url is None
        assert order.fulfillment_status == FulfillmentStatus.LABEL_CREATED.value
        assert "shipping_carrier" in patched
        assert "service_name" not in patched
        assert len(order.shipping_log) == 1

    def test_shipment_patch_keeps_delivered_status(self):
        order = _order()
        order.confirm_delivery()
        order.apply_shipment_patch({"tracking_number": "1Z999"})
        assert order.fulfillment_status == FulfillmentStatus.DELIVERED.value

    def test_record_label(self):
        order = _order()
        shipment = order.record_label(
            {
                "label_id": "se-1",
                "carrier_code": "ups",
                "tracking_number": "1Z1",
                "label_url": "https://labels.example.com/se-1.pdf",
                "shipment_cost": {"amount": 12.5, "currency": "usd"},
            }
        )

        assert shipment.currency == "USD"
        assert order.tracking_number == "1Z1"
        assert len(order.shipments) == 1

    def test_tracking_update_appends_events(self):
        order = _order()
        order.record_tracking(
            FulfillmentStatus.IN_TRANSIT,
            status_detail="arrived_at_facility",
            estimated_delivery="2024-03-12",
            events=[
                {"status": "pre_transit", "message": "Label created"},
                {"status": "in_transit", "message": "Arrived", "city": "Austin"},
            ],
            source="easypost",
        )

        assert order.fulfillment_status == FulfillmentStatus.IN_TRANSIT.value
        assert order.estimated_delivery == "2024-03-12"
        assert [event.status for event in order.tracking_events] == ["pre_transit", "in_transit"]
        assert order.tracking_events[1].city == "Austin"
        assert order.delivered_at is None
        assert any(isinstance(event, TrackingUpdated) for event in order._events)

    def test_tracking_update_without_events_adds_summary(self):
        order = _order()
        order.record_tracking(FulfillmentStatus.OUT_FOR_DELIVERY)

        assert len(order.tracking_events) == 1
        assert order.tracking_events[0].status == "out_for_delivery"

    def test_delivered_tracking_stamps_delivery(self):
        order = _order()
        order.record_tracking(FulfillmentStatus.DELIVERED)

        assert order.delivered_at is not None
        assert any(isinstance(event, OrderDelivered) for event in order._events)


class TestConfirmDelivery:
    def test_confirm_delivery(self):
        order = _order()
        order.confirm_delivery()

        assert order.fulfillment_status == FulfillmentStatus.DELIVERED.value
        assert order.delivered_at is not None

    def test_cannot_deliver_cancelled_order(self):
        order = _order()
        order.cancel()
        with pytest.raises(ValidationError):
            order.confirm_delivery()
