"""Application tests for label purchase on an order."""

import json

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.ordering.lifecycle import FulfillmentStatus
from storefront.ordering.order import Order, ShippingAddress
from storefront.shipping.carrier import get_rate_api
from storefront.shipping.carrier.port import CarrierError
from storefront.shipping.labels import CreateShippingLabel, ship_to_from_order


def _create_order():
    order = Order.place(
        [{"product_id": "prod-1", "quantity": 1}],
        stripe_session_id="cs_test_label",
        customer_name="Jane Doe",
        shipping_address=ShippingAddress(
            address_line1="1 Main St",
            city="Austin",
            state="TX",
            postal_code="78701",
        ),
    )
    current_domain.repository_for(Order).add(order)
    return str(order.id)


class TestShipToFromOrder:
    def test_maps_address_and_falls_back_to_customer_name(self):
        order = current_domain.repository_for(Order).get(_create_order())
        assert ship_to_from_order(order) == {
            "name": "Jane Doe",
            "address_line1": "1 Main St",
            "city_locality": "Austin",
            "state_province": "TX",
            "postal_code": "78701",
            "country_code": "US",
        }


class TestCreateShippingLabel:
    def test_buys_quoted_rate(self):
        order_id = _create_order()
        result = current_domain.process(CreateShippingLabel(order_id=order_id, rate_id="se-rate-1"), asynchronous=False)

        assert get_rate_api().label_requests == [{"rate_id": "se-rate-1"}]
        assert result["tracking_number"].startswith("FAKE")

        order = current_domain.repository_for(Order).get(order_id)
        assert len(order.shipments) == 1
        assert order.tracking_number == result["tracking_number"]
        assert order.fulfillment_status == FulfillmentStatus.LABEL_CREATED.value

    def test_shipment_defaults_addresses_from_order(self):
        order_id = _create_order()
        shipment = {"carrier_id": "se-3809716", "packages": [{"weight": {"value": 10, "unit": "pound"}}]}
        current_domain.process(
            CreateShippingLabel(order_id=order_id, shipment=json.dumps(shipment)),
            asynchronous=False,
        )

        sent = get_rate_api().label_requests[0]["shipment"]
        assert sent["ship_to"]["city_locality"] == "Austin"
        assert sent["ship_from"]["country_code"] == "US"
        assert sent["carrier_id"] == "se-3809716"

    def test_requires_rate_or_shipment(self):
        with pytest.raises(ValidationError):
            current_domain.process(CreateShippingLabel(order_id=_create_order()), asynchronous=False)
        assert get_rate_api().label_requests == []

    def test_carrier_failure_leaves_order_untouched(self):
        order_id = _create_order()
        get_rate_api().configure(should_succeed=False)

        with pytest.raises(CarrierError):
            current_domain.process(CreateShippingLabel(order_id=order_id, rate_id="se-rate-1"), asynchronous=False)

        order = current_domain.repository_for(Order).get(order_id)
        assert order.shipments == []
        assert order.fulfillment_status is None
