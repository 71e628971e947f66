"""Application tests for manual status updates and delivery confirmation."""

import pytest
from protean import current_domain
from protean.exceptions import ObjectNotFoundError, ValidationError

from storefront.catalogue.product import Product
from storefront.inventory.ledger import InventoryLedger
from storefront.ordering.delivery import ConfirmDelivery
from storefront.ordering.lifecycle import FulfillmentStatus, OrderStatus
from storefront.ordering.order import Order
from storefront.ordering.status import UpdateOrderStatus


def _create_order(status=OrderStatus.PAID, product_id="prod-1"):
    order = Order.place([{"product_id": product_id, "quantity": 1}], status=status, stripe_session_id="cs_test_s")
    current_domain.repository_for(Order).add(order)
    return str(order.id)


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


class TestUpdateOrderStatus:
    def test_moves_order_forward(self):
        order_id = _create_order()
        result = current_domain.process(UpdateOrderStatus(order_id=order_id, status="Processing"), asynchronous=False)

        assert result == {"order_id": order_id, "status": "processing"}
        assert _order(order_id).status == OrderStatus.PROCESSING.value

    def test_unknown_status_is_rejected(self):
        order_id = _create_order()
        with pytest.raises(ValidationError):
            current_domain.process(UpdateOrderStatus(order_id=order_id, status="teleported"), asynchronous=False)

    def test_forbidden_transition_is_rejected(self):
        order_id = _create_order(status=OrderStatus.PENDING)
        with pytest.raises(ValidationError):
            current_domain.process(UpdateOrderStatus(order_id=order_id, status="fulfilled"), asynchronous=False)
        assert _order(order_id).status == OrderStatus.PENDING.value

    def test_missing_order(self):
        with pytest.raises(ObjectNotFoundError):
            current_domain.process(UpdateOrderStatus(order_id="missing", status="processing"), asynchronous=False)

    def test_manual_cancel_does_not_touch_inventory(self):
        product = Product(sku="LIFT-KIT-4IN", title="Lift Kit", quantity_in_stock=10)
        current_domain.repository_for(Product).add(product)
        order_id = _create_order(status=OrderStatus.PENDING, product_id=str(product.id))
        InventoryLedger().reserve([{"product_id": str(product.id), "quantity": 1}], order_id)

        current_domain.process(UpdateOrderStatus(order_id=order_id, status="cancelled"), asynchronous=False)

        product = current_domain.repository_for(Product).get(str(product.id))
        assert product.quantity_reserved == 1
        assert product.quantity_in_stock == 10


class TestConfirmDelivery:
    def test_marks_delivered(self):
        order_id = _create_order()
        result = current_domain.process(ConfirmDelivery(order_id=order_id), asynchronous=False)

        assert result["fulfillment_status"] == FulfillmentStatus.DELIVERED.value
        assert result["delivered_at"] is not None
        assert _order(order_id).delivered_at is not None

    def test_repeat_keeps_first_timestamp(self):
        order_id = _create_order()
        first = current_domain.process(ConfirmDelivery(order_id=order_id), asynchronous=False)
        second = current_domain.process(ConfirmDelivery(order_id=order_id), asynchronous=False)
        assert first["delivered_at"] == second["delivered_at"]

    def test_cancelled_order_is_rejected(self):
        order_id = _create_order(status=OrderStatus.CANCELLED)
        with pytest.raises(ValidationError):
            current_domain.process(ConfirmDelivery(order_id=order_id), asynchronous=False)
