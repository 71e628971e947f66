"""Application tests for reconciling completed checkout sessions into orders."""

import json
import threading

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.catalogue.product import Product
from storefront.customers.customer import Customer
from storefront.domain import storefront
from storefront.invoicing.invoice import Invoice
from storefront.notifications.channel import get_email_channel
from storefront.ordering.lifecycle import FulfillmentStatus, OrderStatus, PaymentStatus
from storefront.ordering.order import Order
from storefront.payments.gateway import get_gateway
from storefront.reconciliation.payment_events import (
    ReconcileCheckoutSession,
    dispatch_payment_event,
    process_checkout_session,
)


def _create_product(sku="LIFT-KIT-4IN", in_stock=10, reserved=0):
    product = Product(sku=sku, title="Lift Kit", price=199.0, quantity_in_stock=in_stock, quantity_reserved=reserved)
    current_domain.repository_for(Product).add(product)
    return str(product.id)


def _session(product_id, session_id="cs_test_a1b2c3d4e5f6", payment_status="paid", cart=True, **overrides):
    session = {
        "id": session_id,
        "object": "checkout.session",
        "payment_status": payment_status,
        "payment_intent": "pi_3Nabc",
        "customer": "cus_123",
        "currency": "usd",
        "amount_subtotal": 39800,
        "amount_total": 41920,
        "total_details": {"amount_tax": 0},
        "shipping_cost": {"amount_total": 2120},
        "customer_details": {
            "email": "Jane@Example.com",
            "name": "Jane Doe",
            "phone": "+15125550100",
            "address": {"line1": "1 Main St", "city": "Austin", "state": "TX", "postal_code": "78701", "country": "US"},
        },
        "metadata": {"shipping_label": "Ground Shipping", "marketing_opt_in": "true"},
    }
    if cart:
        line = {"i": product_id, "sku": "LIFT-KIT-4IN", "n": "Lift Kit", "p": 199, "q": 2}
        session["metadata"]["cart"] = json.dumps([line])
    session.update(overrides)
    return session


def _orders():
    return current_domain.repository_for(Order)._dao.query.all().items


def _product(product_id):
    return current_domain.repository_for(Product).get(product_id)


class TestNewPaidSession:
    def test_creates_paid_order(self):
        product_id = _create_product()
        result = process_checkout_session(_session(product_id))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert result["created"] is True
        assert order.status == OrderStatus.PAID.value
        assert order.payment_status == PaymentStatus.PAID.value
        assert order.payment_intent_id == "pi_3Nabc"
        assert order.customer_email == "jane@example.com"
        assert order.total_amount == 419.2
        assert order.amount_shipping == 21.2
        assert order.shipping_address.city == "Austin"
        assert order.fulfillment_status == FulfillmentStatus.UNFULFILLED.value
        assert order.cart[0].quantity == 2

    def test_stock_is_reserved_then_committed(self):
        product_id = _create_product()
        process_checkout_session(_session(product_id))

        product = _product(product_id)
        assert product.quantity_in_stock == 8
        assert product.quantity_reserved == 0
        assert [entry.transaction_type for entry in product.inventory_history] == ["reservation", "sale"]

    def test_customer_invoice_and_email(self):
        product_id = _create_product()
        result = process_checkout_session(_session(product_id))

        customers = current_domain.repository_for(Customer)._dao.query.all().items
        assert len(customers) == 1
        assert customers[0].marketing_opt_in is True
        assert customers[0].stripe_customer_id == "cus_123"

        invoices = current_domain.repository_for(Invoice)._dao.query.all().items
        assert len(invoices) == 1
        assert result["invoice_number"] == invoices[0].invoice_number == "INV-B2C3D4E5F6"

        assert result["confirmation_email_sent"] is True
        sent = get_email_channel().sent_emails
        assert len(sent) == 1
        assert sent[0]["to"] == "jane@example.com"
        assert result["order_number"] in sent[0]["subject"]
        assert sent[0]["headers"]["X-Order-Number"] == result["order_number"]
        assert get_email_channel().sent_to("jane@example.com") == sent

    def test_line_items_used_when_metadata_has_no_cart(self):
        product_id = _create_product()
        session = _session(product_id, cart=False)
        get_gateway().line_items[session["id"]] = [
            {
                "description": "Lift Kit",
                "quantity": 1,
                "amount_subtotal": 19900,
                "price": {"product": {"metadata": {"product_id": product_id}}},
            }
        ]

        result = process_checkout_session(session)

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.cart[0].product_id == product_id
        assert _product(product_id).quantity_in_stock == 9

    def test_line_item_failure_still_creates_order(self):
        get_gateway().configure(line_item_failure="processor down")
        result = process_checkout_session(_session("unused", cart=False))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.cart == []
        assert order.status == OrderStatus.PAID.value

    def test_email_failure_is_recorded_not_raised(self):
        get_email_channel().configure(should_succeed=False)
        result = process_checkout_session(_session(_create_product()))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert result["confirmation_email_sent"] is False
        assert order.confirmation_email_sent is False

    def test_session_without_id_is_rejected(self):
        with pytest.raises(ValidationError):
            current_domain.process(
                ReconcileCheckoutSession(session=json.dumps({"payment_status": "paid"})),
                asynchronous=False,
            )


class TestUnpaidSession:
    def test_unpaid_session_creates_pending_order_with_hold(self):
        product_id = _create_product()
        result = process_checkout_session(_session(product_id, payment_status="unpaid"))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.status == OrderStatus.PENDING.value
        assert result["invoice_number"] is None
        assert get_email_channel().sent_emails == []

        product = _product(product_id)
        assert product.quantity_reserved == 2
        assert product.quantity_in_stock == 10


class TestRedelivery:
    def test_redelivered_session_does_not_duplicate(self):
        product_id = _create_product()
        first = process_checkout_session(_session(product_id))
        second = process_checkout_session(_session(product_id))

        assert second["created"] is False
        assert second["order_id"] == first["order_id"]
        assert len(_orders()) == 1
        assert len(current_domain.repository_for(Invoice)._dao.query.all().items) == 1
        assert len(get_email_channel().sent_emails) == 1

        product = _product(product_id)
        assert product.quantity_in_stock == 8
        assert product.quantity_reserved == 0

    def test_pending_order_is_paid_by_later_delivery(self):
        product_id = _create_product()
        process_checkout_session(_session(product_id, payment_status="unpaid"))
        result = process_checkout_session(_session(product_id))

        order = current_domain.repository_for(Order).get(result["order_id"])
        assert result["created"] is False
        assert order.status == OrderStatus.PAID.value
        assert _product(product_id).quantity_in_stock == 8
        assert _product(product_id).quantity_reserved == 0

    def test_concurrent_deliveries_create_one_order(self):
        product_id = _create_product()
        errors = []

        def deliver():
            try:
                with storefront.domain_context():
                    process_checkout_session(_session(product_id))
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=deliver) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(_orders()) == 1


class TestDispatch:
    def test_checkout_completed_event(self):
        product_id = _create_product()
        event = {
            "id": "evt_1",
            "type": "checkout.session.completed",
            "data": {"object": _session(product_id)},
        }

        result = dispatch_payment_event(event)

        assert result["received"] is True
        assert result["type"] == "checkout.session.completed"
        assert result["created"] is True

    def test_unhandled_event_type_is_acknowledged(self):
        result = dispatch_payment_event({"id": "evt_2", "type": "customer.created", "data": {"object": {}}})

        assert result["received"] is True
        assert result["status"] == "ignored"
