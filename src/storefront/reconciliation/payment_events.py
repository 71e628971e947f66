"""Payment webhook reconciliation: checkout completion, payment success and reversals.

A completed checkout session is the idempotency key for order creation: the
session id is checked before anything is created, and the check-then-create
runs under a per-session lock (see ``process_checkout_session``). Every side
effect after the order itself (customer, invoice, email) is attempted on its
own so one failure does not stop the others from being recorded.
"""

import json
import math
from datetime import UTC, datetime

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import String, Text
from protean.utils.globals import current_domain

from storefront.customers.customer import find_or_create_customer
from storefront.domain import storefront
from storefront.inventory.ledger import InventoryLedger
from storefront.invoicing.invoice import issue_invoice
from storefront.notifications.confirmation import send_order_confirmation
from storefront.ordering.lifecycle import TERMINAL_STATUSES, OrderStatus, PaymentStatus
from storefront.ordering.order import Order, ShippingAddress, find_order_by
from storefront.payments.gateway import get_gateway
from storefront.reconciliation.locks import checkout_session_locks
from storefront.utils.logging import add_context

logger = structlog.get_logger(__name__)

CHECKOUT_COMPLETED = "checkout.session.completed"
PAYMENT_SUCCEEDED_EVENTS = frozenset({"payment_intent.succeeded", "charge.succeeded"})
PAYMENT_REVERSED_EVENTS = frozenset({"charge.refunded", "payment_intent.canceled"})


# ---------------------------------------------------------------------------
# Session parsing
# ---------------------------------------------------------------------------
def _cents_to_amount(value) -> float | None:
    if isinstance(value, bool) or not isinstance(value, int | float):
        return None
    return round(value / 100, 2)


def _whole_quantity(value) -> int | None:
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(quantity) or quantity < 1 or quantity != int(quantity):
        return None
    return int(quantity)


def _object_id(value) -> str | None:
    """Stripe fields like ``payment_intent`` are either an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def cart_lines_from_metadata(raw) -> list[dict]:
    """Decode the compact ``cart`` metadata written at checkout.

    Keys: ``i``/``id`` product id, ``sku``, ``n``/``name``, ``p`` unit price,
    ``q`` quantity, ``vs`` variant sku, ``img`` image url. Lines without a
    whole positive quantity are dropped.
    """
    if not raw:
        return []
    try:
        parsed = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        logger.warning("Unparseable cart metadata")
        return []
    if not isinstance(parsed, list):
        return []

    lines = []
    for entry in parsed:
        if not isinstance(entry, dict):
            continue
        quantity = _whole_quantity(entry.get("q"))
        if quantity is None:
            logger.info("Dropping cart metadata line", sku=entry.get("sku"), quantity=entry.get("q"))
            continue
        product_id = entry.get("i") if isinstance(entry.get("i"), str) and entry["i"].strip() else entry.get("id")
        try:
            price = float(entry.get("p") or 0)
        except (TypeError, ValueError):
            price = 0.0
        lines.append(
            {
                "product_id": product_id or None,
                "sku": entry.get("sku"),
                "variant_sku": entry.get("vs"),
                "name": entry.get("n") or entry.get("name"),
                "quantity": quantity,
                "price": price,
                "image_url": entry.get("img") if isinstance(entry.get("img"), str) else None,
            }
        )
    return lines


def cart_lines_from_line_items(items: list[dict]) -> list[dict]:
    """Build the line snapshot from the processor's line-items listing."""
    lines = []
    for item in items or []:
        quantity = _whole_quantity(item.get("quantity"))
        if quantity is None:
            continue

        price_obj = item.get("price") or {}
        product = price_obj.get("product") if isinstance(price_obj, dict) else None
        product = product if isinstance(product, dict) else {}
        metadata = {
            **(product.get("metadata") or {}),
            **(price_obj.get("metadata") or {}),
            **(item.get("metadata") or {}),
        }

        subtotal = _cents_to_amount(item.get("amount_subtotal"))
        if subtotal is not None:
            price = round(subtotal / quantity, 2)
        else:
            price = _cents_to_amount(price_obj.get("unit_amount")) or 0.0

        lines.append(
            {
                "product_id": metadata.get("product_id") or metadata.get("sanity_product_id"),
                "sku": metadata.get("sku"),
                "variant_sku": metadata.get("variant_sku") or metadata.get("variantSku"),
                "name": item.get("description") or product.get("name"),
                "quantity": quantity,
                "price": price,
                "image_url": (product.get("images") or [None])[0],
            }
        )
    return lines


def _shipping_address(session: dict) -> ShippingAddress | None:
    details = session.get("customer_details") or {}
    shipping = (session.get("collected_information") or {}).get("shipping_details") or session.get(
        "shipping_details"
    )
    shipping = shipping or {}
    address = shipping.get("address") or details.get("address")
    if not address:
        return None
    return ShippingAddress(
        name=shipping.get("name") or details.get("name"),
        phone=details.get("phone"),
        email=details.get("email"),
        address_line1=address.get("line1"),
        address_line2=address.get("line2"),
        city=address.get("city"),
        state=address.get("state"),
        postal_code=address.get("postal_code"),
        country=address.get("country") or "US",
    )


def _marketing_opt_in(session: dict) -> bool:
    metadata = session.get("metadata") or {}
    if str(metadata.get("marketing_opt_in") or "").strip().lower() == "true":
        return True
    return (session.get("consent") or {}).get("promotions") == "opt_in"


# ---------------------------------------------------------------------------
# Checkout session completed
# ---------------------------------------------------------------------------
@storefront.command(part_of="Order")
class ReconcileCheckoutSession:
    session = Text(required=True, sanitize=False)  # JSON: the checkout session object


@storefront.command_handler(part_of=Order)
class ReconcileCheckoutSessionHandler:
    @handle(ReconcileCheckoutSession)
    def reconcile_checkout_session(self, command):
        session = json.loads(command.session)
        session_id = session.get("id")
        if not session_id:
            raise ValidationError({"session": ["Checkout session id is required"]})

        repo = current_domain.repository_for(Order)
        ledger = InventoryLedger()
        paid = session.get("payment_status") == PaymentStatus.PAID.value
        payment_intent_id = _object_id(session.get("payment_intent"))

        order = find_order_by(stripe_session_id=session_id)
        created = False

        if order is None:
            order = self._create_order(session, session_id, payment_intent_id)
            created = True
            repo.add(order)
            ledger.reserve(order.ledger_items(), str(order.id))
            if paid:
                order.mark_paid(payment_intent_id=payment_intent_id)
                ledger.commit_sale(str(order.id), order.ledger_items(), order=order)
        elif order.is_paid:
            logger.info("Checkout session already reconciled", session_id=session_id, order_id=str(order.id))
        elif paid:
            held = order.status != OrderStatus.EXPIRED.value
            try:
                order.mark_paid(payment_intent_id=payment_intent_id)
            except ValidationError as exc:
                logger.warning(
                    "Paid session for an order that cannot be paid",
                    session_id=session_id,
                    order_id=str(order.id),
                    status=order.status,
                    error=str(exc.messages),
                )
            else:
                ledger.commit_sale(str(order.id), order.ledger_items(), order=order, held=held)
        elif payment_intent_id and not order.payment_intent_id:
            # Deferred payment: the intent settles later under its own event
            order.payment_intent_id = payment_intent_id

        invoice_number = None
        if order.is_paid:
            try:
                invoice, _ = issue_invoice(order, session_id, order.customer_id)
                invoice_number = invoice.invoice_number
            except Exception as exc:
                logger.warning("Invoice creation failed", session_id=session_id, error=str(exc))

            if not order.confirmation_email_sent and send_order_confirmation(order):
                order.confirmation_email_sent = True

        order.updated_at = datetime.now(UTC)
        repo.add(order)

        logger.info(
            "Checkout session reconciled",
            session_id=session_id,
            order_id=str(order.id),
            status=order.status,
            created=created,
        )
        return {
            "order_id": str(order.id),
            "order_number": order.order_number,
            "status": order.status,
            "created": created,
            "invoice_number": invoice_number,
            "confirmation_email_sent": bool(order.confirmation_email_sent),
        }

    def _create_order(self, session: dict, session_id: str, payment_intent_id: str | None) -> Order:
        details = session.get("customer_details") or {}
        email = details.get("email") or session.get("customer_email")
        name = details.get("name")

        customer_id = None
        if email:
            try:
                customer = find_or_create_customer(
                    email,
                    name=name,
                    phone=details.get("phone"),
                    marketing_opt_in=_marketing_opt_in(session),
                    stripe_customer_id=_object_id(session.get("customer")),
                )
                customer_id = str(customer.id)
            except Exception as exc:
                logger.warning("Customer lookup failed", session_id=session_id, error=str(exc))

        metadata = session.get("metadata") or {}
        lines = cart_lines_from_metadata(metadata.get("cart"))
        if not lines:
            try:
                lines = cart_lines_from_line_items(get_gateway().list_line_items(session_id))
            except Exception as exc:
                logger.warning("Line item lookup failed", session_id=session_id, error=str(exc))

        total_details = session.get("total_details") or {}
        shipping_cost = session.get("shipping_cost") or {}
        currency = (session.get("currency") or "usd").upper()

        return Order.place(
            lines,
            status=OrderStatus.PENDING,
            stripe_session_id=session_id,
            payment_intent_id=payment_intent_id,
            customer_id=customer_id,
            customer_email=(email or "").strip().lower() or None,
            customer_name=name,
            shipping_address=_shipping_address(session),
            currency=currency,
            amount_subtotal=_cents_to_amount(session.get("amount_subtotal")) or 0.0,
            amount_tax=_cents_to_amount(total_details.get("amount_tax")) or 0.0,
            amount_shipping=_cents_to_amount(shipping_cost.get("amount_total")) or 0.0,
            total_amount=_cents_to_amount(session.get("amount_total")) or 0.0,
            shipping_quote_label=metadata.get("shipping_label"),
        )


def process_checkout_session(session: dict) -> dict:
    """Reconcile a completed checkout session, one delivery per session id at a time."""
    session_id = session.get("id") or ""
    add_context(session_id=session_id)
    with checkout_session_locks.hold(session_id):
        return current_domain.process(
            ReconcileCheckoutSession(session=json.dumps(session)),
            asynchronous=False,
        )


# ---------------------------------------------------------------------------
# Payment intent / charge events
# ---------------------------------------------------------------------------
@storefront.command(part_of="Order")
class ReconcilePaymentEvent:
    event_type = String(required=True, max_length=100)
    payment_intent_id = String(required=True, max_length=255)
    charge_id = String(max_length=255)
    card_brand = String(max_length=50)
    card_last4 = String(max_length=4)
    receipt_url = String(max_length=1000, sanitize=False)


@storefront.command_handler(part_of=Order)
class ReconcilePaymentEventHandler:
    @handle(ReconcilePaymentEvent)
    def reconcile_payment_event(self, command):
        order = find_order_by(payment_intent_id=command.payment_intent_id)
        if order is None:
            logger.info(
                "No order for payment intent",
                event_type=command.event_type,
                payment_intent_id=command.payment_intent_id,
            )
            return {"status": "ignored", "reason": "Order not found"}

        repo = current_domain.repository_for(Order)
        ledger = InventoryLedger()
        order_id = str(order.id)

        if command.event_type in PAYMENT_SUCCEEDED_EVENTS:
            if order.is_paid:
                return {"status": "ok", "order_id": order_id, "changed": False}
            held = order.status != OrderStatus.EXPIRED.value
            try:
                order.mark_paid(
                    payment_intent_id=command.payment_intent_id,
                    charge_id=command.charge_id,
                    card_brand=command.card_brand,
                    card_last4=command.card_last4,
                    receipt_url=command.receipt_url,
                )
            except ValidationError as exc:
                logger.warning(
                    "Payment succeeded for an order that cannot be paid",
                    order_id=order_id,
                    status=order.status,
                    error=str(exc.messages),
                )
                return {"status": "ignored", "reason": "Order cannot be paid", "order_id": order_id}
            ledger.commit_sale(order_id, order.ledger_items(), order=order, held=held)
            repo.add(order)
            return {"status": "ok", "order_id": order_id, "changed": True}

        if command.event_type in PAYMENT_REVERSED_EVENTS:
            if order.status in TERMINAL_STATUSES or order.status == OrderStatus.EXPIRED.value:
                logger.info("Order already closed", order_id=order_id, status=order.status)
                return {"status": "ok", "order_id": order_id, "changed": False}

            if order.is_paid:
                ledger.restock(order_id, order.ledger_items())
            else:
                ledger.release(order_id, order.ledger_items(), restock=False)

            refunded = command.event_type == "charge.refunded"
            order.cancel(PaymentStatus.REFUNDED if refunded else PaymentStatus.CANCELED)
            repo.add(order)
            return {"status": "ok", "order_id": order_id, "changed": True}

        return {"status": "ignored", "reason": f"Unhandled event type {command.event_type}"}


def _payment_event_command(event_type: str, obj: dict) -> ReconcilePaymentEvent | None:
    if event_type.startswith("charge."):
        payment_intent_id = _object_id(obj.get("payment_intent"))
        card = (obj.get("payment_method_details") or {}).get("card") or {}
        charge_fields = {
            "charge_id": obj.get("id"),
            "card_brand": card.get("brand"),
            "card_last4": card.get("last4"),
            "receipt_url": obj.get("receipt_url"),
        }
    else:
        payment_intent_id = obj.get("id")
        charge_fields = {"charge_id": _object_id(obj.get("latest_charge"))}

    if not payment_intent_id:
        return None
    return ReconcilePaymentEvent(
        event_type=event_type,
        payment_intent_id=payment_intent_id,
        **{name: value for name, value in charge_fields.items() if value},
    )


def dispatch_payment_event(event: dict) -> dict:
    """Route a verified processor event to its reconciler."""
    event_type = event.get("type") or ""
    obj = (event.get("data") or {}).get("object") or {}
    add_context(event_type=event_type, event_id=event.get("id"))

    if event_type == CHECKOUT_COMPLETED:
        result = process_checkout_session(obj)
    elif event_type in PAYMENT_SUCCEEDED_EVENTS | PAYMENT_REVERSED_EVENTS:
        command = _payment_event_command(event_type, obj)
        if command is None:
            result = {"status": "ignored", "reason": "Missing payment intent"}
        else:
            result = current_domain.process(command, asynchronous=False)
    else:
        logger.info("Ignoring payment event", event_type=event_type)
        result = {"status": "ignored", "reason": f"Unhandled event type {event_type}"}

    return {"received": True, "type": event_type, **(result or {})}
