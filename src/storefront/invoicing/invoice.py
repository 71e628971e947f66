"""Invoice aggregate: one per paid checkout session.

Invoices are keyed by the payment session id so that a redelivered webhook
finds the existing invoice instead of issuing a second one.
"""

import json
from datetime import UTC, datetime

from protean.fields import DateTime, Float, Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.domain import storefront


def invoice_number_for(session_id: str) -> str:
    """``INV-`` plus the last ten characters of the session id, test prefix removed."""
    tail = (session_id or "").replace("cs_test_", "")[-10:].upper()
    return f"INV-{tail}"


@storefront.aggregate
class Invoice:
    stripe_session_id = String(required=True, max_length=255)
    invoice_number = String(required=True, max_length=50)
    order_id = Identifier()
    customer_id = Identifier()
    customer_email = String(max_length=255)
    status = String(max_length=20, default="paid")
    currency = String(max_length=3, default="USD")
    amount_subtotal = Float(default=0.0)
    amount_tax = Float(default=0.0)
    amount_shipping = Float(default=0.0)
    total = Float(default=0.0)
    line_items = Text(sanitize=False)
    issued_at = DateTime()


def issue_invoice(order, session_id: str, customer_id: str | None = None) -> tuple[Invoice, bool]:
    """Return ``(invoice, created)``; an invoice already issued for ``session_id`` is reused."""
    repo = current_domain.repository_for(Invoice)
    existing = repo._dao.query.filter(stripe_session_id=session_id).all().items
    if existing:
        return existing[0], False

    lines = [
        {
            "product_id": line.product_id,
            "sku": line.sku,
            "name": line.name,
            "quantity": line.quantity,
            "price": line.price,
        }
        for line in order.cart or []
    ]
    invoice = Invoice(
        stripe_session_id=session_id,
        invoice_number=invoice_number_for(session_id),
        order_id=str(order.id),
        customer_id=customer_id or order.customer_id,
        customer_email=order.customer_email,
        status="paid" if order.is_paid else "pending",
        currency=order.currency or "USD",
        amount_subtotal=order.amount_subtotal or 0.0,
        amount_tax=order.amount_tax or 0.0,
        amount_shipping=order.amount_shipping or 0.0,
        total=order.total_amount or 0.0,
        line_items=json.dumps(lines),
        issued_at=datetime.now(UTC),
    )
    repo.add(invoice)
    return invoice, True
