"""Checkout session creation: command and handler.

Prices the cart from the catalogue, quotes shipping with the formula quoter
(which cannot fail), opens a hosted payment session and captures a pending
order with its stock held. The compact cart is written into the session
metadata so the payment webhook can rebuild the order without another
round trip to the processor.
"""

import json
import math

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Boolean, String, Text
from protean.utils.globals import current_domain

from storefront.catalogue.attributes import CartLine, PhysicalAttributesResolver, find_product
from storefront.config import get_config
from storefront.domain import storefront
from storefront.inventory.ledger import InventoryLedger
from storefront.ordering.lifecycle import OrderStatus
from storefront.ordering.order import Order
from storefront.payments.gateway import get_gateway
from storefront.shipping.planner import plan_cart
from storefront.shipping.quoter import FormulaQuoter

logger = structlog.get_logger(__name__)

# Processor limit on a single metadata value
METADATA_VALUE_LIMIT = 500


def _checkout_line(raw: dict) -> dict | None:
    if not isinstance(raw, dict):
        return None
    try:
        quantity = float(raw.get("quantity", 1))
    except (TypeError, ValueError):
        return None
    if not math.isfinite(quantity) or quantity < 1 or quantity != int(quantity):
        return None

    line = CartLine.from_dict(raw)
    if not line.product_id and not line.sku:
        return None

    product = find_product(line.product_id, line.sku)
    if product is not None:
        product_id, sku = str(product.id), line.sku or product.sku
        name, price = product.title, product.effective_price
    else:
        product_id, sku = line.product_id, line.sku
        name = raw.get("name") or sku or "Item"
        try:
            price = float(raw.get("price") or 0)
        except (TypeError, ValueError):
            price = 0.0

    return {
        "product_id": product_id,
        "sku": sku,
        "variant_sku": line.variant_sku,
        "name": name,
        "quantity": int(quantity),
        "price": round(price, 2),
        "image_url": raw.get("image_url") or raw.get("image"),
    }


def compact_cart_metadata(lines: list[dict]) -> str | None:
    """The cart in the short-key form the payment webhook decodes, or None when it will not fit."""
    compact = []
    for line in lines:
        entry = {
            "i": line["product_id"],
            "sku": line["sku"],
            "n": (line["name"] or "")[:40],
            "p": line["price"],
            "q": line["quantity"],
        }
        if line.get("variant_sku"):
            entry["vs"] = line["variant_sku"]
        compact.append({key: value for key, value in entry.items() if value not in (None, "")})

    encoded = json.dumps(compact, separators=(",", ":"))
    if len(encoded) > METADATA_VALUE_LIMIT:
        return None
    return encoded


@storefront.command(part_of="Order")
class CreateCheckoutSession:
    items = Text(required=True, sanitize=False)  # JSON: list of {product_id|sku, variant_sku, quantity}
    customer_email = String(max_length=255)
    success_url = String(required=True, max_length=1000, sanitize=False)
    cancel_url = String(required=True, max_length=1000, sanitize=False)
    marketing_opt_in = Boolean(default=False)


@storefront.command_handler(part_of=Order)
class CreateCheckoutSessionHandler:
    @handle(CreateCheckoutSession)
    def create_checkout_session(self, command):
        raw_items = json.loads(command.items)
        lines = [line for line in (_checkout_line(raw) for raw in raw_items or []) if line is not None]
        if not lines:
            raise ValidationError({"items": ["Cart has no valid lines"]})

        config = get_config()
        resolver = PhysicalAttributesResolver(config.packaging)
        plan = plan_cart([CartLine.from_dict(line) for line in lines], resolver, config.thresholds)
        quote = FormulaQuoter(config.rates).quote(plan)

        metadata = {
            "shipping_label": quote.label,
            "shipping_amount_cents": str(quote.amount_cents),
            "marketing_opt_in": "true" if command.marketing_opt_in else "false",
        }
        cart_metadata = compact_cart_metadata(lines)
        if cart_metadata:
            metadata["cart"] = cart_metadata
        else:
            logger.info("Cart too large for session metadata", line_count=len(lines))

        session = get_gateway().create_checkout_session(
            line_items=[
                {
                    "name": line["name"],
                    "unit_amount": int(round(line["price"] * 100)),
                    "quantity": line["quantity"],
                    "product_id": line["product_id"],
                }
                for line in lines
            ],
            shipping_amount_cents=quote.amount_cents,
            shipping_label=quote.label,
            customer_email=command.customer_email,
            metadata=metadata,
            success_url=command.success_url,
            cancel_url=command.cancel_url,
        )

        subtotal = round(sum(line["price"] * line["quantity"] for line in lines), 2)
        shipping = round(quote.amount_cents / 100, 2)
        order = Order.place(
            lines,
            status=OrderStatus.PENDING,
            stripe_session_id=session.session_id,
            customer_email=(command.customer_email or "").strip().lower() or None,
            amount_subtotal=subtotal,
            amount_shipping=shipping,
            total_amount=round(subtotal + shipping, 2),
            shipping_quote_label=quote.label,
        )
        repo = current_domain.repository_for(Order)
        repo.add(order)
        InventoryLedger().reserve(order.ledger_items(), str(order.id))

        logger.info(
            "Checkout session created",
            order_id=str(order.id),
            session_id=session.session_id,
            shipping_cents=quote.amount_cents,
            packages=plan.package_count,
        )
        return {
            "order_id": str(order.id),
            "session_id": session.session_id,
            "url": session.url,
            "shipping": quote.as_dict(),
            "plan": plan.summary(),
        }
