"""Stripe payment gateway adapter built on the stripe-python SDK."""

import stripe
import structlog

from storefront.payments.gateway.port import (
    CheckoutSessionResult,
    PaymentGateway,
    WebhookSignatureError,
)

logger = structlog.get_logger(__name__)


class StripeGateway(PaymentGateway):
    def __init__(self, api_key: str, webhook_secret: str) -> None:
        if not api_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured")
        self.api_key = api_key
        self.webhook_secret = webhook_secret

    def construct_event(self, payload: bytes, signature: str) -> dict:
        if not self.webhook_secret:
            raise WebhookSignatureError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise WebhookSignatureError("Missing stripe-signature header")
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as exc:
            raise WebhookSignatureError(str(exc)) from exc
        return event.to_dict()

    def create_checkout_session(
        self,
        line_items: list[dict],
        shipping_amount_cents: int,
        shipping_label: str,
        customer_email: str | None,
        metadata: dict,
        success_url: str,
        cancel_url: str,
    ) -> CheckoutSessionResult:
        params = {
            "mode": "payment",
            "line_items": [
                {
                    "quantity": item["quantity"],
                    "price_data": {
                        "currency": item.get("currency", "usd"),
                        "unit_amount": item["unit_amount"],
                        "product_data": {
                            "name": item["name"],
                            "metadata": {"product_id": item.get("product_id") or ""},
                        },
                    },
                }
                for item in line_items
            ],
            "shipping_options": [
                {
                    "shipping_rate_data": {
                        "type": "fixed_amount",
                        "display_name": shipping_label,
                        "fixed_amount": {"amount": shipping_amount_cents, "currency": "usd"},
                    }
                }
            ],
            "metadata": metadata,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "shipping_address_collection": {"allowed_countries": ["US", "CA"]},
        }
        if customer_email:
            params["customer_email"] = customer_email

        session = stripe.checkout.Session.create(api_key=self.api_key, **params)
        return CheckoutSessionResult(session_id=session.id, url=session.url)

    def list_line_items(self, session_id: str) -> list[dict]:
        items = stripe.checkout.Session.list_line_items(
            session_id,
            api_key=self.api_key,
            limit=100,
            expand=["data.price.product"],
        )
        return [item.to_dict() for item in items.auto_paging_iter()]
