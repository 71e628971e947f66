"""Fake payment gateway for development and testing.

Parses webhook payloads without checking signatures unless configured to
reject them, and records every checkout session it creates.
"""

import json
from uuid import uuid4

from storefront.payments.gateway.port import (
    CheckoutSessionResult,
    PaymentGateway,
    WebhookSignatureError,
)


class FakeGateway(PaymentGateway):
    def __init__(self):
        self.sessions: list[dict] = []
        self.line_items: dict[str, list[dict]] = {}
        self.reject_signatures = False
        self.line_item_failure: str | None = None

    def configure(self, reject_signatures: bool = False, line_item_failure: str | None = None):
        """Configure the fake gateway behavior for testing."""
        self.reject_signatures = reject_signatures
        self.line_item_failure = line_item_failure

    def construct_event(self, payload: bytes, signature: str) -> dict:
        if self.reject_signatures:
            raise WebhookSignatureError("Invalid signature")
        if isinstance(payload, bytes):
            payload = payload.decode("utf-8")
        return json.loads(payload)

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
        session_id = f"cs_test_{uuid4().hex}"
        self.sessions.append(
            {
                "id": session_id,
                "line_items": line_items,
                "shipping_amount_cents": shipping_amount_cents,
                "shipping_label": shipping_label,
                "customer_email": customer_email,
                "metadata": metadata,
                "success_url": success_url,
                "cancel_url": cancel_url,
            }
        )
        return CheckoutSessionResult(session_id=session_id, url=f"https://checkout.example.com/pay/{session_id}")

    def list_line_items(self, session_id: str) -> list[dict]:
        if self.line_item_failure:
            raise RuntimeError(self.line_item_failure)
        return list(self.line_items.get(session_id, []))

    def reset(self):
        self.sessions.clear()
        self.line_items.clear()
        self.reject_signatures = False
        self.line_item_failure = None
