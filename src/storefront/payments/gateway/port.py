"""Payment gateway port (abstract interface).

The reconciler only needs three things from the payment processor: a verified
webhook event, a hosted checkout session, and the line items of a completed
session. Adapters are swapped via ``set_gateway`` or ``PAYMENT_GATEWAY``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


class WebhookSignatureError(Exception):
    """The webhook payload could not be authenticated."""


@dataclass(frozen=True)
class CheckoutSessionResult:
    session_id: str
    url: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def construct_event(self, payload: bytes, signature: str) -> dict:
        """Verify ``payload`` against ``signature`` and return the parsed event.

        Raises:
            WebhookSignatureError: if the signature is missing or does not match
            ValueError: if the payload is not valid JSON
        """
        ...

    @abstractmethod
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
        """Create a hosted checkout session for the given line items."""
        ...

    @abstractmethod
    def list_line_items(self, session_id: str) -> list[dict]:
        """Return the line items of a checkout session as plain dicts."""
        ...
