"""Best-effort order confirmation email."""

import structlog

from storefront.notifications.channel import get_email_channel
from storefront.notifications.templates.order_confirmation import OrderConfirmationTemplate

logger = structlog.get_logger(__name__)


def send_order_confirmation(order) -> bool:
    """Email the order confirmation; returns True when the channel reports it sent.

    Never raises: delivery problems are logged and reported as False.
    """
    if not order.customer_email:
        logger.info("No customer email for confirmation", order_id=str(order.id))
        return False

    content = OrderConfirmationTemplate.render(
        {
            "order_number": order.order_number,
            "customer_name": order.customer_name,
            "currency": order.currency or "USD",
            "total": order.total_amount or 0.0,
            "lines": [{"quantity": line.quantity, "name": line.name, "sku": line.sku} for line in order.cart or []],
        }
    )

    try:
        result = get_email_channel().send(
            to=order.customer_email,
            subject=content["subject"],
            body=content["body"],
            html_body=content["html_body"],
            headers={"X-Order-Number": order.order_number or str(order.id)},
        )
    except Exception as exc:
        logger.warning("Confirmation email failed", order_id=str(order.id), error=str(exc))
        return False

    if result.get("status") != "sent":
        logger.warning("Confirmation email not sent", order_id=str(order.id), error=result.get("error"))
        return False

    logger.info("Confirmation email sent", order_id=str(order.id), message_id=result.get("message_id"))
    return True
