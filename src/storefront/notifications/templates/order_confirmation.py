"""Order confirmation template: sent once payment for an order is reconciled."""

from html import escape


class OrderConfirmationTemplate:
    @staticmethod
    def render(context: dict) -> dict:
        order_number = context.get("order_number", "N/A")
        name = context.get("customer_name") or "there"
        currency = context.get("currency", "USD")
        total = context.get("total", 0.0)
        lines = context.get("lines") or []

        items = "\n".join(
            f"  {line.get('quantity', 1)} x {line.get('name') or line.get('sku') or 'Item'}" for line in lines
        )
        body = (
            f"Hi {name},\n\n"
            f"Thanks for your order! Order {order_number} has been received.\n\n"
            f"{items}\n\n"
            f"Order Total: {currency} {total:.2f}\n\n"
            "We'll email you tracking details as soon as your order ships."
        )
        html_items = "".join(
            f"<li>{escape(str(line.get('quantity', 1)))} &times; "
            f"{escape(line.get('name') or line.get('sku') or 'Item')}</li>"
            for line in lines
        )
        html_body = (
            f"<p>Hi {escape(name)},</p>"
            f"<p>Thanks for your order! Order <strong>{escape(str(order_number))}</strong> has been received.</p>"
            f"<ul>{html_items}</ul>"
            f"<p>Order Total: {escape(currency)} {total:.2f}</p>"
        )
        return {
            "subject": f"Order {order_number} Confirmed",
            "body": body,
            "html_body": html_body,
        }
