"""Delivery confirmation: command and handler."""

from protean import handle
from protean.fields import Identifier
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.order import Order


@storefront.command(part_of="Order")
class ConfirmDelivery:
    order_id = Identifier(required=True)


@storefront.command_handler(part_of=Order)
class ConfirmDeliveryHandler:
    @handle(ConfirmDelivery)
    def confirm_delivery(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.confirm_delivery()
        repo.add(order)
        return {
            "order_id": str(order.id),
            "fulfillment_status": order.fulfillment_status,
            "delivered_at": order.delivered_at.isoformat() if order.delivered_at else None,
        }
