"""Manual order status update: command and handler."""

from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.lifecycle import MANUAL_STATUSES
from storefront.ordering.order import Order


@storefront.command(part_of="Order")
class UpdateOrderStatus:
    order_id = Identifier(required=True)
    status = String(required=True, max_length=50)


@storefront.command_handler(part_of=Order)
class UpdateOrderStatusHandler:
    @handle(UpdateOrderStatus)
    def update_order_status(self, command):
        status = command.status.strip().lower()
        if status not in MANUAL_STATUSES:
            raise ValidationError({"status": [f"Invalid order status: {command.status}"]})

        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        order.transition_to(status)
        repo.add(order)
        return {"order_id": str(order.id), "status": order.status}
