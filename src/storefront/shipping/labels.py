"""Shipping label purchase for an order: command and handler."""

import json

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Identifier, String, Text
from protean.utils.globals import current_domain

from storefront.config import get_config
from storefront.domain import storefront
from storefront.ordering.order import Order
from storefront.shipping.carrier import get_rate_api

logger = structlog.get_logger(__name__)


def ship_to_from_order(order: Order) -> dict:
    address = order.shipping_address
    if address is None:
        return {}
    ship_to = {
        "name": address.name or order.customer_name,
        "phone": address.phone,
        "address_line1": address.address_line1,
        "address_line2": address.address_line2,
        "city_locality": address.city,
        "state_province": address.state,
        "postal_code": address.postal_code,
        "country_code": address.country or "US",
    }
    return {key: value for key, value in ship_to.items() if value}


@storefront.command(part_of="Order")
class CreateShippingLabel:
    order_id = Identifier(required=True)
    rate_id = String(max_length=255)
    shipment = Text(sanitize=False)  # JSON: carrier shipment payload


@storefront.command_handler(part_of=Order)
class CreateShippingLabelHandler:
    @handle(CreateShippingLabel)
    def create_shipping_label(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)

        if command.rate_id:
            payload = {"rate_id": command.rate_id}
        elif command.shipment:
            shipment = json.loads(command.shipment)
            if not isinstance(shipment, dict):
                raise ValidationError({"shipment": ["Shipment must be an object"]})
            shipment.setdefault("ship_to", ship_to_from_order(order))
            shipment.setdefault("ship_from", get_config().ship_from.as_payload())
            payload = {"shipment": shipment}
        else:
            raise ValidationError({"shipment": ["Either rate_id or shipment is required"]})

        label = get_rate_api().create_label(payload)
        shipment_label = order.record_label(label)
        repo.add(order)

        logger.info(
            "Shipping label created",
            order_id=str(order.id),
            label_id=shipment_label.label_id,
            tracking_number=shipment_label.tracking_number,
        )
        return {
            "order_id": str(order.id),
            "label_id": shipment_label.label_id,
            "carrier": shipment_label.carrier,
            "tracking_number": shipment_label.tracking_number,
            "label_url": shipment_label.label_url,
        }
