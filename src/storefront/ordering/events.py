"""Order domain events: facts about payment, status and shipment changes."""

from protean.fields import DateTime, Identifier, Integer, String

from storefront.domain import storefront


@storefront.event(part_of="Order")
class OrderPlaced:
    """An order record was captured, either at checkout or from a payment webhook."""

    __version__ = 1

    order_id = Identifier(required=True)
    order_number = String(required=True)
    status = String(required=True)
    stripe_session_id = String()
    line_count = Integer(default=0)
    placed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderPaid:
    __version__ = 1

    order_id = Identifier(required=True)
    payment_intent_id = String()
    paid_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderStatusChanged:
    __version__ = 1

    order_id = Identifier(required=True)
    previous_status = String()
    new_status = String(required=True)
    changed_at = DateTime(required=True)


@storefront.event(part_of="Order")
class ShipmentLabelRecorded:
    """A carrier label (and usually a tracking number) was attached to the order."""

    __version__ = 1

    order_id = Identifier(required=True)
    carrier = String()
    tracking_number = String()
    recorded_at = DateTime(required=True)


@storefront.event(part_of="Order")
class TrackingUpdated:
    __version__ = 1

    order_id = Identifier(required=True)
    tracking_number = String()
    fulfillment_status = String(required=True)
    occurred_at = DateTime(required=True)


@storefront.event(part_of="Order")
class OrderDelivered:
    __version__ = 1

    order_id = Identifier(required=True)
    delivered_at = DateTime(required=True)
