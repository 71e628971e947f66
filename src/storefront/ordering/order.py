"""Order aggregate: the single record that payment and carrier webhooks reconcile into.

Orders are captured as ``pending`` when a checkout session is created, or
directly as ``paid`` when the payment webhook arrives first. Status changes go
through ``transition_to`` so the lifecycle guard in ``ordering.lifecycle`` is
applied to every write. Fulfillment data (carrier, service, tracking, label)
is kept flat on the order; tracking events and the shipping log are
append-only child entities.
"""

from datetime import UTC, datetime

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)
from protean.utils.globals import current_domain

from storefront.domain import storefront
from storefront.ordering.events import (
    OrderDelivered,
    OrderPaid,
    OrderPlaced,
    OrderStatusChanged,
    ShipmentLabelRecorded,
    TrackingUpdated,
)
from storefront.ordering.lifecycle import (
    FulfillmentStatus,
    OrderStatus,
    PaymentStatus,
    is_invalid_transition,
)

# Order attributes a carrier shipment patch may write
SHIPMENT_PATCH_FIELDS = (
    "shipping_carrier",
    "service_carrier",
    "service_name",
    "service_code",
    "service_amount",
    "service_currency",
    "shipstation_order_id",
    "shipstation_label_id",
    "label_url",
    "tracking_number",
    "tracking_url",
    "weight_value",
    "weight_unit",
)

# Fulfillment statuses a shipment notification may move to label_created
PRE_SHIPMENT_STATUSES = (None, "", FulfillmentStatus.UNFULFILLED.value, FulfillmentStatus.LABEL_CREATED.value)


def generate_order_number(reference: str, now: datetime | None = None) -> str:
    """``ORD-YYYYMMDD-XXXXXX`` from the tail of a stable reference (session id, order id)."""
    now = now or datetime.now(UTC)
    tail = "".join(ch for ch in (reference or "") if ch.isalnum())[-6:].upper() or "000000"
    return f"ORD-{now:%Y%m%d}-{tail}"


@storefront.value_object(part_of="Order")
class ShippingAddress:
    name = String(max_length=255)
    phone = String(max_length=50)
    email = String(max_length=255)
    address_line1 = String(max_length=255)
    address_line2 = String(max_length=255)
    city = String(max_length=100)
    state = String(max_length=100)
    postal_code = String(max_length=20)
    country = String(max_length=100, default="US")


@storefront.entity(part_of="Order")
class CartLine:
    product_id = Identifier()
    sku = String(max_length=100)
    variant_sku = String(max_length=100)
    name = String(max_length=255)
    quantity = Integer(required=True, min_value=1)
    price = Float(default=0.0)
    image_url = String(max_length=1000, sanitize=False)


@storefront.entity(part_of="Order")
class TrackingEvent:
    status = String(max_length=50)
    status_detail = String(max_length=255)
    message = String(max_length=1000)
    city = String(max_length=100)
    state = String(max_length=100)
    zip = String(max_length=20)
    country = String(max_length=100)
    occurred_at = String(max_length=50)
    source = String(max_length=50)


@storefront.entity(part_of="Order")
class ShippingLogEntry:
    status = String(max_length=50, required=True)
    message = String(max_length=1000)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=1000, sanitize=False)
    label_url = String(max_length=1000, sanitize=False)
    weight_value = Float()
    weight_unit = String(max_length=20)
    created_at = DateTime(required=True)


@storefront.entity(part_of="Order")
class ShipmentLabel:
    label_id = String(max_length=255)
    carrier = String(max_length=100)
    service_code = String(max_length=100)
    tracking_number = String(max_length=255)
    label_url = String(max_length=1000, sanitize=False)
    cost = Float()
    currency = String(max_length=3)
    created_at = DateTime(required=True)


@storefront.aggregate
class Order:
    order_number = String(max_length=50)
    status = String(choices=OrderStatus, default=OrderStatus.PENDING.value)
    payment_status = String(choices=PaymentStatus, default=PaymentStatus.UNPAID.value)

    customer_id = Identifier()
    customer_email = String(max_length=255)
    customer_name = String(max_length=255)
    cart = HasMany(CartLine)
    shipping_address = ValueObject(ShippingAddress)

    currency = String(max_length=3, default="USD")
    amount_subtotal = Float(default=0.0)
    amount_tax = Float(default=0.0)
    amount_shipping = Float(default=0.0)
    total_amount = Float(default=0.0)
    shipping_quote_label = String(max_length=100)

    # Payment linkage
    stripe_session_id = String(max_length=255)
    payment_intent_id = String(max_length=255)
    charge_id = String(max_length=255)
    card_brand = String(max_length=50)
    card_last4 = String(max_length=4)
    receipt_url = String(max_length=1000, sanitize=False)

    # Fulfillment
    fulfillment_status = String(choices=FulfillmentStatus)
    fulfillment_method = String(max_length=50)
    shipping_carrier = String(max_length=100)
    service_carrier = String(max_length=100)
    service_name = String(max_length=255)
    service_code = String(max_length=100)
    service_amount = Float()
    service_currency = String(max_length=3)
    tracking_number = String(max_length=255)
    tracking_url = String(max_length=1000, sanitize=False)
    label_url = String(max_length=1000, sanitize=False)
    status_detail = String(max_length=255)
    weight_value = Float()
    weight_unit = String(max_length=20)
    estimated_delivery = String(max_length=50)
    delivered_at = DateTime()
    tracking_events = HasMany(TrackingEvent)
    shipping_log = HasMany(ShippingLogEntry)
    shipments = HasMany(ShipmentLabel)

    # Carrier linkage
    shipstation_order_id = String(max_length=100)
    shipstation_order_key = String(max_length=255)
    shipstation_label_id = String(max_length=100)

    confirmation_email_sent = Boolean(default=False)
    notes = Text()
    created_at = DateTime()
    updated_at = DateTime()

    @classmethod
    def place(
        cls,
        lines: list[dict],
        status: OrderStatus = OrderStatus.PENDING,
        order_number: str | None = None,
        **attributes,
    ) -> "Order":
        """Capture a new order with its cart lines."""
        now = datetime.now(UTC)
        order = cls(
            status=status.value,
            created_at=attributes.pop("created_at", None) or now,
            updated_at=now,
            **attributes,
        )
        order.order_number = order_number or generate_order_number(order.stripe_session_id or str(order.id), now)
        for line in lines:
            order.add_cart(CartLine(**line))
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                order_number=order.order_number,
                status=order.status,
                stripe_session_id=order.stripe_session_id,
                line_count=len(lines),
                placed_at=now,
            )
        )
        return order

    @property
    def is_paid(self) -> bool:
        return self.payment_status == PaymentStatus.PAID.value or self.status == OrderStatus.PAID.value

    def ledger_items(self) -> list[dict]:
        """Cart lines in the shape the inventory ledger consumes."""
        return [
            {
                "product_id": line.product_id,
                "variant_sku": line.variant_sku,
                "quantity": line.quantity,
            }
            for line in self.cart or []
        ]

    # -------------------------------------------------------------------
    # Status lifecycle
    # -------------------------------------------------------------------
    def transition_to(self, status: OrderStatus | str) -> None:
        new_status = status.value if isinstance(status, OrderStatus) else str(status).strip().lower()
        if is_invalid_transition(self.status, new_status):
            raise ValidationError({"status": [f"Cannot transition from {self.status} to {new_status}"]})

        previous = self.status
        if previous == new_status:
            return

        now = datetime.now(UTC)
        self.status = new_status
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                previous_status=previous,
                new_status=new_status,
                changed_at=now,
            )
        )

    def mark_paid(
        self,
        payment_intent_id: str | None = None,
        charge_id: str | None = None,
        card_brand: str | None = None,
        card_last4: str | None = None,
        receipt_url: str | None = None,
    ) -> None:
        self.transition_to(OrderStatus.PAID)
        self.payment_status = PaymentStatus.PAID.value
        for name, value in (
            ("payment_intent_id", payment_intent_id),
            ("charge_id", charge_id),
            ("card_brand", card_brand),
            ("card_last4", card_last4),
            ("receipt_url", receipt_url),
        ):
            if value:
                setattr(self, name, value)

        now = datetime.now(UTC)
        self.updated_at = now
        self.raise_(OrderPaid(order_id=str(self.id), payment_intent_id=self.payment_intent_id, paid_at=now))

    def cancel(self, payment_status: PaymentStatus = PaymentStatus.REFUNDED) -> None:
        self.transition_to(OrderStatus.CANCELLED)
        self.payment_status = payment_status.value

    def start_fulfillment(self) -> None:
        if not self.fulfillment_status:
            self.fulfillment_status = FulfillmentStatus.UNFULFILLED.value
        if not self.fulfillment_method:
            self.fulfillment_method = "ship"
        self.updated_at = datetime.now(UTC)

    # -------------------------------------------------------------------
    # Carrier data
    # -------------------------------------------------------------------
    def apply_shipment_patch(self, patch: dict, log_entry: dict | None = None) -> list[str]:
        """Write every present patch field and append the shipping-log entry.

        Returns the names of the fields that were written.
        """
        patched = []
        for name in SHIPMENT_PATCH_FIELDS:
            value = patch.get(name)
            if value is None or value == "":
                continue
            setattr(self, name, value)
            patched.append(name)

        # Carrier scans that arrived first are never walked back
        if self.fulfillment_status in PRE_SHIPMENT_STATUSES:
            self.fulfillment_status = FulfillmentStatus.LABEL_CREATED.value
            patched.append("fulfillment_status")

        now = datetime.now(UTC)
        if log_entry:
            entry = dict(log_entry)
            entry["created_at"] = entry.get("created_at") or now
            self.add_shipping_log(ShippingLogEntry(**entry))
            patched.append("shipping_log")

        self.updated_at = now
        self.raise_(
            ShipmentLabelRecorded(
                order_id=str(self.id),
                carrier=self.shipping_carrier,
                tracking_number=self.tracking_number,
                recorded_at=now,
            )
        )
        return patched

    def record_label(self, label: dict) -> ShipmentLabel:
        now = datetime.now(UTC)
        cost = label.get("shipment_cost") or {}
        shipment = ShipmentLabel(
            label_id=label.get("label_id"),
            carrier=label.get("carrier_code"),
            service_code=label.get("service_code"),
            tracking_number=label.get("tracking_number"),
            label_url=label.get("label_url"),
            cost=cost.get("amount"),
            currency=(cost.get("currency") or "").upper() or None,
            created_at=now,
        )
        self.add_shipments(shipment)

        patch = {
            "shipping_carrier": label.get("carrier_code"),
            "service_code": label.get("service_code"),
            "tracking_number": label.get("tracking_number"),
            "label_url": label.get("label_url"),
        }
        self.apply_shipment_patch(
            patch,
            {
                "status": "Label Created",
                "message": f"Label purchased ({label.get('carrier_code') or 'carrier'})",
                "tracking_number": label.get("tracking_number"),
                "label_url": label.get("label_url"),
                "created_at": now,
            },
        )
        return shipment

    def record_tracking(
        self,
        fulfillment_status: FulfillmentStatus,
        status_detail: str | None = None,
        estimated_delivery: str | None = None,
        events: list[dict] | None = None,
        source: str = "carrier",
    ) -> None:
        """Apply a carrier tracking update and append its events.

        Each event dict may carry ``status``, ``status_detail``, ``message``,
        ``city``, ``state``, ``zip``, ``country`` and ``occurred_at``. With no
        events, a single event summarizing the update is appended.
        """
        now = datetime.now(UTC)

        self.fulfillment_status = fulfillment_status.value
        if status_detail:
            self.status_detail = status_detail
        if estimated_delivery:
            self.estimated_delivery = estimated_delivery

        for event in events or [{"status": fulfillment_status.value, "status_detail": status_detail}]:
            self.add_tracking_events(
                TrackingEvent(
                    status=event.get("status") or fulfillment_status.value,
                    status_detail=event.get("status_detail"),
                    message=event.get("message"),
                    city=event.get("city"),
                    state=event.get("state"),
                    zip=event.get("zip"),
                    country=event.get("country"),
                    occurred_at=event.get("occurred_at") or now.isoformat(),
                    source=source,
                )
            )

        if fulfillment_status is FulfillmentStatus.DELIVERED:
            self.delivered_at = now
            self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))

        self.updated_at = now
        self.raise_(
            TrackingUpdated(
                order_id=str(self.id),
                tracking_number=self.tracking_number or "",
                fulfillment_status=fulfillment_status.value,
                occurred_at=now,
            )
        )

    def confirm_delivery(self) -> None:
        if self.status in (OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value, OrderStatus.EXPIRED.value):
            raise ValidationError({"status": [f"Cannot confirm delivery of a {self.status} order"]})
        if self.fulfillment_status == FulfillmentStatus.DELIVERED.value:
            return

        now = datetime.now(UTC)
        self.fulfillment_status = FulfillmentStatus.DELIVERED.value
        self.delivered_at = now
        self.updated_at = now
        self.raise_(OrderDelivered(order_id=str(self.id), delivered_at=now))


def find_order_by(**filters) -> Order | None:
    """First order matching ``filters`` exactly, or None."""
    if not all(filters.values()):
        return None
    repo = current_domain.repository_for(Order)
    matches = repo._dao.query.filter(**filters).all().items
    return matches[0] if matches else None
