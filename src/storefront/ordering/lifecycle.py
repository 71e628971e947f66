"""Order status lifecycle and carrier tracking vocabulary.

The transition guard is a blacklist of known-bad jumps rather than a full
transition table: anything not listed in ``_FORBIDDEN_TRANSITIONS`` is
allowed, including setting a status on an order that has none yet.
Cancelled and refunded orders accept no other status once entered.
"""

from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    PAID = "paid"
    UNFULFILLED = "unfulfilled"
    PROCESSING = "processing"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"
    EXPIRED = "expired"


class PaymentStatus(Enum):
    UNPAID = "unpaid"
    PAID = "paid"
    REFUNDED = "refunded"
    CANCELED = "canceled"


class FulfillmentStatus(Enum):
    UNFULFILLED = "unfulfilled"
    LABEL_CREATED = "label_created"
    IN_TRANSIT = "in_transit"
    OUT_FOR_DELIVERY = "out_for_delivery"
    DELIVERED = "delivered"
    RETURNED = "returned"
    FAILED = "failed"
    EXCEPTION = "exception"


# Statuses a human may set through the status-update endpoint
MANUAL_STATUSES = frozenset(
    {
        OrderStatus.PENDING.value,
        OrderStatus.UNFULFILLED.value,
        OrderStatus.PROCESSING.value,
        OrderStatus.FULFILLED.value,
        OrderStatus.CANCELLED.value,
        OrderStatus.REFUNDED.value,
    }
)

TERMINAL_STATUSES = frozenset({OrderStatus.CANCELLED.value, OrderStatus.REFUNDED.value})

_FORBIDDEN_TRANSITIONS = {
    (OrderStatus.FULFILLED.value, OrderStatus.PENDING.value),
    (OrderStatus.PENDING.value, OrderStatus.FULFILLED.value),
}

TRACKING_STATUS_MAP = {
    "pre_transit": FulfillmentStatus.LABEL_CREATED,
    "in_transit": FulfillmentStatus.IN_TRANSIT,
    "out_for_delivery": FulfillmentStatus.OUT_FOR_DELIVERY,
    "delivered": FulfillmentStatus.DELIVERED,
    "return_to_sender": FulfillmentStatus.RETURNED,
    "failure": FulfillmentStatus.FAILED,
    "unknown": FulfillmentStatus.EXCEPTION,
}


def _value(status) -> str | None:
    if status is None:
        return None
    if isinstance(status, Enum):
        return status.value
    return str(status).strip().lower() or None


def is_invalid_transition(current, requested) -> bool:
    """True when moving from ``current`` to ``requested`` is a known-bad jump."""
    current_value = _value(current)
    requested_value = _value(requested)

    if current_value is None:
        return False
    if current_value in TERMINAL_STATUSES and requested_value != current_value:
        return True
    return (current_value, requested_value) in _FORBIDDEN_TRANSITIONS


def map_tracking_status(code: str | None) -> FulfillmentStatus:
    """Map a carrier tracking code onto the fulfillment vocabulary; unknown codes become EXCEPTION."""
    key = (code or "").strip().lower()
    return TRACKING_STATUS_MAP.get(key, FulfillmentStatus.EXCEPTION)
