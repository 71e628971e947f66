"""Pydantic request/response schemas for the storefront API."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

# --- Shared ---


class CartItem(BaseModel):
    product_id: str | None = None
    sku: str | None = Field(None, max_length=100)
    variant_sku: str | None = Field(None, max_length=100)
    quantity: float = 1


class Address(BaseModel):
    name: str | None = None
    phone: str | None = None
    address_line1: str | None = None
    address_line2: str | None = None
    city: str | None = None
    state: str | None = None
    postal_code: str | None = None
    country: str = Field("US", max_length=2)


class ShippingQuoteResponse(BaseModel):
    amount_cents: int
    label: str
    min_days: int | None = None
    max_days: int | None = None
    freight: bool = False
    requires_shipping: bool = True


class PackagePlanResponse(BaseModel):
    requires_shipping: bool
    install_only_cart: bool
    package_count: int
    total_weight: float
    chargeable_weight: float
    freight: bool
    oversize: bool
    hazardous: bool
    install_only_count: int


class RateResponse(BaseModel):
    carrier: str
    carrier_id: str | None = None
    service_code: str | None = None
    service_name: str | None = None
    amount_cents: int
    currency: str
    delivery_days: int | None = None
    estimated_delivery_date: str | None = None
    rate_id: str | None = None


# --- Shipping ---


class ShippingQuoteRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [
                        {"sku": "LIFT-KIT-4IN", "quantity": 1},
                        {"product_id": "prod-001", "variant_sku": "MIRROR-BLK", "quantity": 2},
                    ]
                }
            ]
        }
    }

    items: list[CartItem]


class CartQuoteResponse(BaseModel):
    quote: ShippingQuoteResponse
    plan: PackagePlanResponse


class LiveRatesRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"sku": "LIFT-KIT-4IN", "quantity": 1}],
                    "ship_to": {
                        "address_line1": "500 Congress Ave",
                        "city": "Austin",
                        "state": "TX",
                        "postal_code": "78701",
                        "country": "US",
                    },
                    "carrier_ids": "se-123456,se-234567",
                }
            ]
        }
    }

    items: list[CartItem]
    ship_to: Address
    carrier_ids: list[str] | str | None = None


class LiveRatesResponse(BaseModel):
    success: bool
    best_rate: RateResponse | None = None
    rates: list[RateResponse] = []
    carrier_ids: list[str] = []
    plan: PackagePlanResponse
    fallback: ShippingQuoteResponse | None = None
    install_only: bool = False
    freight: bool = False
    message: str | None = None


class RateEstimateRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "ship_to": {"postal_code": "78701", "country": "US"},
                    "weight_lb": 12.5,
                    "length": 24,
                    "width": 16,
                    "height": 8,
                }
            ]
        }
    }

    ship_to: Address
    weight_lb: float = Field(..., gt=0)
    length: float | None = Field(None, gt=0)
    width: float | None = Field(None, gt=0)
    height: float | None = Field(None, gt=0)
    carrier_ids: list[str] | str | None = None


class RateEstimateResponse(BaseModel):
    success: bool
    best_rate: RateResponse | None = None
    rates: list[RateResponse] = []
    carrier_ids: list[str] = []


class CreateLabelRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {"order_id": "0b7c1d3e-5f1a-4c2b-9e8d-7a6b5c4d3e2f", "rate_id": "se-rate-998877"},
            ]
        }
    }

    order_id: str
    rate_id: str | None = None
    shipment: dict | None = None


class LabelResponse(BaseModel):
    order_id: str
    label_id: str | None = None
    carrier: str | None = None
    tracking_number: str | None = None
    label_url: str | None = None


# --- Checkout ---


class CheckoutItem(CartItem):
    name: str | None = Field(None, max_length=255)
    price: float | None = Field(None, ge=0)
    image_url: str | None = None


class CreateCheckoutSessionRequest(BaseModel):
    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "items": [{"sku": "LIFT-KIT-4IN", "quantity": 1}],
                    "customer_email": "jane@example.com",
                    "success_url": "https://shop.example.com/checkout/success",
                    "cancel_url": "https://shop.example.com/cart",
                    "marketing_opt_in": True,
                }
            ]
        }
    }

    items: list[CheckoutItem]
    customer_email: str | None = Field(None, max_length=255)
    success_url: str = Field(..., max_length=1000)
    cancel_url: str = Field(..., max_length=1000)
    marketing_opt_in: bool = False


class CheckoutSessionResponse(BaseModel):
    order_id: str
    session_id: str
    url: str | None = None
    shipping: ShippingQuoteResponse
    plan: PackagePlanResponse


# --- Orders ---


class UpdateOrderStatusRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"status": "processing"}]}}

    status: str = Field(..., max_length=50)


class OrderStatusResponse(BaseModel):
    order_id: str
    status: str


class DeliveryResponse(BaseModel):
    order_id: str
    fulfillment_status: str | None = None
    delivered_at: str | None = None


# --- Maintenance ---


class ExpireOrdersRequest(BaseModel):
    model_config = {"json_schema_extra": {"examples": [{"older_than_hours": 24}]}}

    older_than_hours: int | None = Field(None, ge=0)
    as_of: datetime | None = None


class ExpireOrdersResponse(BaseModel):
    expired_count: int


class RefreshSalesRequest(BaseModel):
    as_of: datetime | None = None


class RefreshSalesResponse(BaseModel):
    activated: int
    deactivated: int
