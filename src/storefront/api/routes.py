"""FastAPI routes: shipping, checkout, orders, webhooks and maintenance."""

import hmac
import json
from dataclasses import asdict

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from protean.utils.globals import current_domain

from storefront.api.schemas import (
    CartItem,
    CartQuoteResponse,
    CheckoutSessionResponse,
    CreateCheckoutSessionRequest,
    CreateLabelRequest,
    DeliveryResponse,
    ExpireOrdersRequest,
    ExpireOrdersResponse,
    LabelResponse,
    LiveRatesRequest,
    LiveRatesResponse,
    OrderStatusResponse,
    RateEstimateRequest,
    RateEstimateResponse,
    RefreshSalesRequest,
    RefreshSalesResponse,
    ShippingQuoteRequest,
    UpdateOrderStatusRequest,
)
from storefront.catalogue.attributes import CartLine, PhysicalAttributesResolver
from storefront.config import get_config
from storefront.ordering.checkout import CreateCheckoutSession
from storefront.ordering.delivery import ConfirmDelivery
from storefront.ordering.status import UpdateOrderStatus
from storefront.payments.gateway import get_gateway
from storefront.payments.gateway.port import WebhookSignatureError
from storefront.reconciliation.payment_events import dispatch_payment_event
from storefront.reconciliation.shipstation import ReconcileShipStationEvent
from storefront.reconciliation.signatures import signature_headers, verify_hmac_signature
from storefront.reconciliation.tracking import tracking_command_from_payload
from storefront.shipping.carrier import get_rate_api
from storefront.shipping.carrier.port import CarrierError
from storefront.shipping.labels import CreateShippingLabel
from storefront.shipping.planner import Package, PackagePlan, plan_cart
from storefront.shipping.quoter import FormulaQuoter, LiveRateQuoter, RateQuoteResult, quote_cart
from storefront.sweepers.expiry import ExpireAbandonedOrders
from storefront.sweepers.sales import RefreshSaleStatus
from storefront.utils.logging import add_context

logger = structlog.get_logger(__name__)


def require_admin_token(x_admin_token: str = Header(default="")) -> None:
    """Reject the request unless it carries the configured admin token."""
    expected = get_config().admin.api_token
    if expected and not hmac.compare_digest(x_admin_token.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Unauthorized")


def _plan(items: list[CartItem]) -> PackagePlan:
    config = get_config()
    resolver = PhysicalAttributesResolver(config.packaging)
    lines = [CartLine.from_dict(item.model_dump(exclude_none=True)) for item in items]
    return plan_cart(lines, resolver, config.thresholds)


def _rates_payload(result: RateQuoteResult) -> dict:
    rates = [asdict(rate) for rate in result.rates]
    return {
        "success": result.success,
        "best_rate": rates[0] if rates else None,
        "rates": rates,
        "carrier_ids": list(result.carrier_ids),
    }


# ---------------------------------------------------------------------------
# Shipping Router
# ---------------------------------------------------------------------------
shipping_router = APIRouter(prefix="/shipping", tags=["shipping"])


@shipping_router.post("/quote", response_model=CartQuoteResponse)
async def quote_shipping(body: ShippingQuoteRequest) -> CartQuoteResponse:
    """Formula shipping quote for a cart; never calls a carrier."""
    plan = _plan(body.items)
    quote = FormulaQuoter(get_config().rates).quote(plan)
    return CartQuoteResponse(quote=quote.as_dict(), plan=plan.summary())


@shipping_router.post("/rates", response_model=LiveRatesResponse)
def live_rates(body: LiveRatesRequest) -> LiveRatesResponse:
    """Live carrier rates for a cart, with the formula quote as fallback when none come back."""
    lines = [CartLine.from_dict(item.model_dump(exclude_none=True)) for item in body.items]
    quote = quote_cart(lines, body.ship_to.model_dump(exclude_none=True), carrier_ids=body.carrier_ids)
    return LiveRatesResponse(
        **_rates_payload(quote.result),
        plan=quote.plan.summary(),
        fallback=quote.fallback.as_dict() if quote.fallback else None,
        install_only=quote.install_only,
        freight=quote.freight,
        message=quote.message,
    )


@shipping_router.post("/estimate", response_model=RateEstimateResponse)
def estimate_rates(body: RateEstimateRequest) -> RateEstimateResponse:
    """Live rates for a single parcel described directly by weight and dimensions."""
    config = get_config()
    length, width, height = config.packaging.default_dims
    package = Package(
        weight=body.weight_lb,
        length=body.length or length,
        width=body.width or width,
        height=body.height or height,
    )
    plan = PackagePlan(packages=(package,), total_weight=body.weight_lb, chargeable_weight=body.weight_lb)
    result = LiveRateQuoter(get_rate_api(), config.carrier).quote(
        plan,
        config.ship_from,
        body.ship_to.model_dump(exclude_none=True),
        body.carrier_ids,
    )
    return RateEstimateResponse(**_rates_payload(result))


@shipping_router.post(
    "/labels",
    status_code=201,
    response_model=LabelResponse,
    dependencies=[Depends(require_admin_token)],
)
def create_label(body: CreateLabelRequest) -> LabelResponse:
    """Buy a shipping label for an order and attach it."""
    add_context(order_id=body.order_id)
    command = CreateShippingLabel(
        order_id=body.order_id,
        rate_id=body.rate_id,
        shipment=json.dumps(body.shipment) if body.shipment is not None else None,
    )
    try:
        result = current_domain.process(command, asynchronous=False)
    except CarrierError as exc:
        raise HTTPException(status_code=502, detail=str(exc))
    return LabelResponse(**result)


# ---------------------------------------------------------------------------
# Checkout Router
# ---------------------------------------------------------------------------
checkout_router = APIRouter(prefix="/checkout", tags=["checkout"])


@checkout_router.post("/sessions", status_code=201, response_model=CheckoutSessionResponse)
def create_checkout_session(body: CreateCheckoutSessionRequest) -> CheckoutSessionResponse:
    """Open a hosted payment session and hold stock for the cart."""
    command = CreateCheckoutSession(
        items=json.dumps([item.model_dump(exclude_none=True) for item in body.items]),
        customer_email=body.customer_email,
        success_url=body.success_url,
        cancel_url=body.cancel_url,
        marketing_opt_in=body.marketing_opt_in,
    )
    result = current_domain.process(command, asynchronous=False)
    return CheckoutSessionResponse(**result)


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"], dependencies=[Depends(require_admin_token)])


@order_router.post("/{order_id}/status", response_model=OrderStatusResponse)
async def update_order_status(order_id: str, body: UpdateOrderStatusRequest) -> OrderStatusResponse:
    """Set an order's status by hand."""
    add_context(order_id=order_id)
    result = current_domain.process(UpdateOrderStatus(order_id=order_id, status=body.status), asynchronous=False)
    return OrderStatusResponse(**result)


@order_router.put("/{order_id}/deliver", response_model=DeliveryResponse)
async def confirm_delivery(order_id: str) -> DeliveryResponse:
    """Mark an order delivered."""
    add_context(order_id=order_id)
    result = current_domain.process(ConfirmDelivery(order_id=order_id), asynchronous=False)
    return DeliveryResponse(**result)


# ---------------------------------------------------------------------------
# Webhook Router
# ---------------------------------------------------------------------------
webhook_router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@webhook_router.post("/stripe")
async def stripe_webhook(request: Request, stripe_signature: str = Header(default="")) -> JSONResponse:
    """Payment processor events: checkout completion, payment success and reversals."""
    raw_body = await request.body()
    try:
        event = get_gateway().construct_event(raw_body, stripe_signature)
    except WebhookSignatureError as exc:
        logger.warning("Payment webhook signature rejected", error=str(exc))
        raise HTTPException(status_code=400, detail=f"Webhook signature verification failed: {exc}")
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid payload")

    return JSONResponse(content=await run_in_threadpool(dispatch_payment_event, event))


@webhook_router.post("/shipstation")
async def shipstation_webhook(request: Request) -> JSONResponse:
    """Shipment notifications; the body must carry a valid HMAC-SHA256 signature."""
    raw_body = await request.body()
    if not raw_body:
        raise HTTPException(status_code=400, detail="Empty payload")

    secret = get_config().shipstation.webhook_secret
    if not secret:
        logger.error("ShipStation webhook secret is not configured")
        raise HTTPException(status_code=500, detail="Webhook secret not configured")

    if not signature_headers(request.headers):
        raise HTTPException(status_code=401, detail="Missing ShipStation signature")
    if not verify_hmac_signature(raw_body, secret, request.headers):
        logger.warning("ShipStation webhook signature rejected")
        raise HTTPException(status_code=401, detail="Invalid ShipStation signature")

    try:
        payload = json.loads(raw_body)
    except ValueError:
        raise HTTPException(status_code=400, detail="Invalid JSON payload")
    if not isinstance(payload, dict):
        raise HTTPException(status_code=400, detail="Invalid JSON payload")

    try:
        command = ReconcileShipStationEvent(body=json.dumps(payload))
        result = await run_in_threadpool(current_domain.process, command, asynchronous=False)
    except CarrierError as exc:
        raise HTTPException(status_code=502, detail=str(exc))

    status_code = 202 if result["status"] in ("ignored", "pending") else 200
    return JSONResponse(status_code=status_code, content=result)


@webhook_router.post("/tracking", dependencies=[Depends(require_admin_token)])
async def tracking_webhook(body: dict) -> JSONResponse:
    """Carrier tracker updates keyed by tracking number."""
    command = tracking_command_from_payload(body)
    if command is None:
        raise HTTPException(status_code=400, detail="Missing tracking number")

    result = current_domain.process(command, asynchronous=False)
    status_code = 202 if result["status"] == "pending" else 200
    return JSONResponse(status_code=status_code, content=result)


# ---------------------------------------------------------------------------
# Maintenance Router
# ---------------------------------------------------------------------------
maintenance_router = APIRouter(
    prefix="/maintenance",
    tags=["maintenance"],
    dependencies=[Depends(require_admin_token)],
)


@maintenance_router.post("/expire-orders", response_model=ExpireOrdersResponse)
async def expire_orders(body: ExpireOrdersRequest | None = None) -> ExpireOrdersResponse:
    """Expire abandoned checkouts and release their holds."""
    body = body or ExpireOrdersRequest()
    older_than_hours = body.older_than_hours
    if older_than_hours is None:
        older_than_hours = get_config().sweepers.reservation_ttl_hours

    command = ExpireAbandonedOrders(older_than_hours=older_than_hours, as_of=body.as_of)
    expired_count = current_domain.process(command, asynchronous=False)
    return ExpireOrdersResponse(expired_count=expired_count)


@maintenance_router.post("/refresh-sales", response_model=RefreshSalesResponse)
async def refresh_sales(body: RefreshSalesRequest | None = None) -> RefreshSalesResponse:
    """Switch scheduled sales on and off."""
    body = body or RefreshSalesRequest()
    result = current_domain.process(RefreshSaleStatus(as_of=body.as_of), asynchronous=False)
    return RefreshSalesResponse(**result)
