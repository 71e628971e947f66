"""Storefront API routers."""

from storefront.api.routes import (
    checkout_router,
    maintenance_router,
    order_router,
    shipping_router,
    webhook_router,
)

__all__ = [
    "checkout_router",
    "maintenance_router",
    "order_router",
    "shipping_router",
    "webhook_router",
]
