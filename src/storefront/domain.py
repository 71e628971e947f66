"""Storefront bounded context: Order Fulfillment and Inventory Reconciliation.

Resolves physical attributes and plans packages for shipping quotes, keeps the
per-product inventory ledger, drives orders through their status lifecycle,
and reconciles payment and carrier webhooks into a single order record.
"""

import logging

import structlog
from protean.domain import Domain

storefront = Domain(name="storefront")

logger = structlog.get_logger(__name__)

logging.getLogger("protean").setLevel(logging.WARNING)
