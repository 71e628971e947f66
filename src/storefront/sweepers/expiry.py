"""Abandoned order expiry: release stale checkout holds.

Designed to be triggered periodically by an external scheduler via the
maintenance API endpoint. Pending, unpaid orders older than the threshold
have their reservation released (no restock: the stock never left the shelf)
and are moved to ``expired``. Each candidate is expired through its own
command so one failure does not stop the sweep.
"""

from datetime import UTC, datetime, timedelta

import structlog
from protean import handle
from protean.fields import DateTime, Identifier, Integer
from protean.utils.globals import current_domain

from storefront.catalogue.product import as_utc
from storefront.domain import storefront
from storefront.inventory.ledger import EXPIRED_REASON, InventoryLedger
from storefront.ordering.lifecycle import OrderStatus
from storefront.ordering.order import Order

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Order")
class ExpireAbandonedOrders:
    """Expire pending, unpaid orders created before the cutoff."""

    older_than_hours = Integer(default=24)
    as_of = DateTime()  # Optional: defaults to now


@storefront.command(part_of="Order")
class ExpireOrder:
    order_id = Identifier(required=True)


@storefront.command_handler(part_of=Order)
class ExpireOrderHandler:
    @handle(ExpireOrder)
    def expire_order(self, command):
        repo = current_domain.repository_for(Order)
        order = repo.get(command.order_id)
        if order.status != OrderStatus.PENDING.value or order.is_paid:
            return False

        InventoryLedger().release(str(order.id), order.ledger_items(), reason=EXPIRED_REASON, restock=False)
        order.transition_to(OrderStatus.EXPIRED)
        repo.add(order)
        return True


@storefront.command_handler(part_of=Order)
class ExpireAbandonedOrdersHandler:
    @handle(ExpireAbandonedOrders)
    def expire_abandoned_orders(self, command):
        as_of = as_utc(command.as_of) or datetime.now(UTC)
        threshold_hours = command.older_than_hours if command.older_than_hours is not None else 24
        cutoff = as_of - timedelta(hours=threshold_hours)

        logger.info("Checking for abandoned orders", cutoff=cutoff.isoformat(), threshold_hours=threshold_hours)

        pending = (
            current_domain.repository_for(Order)._dao.query.filter(status=OrderStatus.PENDING.value).all().items
        )
        candidates = [
            order
            for order in pending
            if not order.is_paid and order.created_at is not None and as_utc(order.created_at) < cutoff
        ]
        if not candidates:
            logger.info("No abandoned orders found")
            return 0

        expired_count = 0
        for order in candidates:
            try:
                if current_domain.process(ExpireOrder(order_id=str(order.id)), asynchronous=False):
                    expired_count += 1
                    logger.info(
                        "Expired abandoned order",
                        order_id=str(order.id),
                        order_number=order.order_number,
                        created_at=str(order.created_at),
                    )
            except Exception as exc:
                logger.warning("Failed to expire order", order_id=str(order.id), error=str(exc))

        logger.info("Abandoned order expiry complete", expired_count=expired_count)
        return expired_count
