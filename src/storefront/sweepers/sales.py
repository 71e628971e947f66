"""Sale flag refresh: switch scheduled sales on and off.

Triggered periodically by an external scheduler via the maintenance API
endpoint. A product with ``on_sale`` set becomes ``sale_active`` once its
start date has passed (and its end date has not), and stops being active once
the end date passes.
"""

from datetime import UTC, datetime

import structlog
from protean import handle
from protean.fields import DateTime
from protean.utils.globals import current_domain

from storefront.catalogue.product import Product, as_utc
from storefront.domain import storefront

logger = structlog.get_logger(__name__)


@storefront.command(part_of="Product")
class RefreshSaleStatus:
    as_of = DateTime()  # Optional: defaults to now


@storefront.command_handler(part_of=Product)
class RefreshSaleStatusHandler:
    @handle(RefreshSaleStatus)
    def refresh_sale_status(self, command):
        now = as_utc(command.as_of) or datetime.now(UTC)
        repo = current_domain.repository_for(Product)
        on_sale = repo._dao.query.filter(on_sale=True).all().items

        activated = deactivated = 0
        for product in on_sale:
            try:
                if product.sale_should_activate(now):
                    product.sale_active = True
                    repo.add(product)
                    activated += 1
                    logger.info("Sale activated", product_id=str(product.id), sku=product.sku)
                elif product.sale_should_deactivate(now):
                    product.sale_active = False
                    repo.add(product)
                    deactivated += 1
                    logger.info("Sale ended", product_id=str(product.id), sku=product.sku)
            except Exception as exc:
                logger.warning("Failed to refresh sale status", product_id=str(product.id), error=str(exc))

        logger.info("Sale status refresh complete", activated=activated, deactivated=deactivated)
        return {"activated": activated, "deactivated": deactivated}
