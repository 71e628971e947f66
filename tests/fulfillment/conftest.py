import pytest
from protean.integrations.pytest import DomainFixture

from storefront.config import reset_config
from storefront.notifications.channel import reset_channels
from storefront.payments.gateway import reset_gateway
from storefront.shipping.carrier import reset_carriers


@pytest.fixture(scope="session")
def storefront_bed():
    from storefront.domain import storefront

    bed = DomainFixture(storefront)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(storefront_bed):
    with storefront_bed.domain_context():
        yield

        from protean import current_domain

        # Clear all databases
        for _, provider in current_domain.providers.items():
            provider._data_reset()


@pytest.fixture(autouse=True)
def _adapters():
    """Fresh config and fake adapters for every test."""
    reset_config()
    reset_gateway()
    reset_carriers()
    reset_channels()
    yield
    reset_config()
    reset_gateway()
    reset_carriers()
    reset_channels()
