"""Application tests for quoting a cart against a destination address."""

import pytest
from protean import current_domain
from protean.exceptions import ValidationError

from storefront.catalogue.attributes import CartLine
from storefront.catalogue.product import Product
from storefront.shipping.carrier import get_rate_api
from storefront.shipping.quoter import quote_cart

AUSTIN = {
    "address_line1": "500 Congress Ave",
    "city": "Austin",
    "state": "TX",
    "postal_code": "78701",
    "country": "US",
}

GROUND_RATE = {
    "rate_id": "se-rate-ground",
    "carrier_id": "se-3809553",
    "carrier_friendly_name": "UPS",
    "service_code": "ups_ground",
    "shipping_amount": {"amount": 21.5, "currency": "usd"},
}


def _create_product(sku, **attributes):
    product = Product(sku=sku, title=sku.title(), price=199.0, **attributes)
    current_domain.repository_for(Product).add(product)


def _cart(sku, quantity=1):
    return [CartLine(quantity=quantity, sku=sku)]


class TestDestinationValidation:
    def test_postal_code_alone_is_not_enough(self):
        with pytest.raises(ValidationError) as exc:
            quote_cart(_cart("ANY"), {"postal_code": "78701"})

        assert exc.value.messages["ship_to"] == [
            "Missing destination.address_line1",
            "Missing destination.city",
            "Missing destination.state",
        ]
        assert get_rate_api().requests == []

    def test_blank_fields_count_as_missing(self):
        with pytest.raises(ValidationError) as exc:
            quote_cart(_cart("ANY"), {**AUSTIN, "city": "   "})

        assert exc.value.messages["ship_to"] == ["Missing destination.city"]

    def test_empty_cart(self):
        with pytest.raises(ValidationError) as exc:
            quote_cart([], AUSTIN)

        assert "items" in exc.value.messages


class TestInstallOnlyCart:
    def test_no_shipment_needed(self):
        _create_product("INSTALL", shipping_class="Install Only")

        quote = quote_cart(_cart("INSTALL"), AUSTIN)

        assert quote.install_only is True
        assert quote.freight is False
        assert quote.result.rates == ()
        assert quote.fallback.requires_shipping is False
        assert "install-only" in quote.message
        assert get_rate_api().requests == []


class TestFreightCart:
    def test_freight_class_skips_live_rates(self):
        _create_product("BUMPER", shipping_weight=200.0, box_dimensions="80x20x20", shipping_class="Freight")
        get_rate_api().configure(rates=[GROUND_RATE])

        quote = quote_cart(_cart("BUMPER"), AUSTIN)

        assert quote.freight is True
        assert quote.result.rates == ()
        assert quote.fallback.label == "Freight Shipping"
        assert quote.message.startswith("Freight required")
        assert get_rate_api().requests == []

    def test_heavy_cart_becomes_freight(self):
        _create_product("ENGINE-BLOCK", shipping_weight=60.0, box_dimensions="30x24x20")

        quote = quote_cart(_cart("ENGINE-BLOCK", quantity=3), AUSTIN)

        assert quote.freight is True
        assert get_rate_api().requests == []


class TestParcelCart:
    def test_live_rates_returned(self):
        get_rate_api().configure(rates=[GROUND_RATE])

        quote = quote_cart(_cart("ANY"), AUSTIN)

        assert quote.result.best_rate.rate_id == "se-rate-ground"
        assert quote.fallback is None
        assert quote.message is None

        sent = get_rate_api().requests[0]
        assert sent["to_city_locality"] == "Austin"
        assert sent["to_state_province"] == "TX"

    def test_formula_stands_in_when_no_rates(self):
        get_rate_api().configure(should_succeed=False)

        quote = quote_cart(_cart("ANY"), AUSTIN)

        assert quote.result.success is True
        assert quote.result.rates == ()
        assert quote.fallback.label == "Ground Shipping"
