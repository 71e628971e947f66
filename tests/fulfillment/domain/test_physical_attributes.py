"""Tests for physical attribute resolution of cart lines."""

from storefront.catalogue.attributes import (
    CartLine,
    PhysicalAttributesResolver,
    ShippingClass,
    normalize_shipping_class,
    parse_box_dimensions,
)
from storefront.catalogue.product import Product, Variant
from storefront.config import PackagingDefaults


def _resolver(product=None, defaults=None):
    return PhysicalAttributesResolver(defaults or PackagingDefaults(), finder=lambda product_id, sku: product)


def _product(**overrides):
    attributes = {"sku": "LIFT-KIT-4IN", "title": "4in Lift Kit"}
    attributes.update(overrides)
    return Product(**attributes)


class TestParseBoxDimensions:
    def test_parses_lxwxh(self):
        assert parse_box_dimensions("24x16x8") == (24.0, 16.0, 8.0)

    def test_accepts_spaces_decimals_and_upper_x(self):
        assert parse_box_dimensions(" 10.5 X 4 x .5 ") == (10.5, 4.0, 0.5)

    def test_rejects_two_sides(self):
        assert parse_box_dimensions("24x16") is None

    def test_rejects_units_text(self):
        assert parse_box_dimensions("24in x 16in x 8in") is None

    def test_rejects_zero_side(self):
        assert parse_box_dimensions("24x0x8") is None

    def test_empty_is_none(self):
        assert parse_box_dimensions("") is None
        assert parse_box_dimensions(None) is None


class TestNormalizeShippingClass:
    def test_known_values_ignore_case_and_punctuation(self):
        assert normalize_shipping_class("Freight") is ShippingClass.FREIGHT
        assert normalize_shipping_class("install-only") is ShippingClass.INSTALL_ONLY
        assert normalize_shipping_class("Free Shipping") is ShippingClass.FREE_SHIPPING
        assert normalize_shipping_class("HAZARDOUS") is ShippingClass.HAZARDOUS

    def test_install_service_alias(self):
        assert normalize_shipping_class("Install Service") is ShippingClass.INSTALL_ONLY

    def test_unknown_and_empty_are_standard(self):
        assert normalize_shipping_class("overnight-please") is ShippingClass.STANDARD
        assert normalize_shipping_class(None) is ShippingClass.STANDARD
        assert normalize_shipping_class("") is ShippingClass.STANDARD


class TestResolveFoundProduct:
    def test_uses_product_attributes(self):
        product = _product(shipping_weight=18.5, box_dimensions="30x12x10", shipping_class="standard")
        resolved = _resolver(product).resolve(CartLine(quantity=2, sku="LIFT-KIT-4IN"))

        assert resolved.found is True
        assert resolved.quantity == 2
        assert resolved.weight == 18.5
        assert resolved.dimensions == (30.0, 12.0, 10.0)
        assert resolved.shipping_class is ShippingClass.STANDARD

    def test_variant_overrides_weight_and_dimensions(self):
        product = _product(shipping_weight=18.5, box_dimensions="30x12x10")
        product.add_variants(Variant(sku="LIFT-KIT-6IN", shipping_weight=24.0, box_dimensions="36x14x10"))

        resolved = _resolver(product).resolve(CartLine(quantity=1, sku="LIFT-KIT-4IN", variant_sku="lift-kit-6in"))

        assert resolved.weight == 24.0
        assert resolved.dimensions == (36.0, 14.0, 10.0)
        assert resolved.reference == "lift-kit-6in"

    def test_variant_without_overrides_falls_back_to_product(self):
        product = _product(shipping_weight=18.5, box_dimensions="30x12x10")
        product.add_variants(Variant(sku="LIFT-KIT-BLK"))

        resolved = _resolver(product).resolve(CartLine(quantity=1, variant_sku="LIFT-KIT-BLK"))

        assert resolved.weight == 18.5
        assert resolved.dimensions == (30.0, 12.0, 10.0)

    def test_missing_weight_and_bad_dimensions_use_defaults(self):
        product = _product(box_dimensions="large")
        resolved = _resolver(product).resolve(CartLine(quantity=1, sku="LIFT-KIT-4IN"))

        assert resolved.found is True
        assert resolved.weight == 2.0
        assert resolved.dimensions == (12.0, 9.0, 3.0)

    def test_ships_alone_and_class_carried_through(self):
        product = _product(ships_alone=True, shipping_class="Hazardous")
        resolved = _resolver(product).resolve(CartLine(quantity=1, sku="LIFT-KIT-4IN"))

        assert resolved.ships_alone is True
        assert resolved.shipping_class is ShippingClass.HAZARDOUS


class TestResolveUnknownProduct:
    def test_unknown_product_uses_configured_defaults(self):
        defaults = PackagingDefaults(default_weight_lb=3.0, default_length=10, default_width=8, default_height=4)
        resolved = _resolver(None, defaults).resolve(CartLine(quantity=3, sku="NOPE-001"))

        assert resolved.found is False
        assert resolved.quantity == 3
        assert resolved.weight == 3.0
        assert resolved.dimensions == (10, 8, 4)
        assert resolved.shipping_class is ShippingClass.STANDARD
        assert resolved.reference == "NOPE-001"

    def test_lookup_failure_falls_back_to_defaults(self):
        def failing_finder(product_id, sku):
            raise RuntimeError("catalogue down")

        resolver = PhysicalAttributesResolver(PackagingDefaults(), finder=failing_finder)
        resolved = resolver.resolve(CartLine(quantity=1, sku="LIFT-KIT-4IN"))

        assert resolved.found is False
        assert resolved.weight == 2.0


class TestLineQuantity:
    def test_fractional_quantity_rounds_down_to_at_least_one(self):
        resolver = _resolver(None)
        assert resolver.resolve(CartLine(quantity=2.7, sku="A")).quantity == 2
        assert resolver.resolve(CartLine(quantity=0.4, sku="A")).quantity == 1

    def test_non_positive_or_garbage_quantity_is_zero(self):
        resolver = _resolver(None)
        assert resolver.resolve(CartLine(quantity=0, sku="A")).quantity == 0
        assert resolver.resolve(CartLine(quantity=-2, sku="A")).quantity == 0
        assert resolver.resolve(CartLine(quantity="abc", sku="A")).quantity == 0

    def test_from_dict_accepts_camel_case_keys(self):
        line = CartLine.from_dict({"productId": "p-1", "variantSku": "V-1", "quantity": 2})
        assert line.product_id == "p-1"
        assert line.variant_sku == "V-1"
        assert line.quantity == 2
