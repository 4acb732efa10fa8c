"""Product catalog and menu management tests."""

import pytest

from storefront.errors import AccessDenied, NotFound, ValidationError
from storefront.services import product_service
from storefront.services.product_service import MAX_PRICE_CENTS


class TestCatalog:

    def test_only_available(self, ctx, admin, burger, fries):
        product_service.toggle_availability(ctx(admin), fries.id)
        assert [p["name"] for p in product_service.list_catalog()] == ["Chicken Burger"]

    def test_category_filter(self, burger, fries):
        assert [p["id"] for p in product_service.list_catalog(category="Sides")] == [fries.id]

    def test_admin_sees_everything(self, ctx, admin, burger, fries):
        product_service.toggle_availability(ctx(admin), fries.id)
        assert len(product_service.list_products(ctx(admin))) == 2


class TestManageProducts:

    def test_create(self, ctx, admin):
        product = product_service.create_product(
            ctx(admin), {"name": " Mango Lassi ", "price_cents": 12000, "category": "Drinks"}
        )
        assert product["name"] == "Mango Lassi"
        assert product["category"] == "drinks"
        assert product["is_available"] is True

    def test_default_category(self, ctx, admin):
        assert product_service.create_product(ctx(admin), {"name": "Mystery", "price_cents": 0})["category"] == "other"

    @pytest.mark.parametrize("data", [
        {"price_cents": 100},
        {"name": "", "price_cents": 100},
        {"name": "X", "price_cents": -1},
        {"name": "X", "price_cents": 10.5},
        {"name": "X", "price_cents": True},
        {"name": "X", "price_cents": MAX_PRICE_CENTS + 1},
        {"name": "X", "price_cents": 100, "stock": 4},
    ])
    def test_create_validation(self, ctx, admin, data):
        with pytest.raises(ValidationError):
            product_service.create_product(ctx(admin), data)

    def test_update(self, ctx, admin, burger):
        updated = product_service.update_product(ctx(admin), burger.id, {"price_cents": 38000, "description": "Now spicier"})
        assert updated["price_cents"] == 38000
        assert updated["description"] == "Now spicier"
        assert updated["name"] == "Chicken Burger"

    def test_toggle(self, ctx, admin, burger):
        assert product_service.toggle_availability(ctx(admin), burger.id)["is_available"] is False
        assert product_service.toggle_availability(ctx(admin), burger.id)["is_available"] is True

    def test_delete(self, ctx, admin, burger):
        product_service.delete_product(ctx(admin), burger.id)
        with pytest.raises(NotFound):
            product_service.update_product(ctx(admin), burger.id, {"price_cents": 1})

    @pytest.mark.parametrize("who", ["employee", "courier", "customer"])
    def test_admin_only(self, request, ctx, burger, who):
        user = request.getfixturevalue(who)
        with pytest.raises(AccessDenied):
            product_service.create_product(ctx(user), {"name": "Nope", "price_cents": 1})
        with pytest.raises(AccessDenied):
            product_service.delete_product(ctx(user), burger.id)
