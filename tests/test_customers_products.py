"""Tests for the customer and product services."""

import pytest

from cache import customer_key, product_key
from errors import (
    CustomerHasOrders,
    CustomerNotFound,
    DuplicateEmail,
    ProductInUse,
    ProductNotFound,
    ValidationError,
)
from schemas import Customer, CustomerUpdate, OrderCreate, Product, ProductUpdate


def order_payload(product, quantity=1):
    return OrderCreate(items=[{"product_id": str(product["_id"]), "quantity": quantity}])


class TestCustomers:
    def test_create_and_get(self, services, customer):
        fetched = services.customers.get_customer(str(customer["_id"]))
        assert fetched["email"] == "ada@example.com"
        assert fetched["created_at"] is not None

    def test_duplicate_email_any_case(self, services, customer):
        with pytest.raises(DuplicateEmail):
            services.customers.create_customer(Customer(name="Other", email="ADA@example.com"))

    def test_get_unknown(self, services):
        with pytest.raises(CustomerNotFound):
            services.customers.get_customer("5f0000000000000000000000")

    def test_get_malformed_id(self, services):
        with pytest.raises(CustomerNotFound):
            services.customers.get_customer("nope")

    def test_update_invalidates_cache(self, services, customer):
        customer_id = str(customer["_id"])
        services.customers.get_customer(customer_id)
        updated = services.customers.update_customer(customer_id, CustomerUpdate(name="Ada King"))
        assert updated["name"] == "Ada King"
        assert customer_key(customer_id) not in services.cache
        assert services.customers.get_customer(customer_id)["name"] == "Ada King"

    def test_update_email_collision(self, services, customer):
        other = services.customers.create_customer(Customer(name="Grace", email="grace@example.com"))
        with pytest.raises(DuplicateEmail):
            services.customers.update_customer(str(other["_id"]), CustomerUpdate(email="ada@example.com"))

    def test_update_own_email_allowed(self, services, customer):
        updated = services.customers.update_customer(str(customer["_id"]), CustomerUpdate(email="ADA@example.com"))
        assert updated["email"] == "ada@example.com"

    def test_search(self, services, customer):
        services.customers.create_customer(Customer(name="Grace Hopper", email="grace@example.com"))
        page = services.customers.list_customers(search="hop")
        assert [doc["name"] for doc in page.items] == ["Grace Hopper"]

    def test_search_escapes_regex(self, services, customer):
        assert services.customers.list_customers(search=".*").total == 0

    def test_short_search_rejected(self, services):
        with pytest.raises(ValidationError):
            services.customers.list_customers(search="a")

    def test_delete(self, services, customer):
        assert services.customers.delete_customer(str(customer["_id"])) is True
        with pytest.raises(CustomerNotFound):
            services.customers.get_customer(str(customer["_id"]))

    def test_delete_with_orders_refused(self, services, customer, product):
        services.orders.create_order(str(customer["_id"]), order_payload(product))
        with pytest.raises(CustomerHasOrders):
            services.customers.delete_customer(str(customer["_id"]))


class TestProducts:
    def test_get_returns_cents(self, services, product):
        doc = services.products.get_product(str(product["_id"]))
        assert doc["price_cents"] == 1000
        assert doc["inventory"] == 5

    def test_unknown(self, services):
        with pytest.raises(ProductNotFound):
            services.products.get_product("5f0000000000000000000000")

    def test_filters(self, services, product, other_product):
        assert services.products.list_products(category="Books").total == 1
        assert services.products.list_products(min_price=5).total == 1
        assert services.products.list_products(max_price="2.50").total == 1
        assert services.products.list_products(min_price=1, max_price=20).total == 2
        assert services.products.list_products(search="second").items[0]["name"] == "P2"

    def test_sorted_by_name(self, services, product, other_product):
        assert [doc["name"] for doc in services.products.list_products().items] == ["P1", "P2"]

    def test_pagination(self, services):
        for i in range(5):
            services.products.create_product(
                Product(name=f"Item {i}", description="d", price="1.00", category="Misc", inventory=1)
            )
        first = services.products.list_products(page=1, limit=2)
        assert len(first.items) == 2
        assert first.has_more is True
        assert first.total == 5
        assert first.pages == 3
        last = services.products.list_products(page=3, limit=2)
        assert len(last.items) == 1
        assert last.has_more is False

    @pytest.mark.parametrize("page,limit", [(0, 10), (1, 0), (1, 101)])
    def test_bad_pagination(self, services, page, limit):
        with pytest.raises(ValidationError):
            services.products.list_products(page=page, limit=limit)

    def test_update_fields_and_stock(self, services, product):
        product_id = str(product["_id"])
        services.products.get_product(product_id)
        doc = services.products.update_product(
            product_id, ProductUpdate(price="12.50", inventory_adjustment=-2)
        )
        assert doc["price_cents"] == 1250
        assert doc["inventory"] == 3
        assert product_key(product_id) not in services.cache

    def test_update_unknown(self, services):
        with pytest.raises(ProductNotFound):
            services.products.update_product("5f0000000000000000000000", ProductUpdate(name="x"))

    def test_catalog_only_lists_products_in_stock(self, services, product):
        services.products.create_product(
            Product(name="Sold out", description="d", price="1.00", category="Misc", inventory=0)
        )
        assert [entry["name"] for entry in services.products.catalog()] == ["P1"]

    def test_delete_refused_while_order_open(self, services, customer, product):
        order = services.orders.create_order(str(customer["_id"]), order_payload(product))
        with pytest.raises(ProductInUse):
            services.products.delete_product(str(product["_id"]))

        services.orders.update_status(str(order["_id"]), "delivered")
        assert services.products.delete_product(str(product["_id"])) is True
        with pytest.raises(ProductNotFound):
            services.products.get_product(str(product["_id"]))
