"""Tests for the order lifecycle."""

import pytest

from cache import order_key
from errors import (
    CustomerNotFound,
    ImmutableOrderState,
    InsufficientInventory,
    InvalidTransition,
    OrderNotFound,
    ProductNotFound,
    ServiceUnavailable,
    ValidationError,
)
from schemas import Address, OrderCreate, OrderUpdate, Product, ProductUpdate


def payload(*lines, address=None):
    return OrderCreate(
        items=[{"product_id": str(product["_id"]), "quantity": qty} for product, qty in lines],
        shipping_address=address,
    )


def stock(services, product):
    return services.products.get_product(str(product["_id"]))["inventory"]


@pytest.fixture
def order(services, customer, product):
    return services.orders.create_order(str(customer["_id"]), payload((product, 2)))


class TestCreateOrder:
    def test_creates_pending_order(self, services, customer, product, other_product):
        doc = services.orders.create_order(
            str(customer["_id"]), payload((product, 2), (other_product, 1), address={"city": "London"})
        )
        assert doc["status"] == "pending"
        assert doc["total_cents"] == 2 * 1000 + 250
        assert doc["tracking_number"] == "TRK000000001"
        assert doc["shipping_address"]["city"] == "London"
        assert stock(services, product) == 3
        assert stock(services, other_product) == 2

    def test_unknown_customer(self, services, product):
        with pytest.raises(CustomerNotFound):
            services.orders.create_order("5f0000000000000000000000", payload((product, 1)))
        assert stock(services, product) == 5

    def test_insufficient_stock_rolls_back_earlier_lines(self, services, customer, product, other_product):
        with pytest.raises(InsufficientInventory):
            services.orders.create_order(str(customer["_id"]), payload((product, 2), (other_product, 4)))
        assert stock(services, product) == 5
        assert stock(services, other_product) == 3
        assert services.db["order"].count_documents({}) == 0

    def test_unknown_product_rolls_back(self, services, customer, product):
        bad = {"_id": "5f0000000000000000000000"}
        with pytest.raises(ProductNotFound):
            services.orders.create_order(str(customer["_id"]), payload((product, 1), (bad, 1)))
        assert stock(services, product) == 5

    def test_shipping_provider_down_releases_stock(self, services, shipping, customer, product):
        shipping.fail_numbers = True
        with pytest.raises(ServiceUnavailable) as exc_info:
            services.orders.create_order(str(customer["_id"]), payload((product, 1)))
        assert exc_info.value.service == "shipping"
        assert stock(services, product) == 5

    def test_total_is_exact_in_cents(self, services, customer):
        widget = services.products.create_product(
            Product(name="Widget", description="d", price="9.99", category="Gadgets", inventory=10)
        )
        doc = services.orders.create_order(str(customer["_id"]), payload((widget, 3)))
        assert doc["items"][0]["price_cents"] == 999
        assert doc["total_cents"] == 2997

    def test_price_is_frozen(self, services, customer, product, order):
        services.products.update_product(str(product["_id"]), ProductUpdate(price="99.99"))
        fetched = services.orders.get_order(str(order["_id"]))
        assert fetched["items"][0]["price_cents"] == 1000
        assert fetched["total_cents"] == 2000


class TestStatus:
    def test_forward_transitions(self, services, order):
        order_id = str(order["_id"])
        for status in ("processing", "shipped", "delivered"):
            assert services.orders.update_status(order_id, status)["status"] == status

    def test_skipping_ahead_allowed(self, services, order):
        assert services.orders.update_status(str(order["_id"]), "shipped")["status"] == "shipped"

    def test_invalid_status(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.update_status(str(order["_id"]), "lost")

    def test_delivered_is_terminal(self, services, order):
        services.orders.update_status(str(order["_id"]), "delivered")
        with pytest.raises(InvalidTransition):
            services.orders.update_status(str(order["_id"]), "processing")
        with pytest.raises(InvalidTransition):
            services.orders.update_status(str(order["_id"]), "cancelled")

    def test_cancelled_is_terminal(self, services, product, order):
        services.orders.update_status(str(order["_id"]), "cancelled")
        assert stock(services, product) == 5
        with pytest.raises(InvalidTransition):
            services.orders.update_status(str(order["_id"]), "pending")
        with pytest.raises(InvalidTransition):
            services.orders.update_status(str(order["_id"]), "cancelled")
        assert stock(services, product) == 5

    def test_unknown_order(self, services):
        with pytest.raises(OrderNotFound):
            services.orders.update_status("5f0000000000000000000000", "shipped")

    def test_update_invalidates_cache(self, services, order):
        order_id = str(order["_id"])
        services.orders.get_order(order_id)
        assert order_key(order_id) in services.cache
        services.orders.update_status(order_id, "processing")
        assert services.orders.get_order(order_id)["status"] == "processing"


class TestCancel:
    def test_cancel_scenario(self, services, customer, product):
        """P1 has 5 units; ordering 2 then cancelling twice leaves 5."""
        order = services.orders.create_order(str(customer["_id"]), payload((product, 2)))
        assert stock(services, product) == 3

        cancelled = services.orders.cancel_order(str(order["_id"]))
        assert cancelled["status"] == "cancelled"
        assert stock(services, product) == 5

        again = services.orders.cancel_order(str(order["_id"]))
        assert again["status"] == "cancelled"
        assert stock(services, product) == 5

    def test_cancel_visible_when_read_with_uppercase_id(self, services, order):
        order_id = str(order["_id"])
        assert services.orders.get_order(order_id.upper())["status"] == "pending"
        services.orders.cancel_order(order_id)
        assert services.orders.get_order(order_id.upper())["status"] == "cancelled"

    def test_cancel_delivered_refused(self, services, product, order):
        services.orders.update_status(str(order["_id"]), "delivered")
        with pytest.raises(ImmutableOrderState):
            services.orders.cancel_order(str(order["_id"]))
        assert stock(services, product) == 3

    def test_cancel_shipped_restocks(self, services, product, order):
        services.orders.update_status(str(order["_id"]), "shipped")
        services.orders.cancel_order(str(order["_id"]))
        assert stock(services, product) == 5

    def test_cancel_with_deleted_product(self, services, customer, product, other_product):
        order = services.orders.create_order(str(customer["_id"]), payload((product, 1), (other_product, 1)))
        services.db["product"].delete_one({"_id": other_product["_id"]})
        cancelled = services.orders.cancel_order(str(order["_id"]))
        assert cancelled["status"] == "cancelled"
        assert stock(services, product) == 5

    def test_cancel_unknown(self, services):
        with pytest.raises(OrderNotFound):
            services.orders.cancel_order("5f0000000000000000000000")

    def test_inventory_conserved(self, services, customer, product, other_product):
        orders = [
            services.orders.create_order(str(customer["_id"]), payload((product, 1), (other_product, 1)))
            for _ in range(3)
        ]
        services.orders.cancel_order(str(orders[0]["_id"]))
        services.orders.update_status(str(orders[1]["_id"]), "delivered")

        held = {str(product["_id"]): 0, str(other_product["_id"]): 0}
        for doc in services.db["order"].find({"status": {"$ne": "cancelled"}}):
            for item in doc["items"]:
                held[str(item["product_id"])] += item["quantity"]
        assert stock(services, product) + held[str(product["_id"])] == 5
        assert stock(services, other_product) + held[str(other_product["_id"])] == 3


class TestShippingAddress:
    def test_update_address(self, services, order):
        doc = services.orders.update_shipping_address(str(order["_id"]), {"street": "1 Main St", "city": "Paris"})
        assert doc["shipping_address"]["city"] == "Paris"

    def test_terminal_order_address_is_immutable(self, services, order):
        services.orders.cancel_order(str(order["_id"]))
        with pytest.raises(ImmutableOrderState):
            services.orders.update_shipping_address(str(order["_id"]), Address(city="Paris"))

    def test_invalid_address(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.update_shipping_address(str(order["_id"]), {"city": ["not", "a", "string"]})

    def test_update_order_requires_a_change(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.update_order(str(order["_id"]), OrderUpdate())

    def test_update_order_address_and_status(self, services, order):
        doc = services.orders.update_order(
            str(order["_id"]), OrderUpdate(status="shipped", shipping_address={"city": "Rome"})
        )
        assert doc["status"] == "shipped"
        assert doc["shipping_address"]["city"] == "Rome"


class TestListing:
    def test_newest_first(self, services, customer, product):
        first = services.orders.create_order(str(customer["_id"]), payload((product, 1)))
        second = services.orders.create_order(str(customer["_id"]), payload((product, 1)))
        page = services.orders.list_customer_orders(str(customer["_id"]))
        assert [doc["_id"] for doc in page.items] == [second["_id"], first["_id"]]

    def test_status_filter(self, services, customer, product, order):
        services.orders.create_order(str(customer["_id"]), payload((product, 1)))
        services.orders.update_status(str(order["_id"]), "shipped")
        page = services.orders.list_orders(status="shipped")
        assert page.total == 1
        assert page.items[0]["_id"] == order["_id"]

    def test_bad_status_filter(self, services):
        with pytest.raises(ValidationError):
            services.orders.list_orders(status="lost")

    def test_bad_date_filter(self, services):
        with pytest.raises(ValidationError):
            services.orders.list_orders(start_date="yesterday")

    def test_customer_orders_unknown_customer(self, services):
        with pytest.raises(CustomerNotFound):
            services.orders.list_customer_orders("5f0000000000000000000000")

    def test_purchased_ignores_cancelled(self, services, customer, product, other_product):
        services.orders.create_order(str(customer["_id"]), payload((product, 1)))
        cancelled = services.orders.create_order(str(customer["_id"]), payload((other_product, 1)))
        services.orders.cancel_order(str(cancelled["_id"]))
        assert services.orders.purchased_product_ids(str(customer["_id"])) == [str(product["_id"])]

    def test_order_details(self, services, customer, product, order):
        fetched, owner, products = services.orders.get_order_details(str(order["_id"]))
        assert owner["_id"] == customer["_id"]
        assert list(products) == [str(product["_id"])]
