"""Tests for stock reservation and adjustment."""

import threading

import pytest
from pymongo.errors import PyMongoError

from cache import product_key
from errors import InsufficientInventory, ProductNotFound, ValidationError


def stock(services, product):
    return services.products.get_product(str(product["_id"]))["inventory"]


class TestReserve:
    def test_reserve_returns_price_and_decrements(self, services, product):
        price = services.inventory.reserve(str(product["_id"]), 2)
        assert price == 1000
        assert stock(services, product) == 3

    def test_reserve_exact_stock(self, services, product):
        services.inventory.reserve(str(product["_id"]), 5)
        assert stock(services, product) == 0

    def test_insufficient_leaves_stock_untouched(self, services, product):
        with pytest.raises(InsufficientInventory) as exc_info:
            services.inventory.reserve(str(product["_id"]), 6)
        assert exc_info.value.available == 5
        assert "P1" in exc_info.value.message
        assert stock(services, product) == 5

    def test_unknown_product(self, services):
        with pytest.raises(ProductNotFound):
            services.inventory.reserve("5f0000000000000000000000", 1)

    def test_malformed_id_is_not_found(self, services):
        with pytest.raises(ProductNotFound):
            services.inventory.reserve("not-an-id", 1)

    @pytest.mark.parametrize("quantity", [0, -1, True])
    def test_quantity_must_be_positive(self, services, product, quantity):
        with pytest.raises(ValidationError):
            services.inventory.reserve(str(product["_id"]), quantity)

    def test_reserve_invalidates_cached_product(self, services, product):
        product_id = str(product["_id"])
        services.products.get_product(product_id)
        assert product_key(product_id) in services.cache
        services.inventory.reserve(product_id, 1)
        assert product_key(product_id) not in services.cache

    def test_reserve_invalidates_view_read_with_uppercase_id(self, services, product):
        product_id = str(product["_id"])
        assert services.products.get_product(product_id.upper())["inventory"] == 5
        services.inventory.reserve(product_id, 2)
        assert services.products.get_product(product_id.upper())["inventory"] == 3

    def test_concurrent_reservations_never_oversell(self, services, product, monkeypatch):
        product_id = str(product["_id"])
        collection = services.inventory.products
        update = collection.find_one_and_update
        lock = threading.Lock()

        # mongomock has no server; serialise single-document writes as MongoDB does.
        def atomic_update(*args, **kwargs):
            with lock:
                return update(*args, **kwargs)

        monkeypatch.setattr(collection, "find_one_and_update", atomic_update)

        workers = 8
        barrier = threading.Barrier(workers)
        reserved, refused, unexpected = [], [], []

        def buy():
            barrier.wait()
            try:
                services.inventory.reserve(product_id, 1)
            except InsufficientInventory:
                refused.append(1)
            except Exception as exc:
                unexpected.append(exc)
            else:
                reserved.append(1)

        threads = [threading.Thread(target=buy) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert unexpected == []
        assert len(reserved) == 5
        assert len(refused) == workers - 5
        assert stock(services, product) == 0


class TestRelease:
    def test_release_restocks(self, services, product):
        services.inventory.reserve(str(product["_id"]), 3)
        services.inventory.release(str(product["_id"]), 3)
        assert stock(services, product) == 5

    def test_release_all_skips_missing_products(self, services, product):
        failed = services.inventory.release_all([
            ("5f0000000000000000000000", 1),
            (str(product["_id"]), 2),
        ])
        assert failed == [("5f0000000000000000000000", 1)]
        assert stock(services, product) == 7

    def test_release_all_continues_past_database_errors(self, services, product, other_product, monkeypatch):
        release = services.inventory.release
        broken = str(product["_id"])

        def flaky_release(product_id, quantity):
            if product_id == broken:
                raise PyMongoError("connection reset")
            release(product_id, quantity)

        monkeypatch.setattr(services.inventory, "release", flaky_release)
        failed = services.inventory.release_all([(broken, 1), (str(other_product["_id"]), 2)])
        assert failed == [(broken, 1)]
        assert stock(services, product) == 5
        assert stock(services, other_product) == 5


class TestAdjust:
    def test_restock(self, services, product):
        doc = services.inventory.adjust(str(product["_id"]), 10)
        assert doc["inventory"] == 15

    def test_write_off(self, services, product):
        doc = services.inventory.adjust(str(product["_id"]), -5)
        assert doc["inventory"] == 0

    def test_write_off_below_zero_refused(self, services, product):
        with pytest.raises(InsufficientInventory):
            services.inventory.adjust(str(product["_id"]), -6)
        assert stock(services, product) == 5

    def test_zero_adjustment_refused(self, services, product):
        with pytest.raises(ValidationError):
            services.inventory.adjust(str(product["_id"]), 0)
