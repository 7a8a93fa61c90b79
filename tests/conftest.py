"""Pytest fixtures for storefront tests."""

import mongomock
import pytest
from fastapi.testclient import TestClient

from config import Settings
from providers import ProviderError, RecommendationProvider, ShippingProvider
from schemas import Customer, Product
from services import build_services


class FakeShipping(ShippingProvider):
    """Deterministic shipping provider that can be told to fail."""

    def __init__(self):
        self.issued = 0
        self.lookups = 0
        self.fail_tracking = False
        self.fail_numbers = False

    def generate_tracking_number(self):
        if self.fail_numbers:
            raise ProviderError("Shipping service returned an error")
        self.issued += 1
        return f"TRK{self.issued:09d}"

    def get_tracking_info(self, tracking_number):
        self.lookups += 1
        if self.fail_tracking:
            raise ProviderError("Shipping service returned an error")
        return {
            "tracking_number": tracking_number,
            "carrier": "MockEx",
            "status": "IN_TRANSIT",
            "estimated_delivery": "2030-01-05T00:00:00+00:00",
            "history": [
                {
                    "date": "2030-01-01T00:00:00+00:00",
                    "status": "IN_TRANSIT",
                    "location": "Chicago, IL",
                    "description": "Package scanned at Chicago facility",
                }
            ],
            "last_updated": "2030-01-01T00:00:00+00:00",
        }


class FakeRecommender(RecommendationProvider):
    """Scores every non-excluded catalog product, highest first in insertion order."""

    def __init__(self):
        self.catalog = None
        self.calls = []
        self.fail = False

    def get_recommendations(self, customer_id, excluded_product_ids):
        self.calls.append((customer_id, list(excluded_product_ids)))
        if self.fail:
            raise ProviderError("Recommendation service returned an error")
        excluded = set(excluded_product_ids)
        candidates = [p for p in self.catalog() if p["id"] not in excluded]
        return [
            {"product_id": p["id"], "score": round(0.99 - i * 0.01, 2), "reason": "Popular in your area"}
            for i, p in enumerate(candidates)
        ]


@pytest.fixture
def db():
    return mongomock.MongoClient().storefront


@pytest.fixture
def shipping():
    return FakeShipping()


@pytest.fixture
def recommender():
    return FakeRecommender()


@pytest.fixture
def services(db, shipping, recommender):
    settings = Settings(provider_timeout=None)
    services = build_services(db, settings, shipping=shipping, recommender=recommender)
    recommender.catalog = services.products.catalog
    return services


@pytest.fixture
def customer(services):
    return services.customers.create_customer(Customer(name="Ada Lovelace", email="ada@example.com"))


@pytest.fixture
def product(services):
    """P1: price 10.00, 5 units in stock."""
    return services.products.create_product(
        Product(name="P1", description="First product", price="10.00", category="Gadgets", inventory=5)
    )


@pytest.fixture
def other_product(services):
    return services.products.create_product(
        Product(name="P2", description="Second product", price="2.50", category="Books", inventory=3)
    )


@pytest.fixture
def api_client(services):
    from main import create_app

    return TestClient(create_app(services))
