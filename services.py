from dataclasses import dataclass
from typing import Optional

from fastapi import Request
from pymongo.database import Database

from cache import ResponseCache
from config import Settings
from customers import CustomerService
from database import ensure_indexes
from inventory import InventoryLedger
from orders import OrderService
from products import ProductService
from providers import MockRecommendationProvider, MockShippingProvider, RecommendationProvider, ShippingProvider
from recommendations import RecommendationService
from tracking import TrackingService


@dataclass
class Services:
    db: Database
    cache: ResponseCache
    settings: Settings
    inventory: InventoryLedger
    customers: CustomerService
    products: ProductService
    orders: OrderService
    tracking: TrackingService
    recommendations: RecommendationService


def build_services(
    db: Database,
    settings: Optional[Settings] = None,
    cache: Optional[ResponseCache] = None,
    shipping: Optional[ShippingProvider] = None,
    recommender: Optional[RecommendationProvider] = None,
) -> Services:
    """Wire every service around one database handle and one cache instance."""
    settings = settings or Settings()
    cache = cache or ResponseCache(default_ttl=settings.cache_ttl_entity)
    timeout = settings.provider_timeout
    ensure_indexes(db)

    inventory = InventoryLedger(db, cache)
    customers = CustomerService(db, cache, ttl=settings.cache_ttl_entity)
    products = ProductService(db, cache, inventory, ttl=settings.cache_ttl_entity)

    shipping = shipping or MockShippingProvider()
    recommender = recommender or MockRecommendationProvider(catalog=products.catalog)

    orders = OrderService(
        db, cache, inventory, customers, products, shipping,
        provider_timeout=timeout, ttl=settings.cache_ttl_entity,
    )
    tracking = TrackingService(
        orders, shipping, cache, ttl=settings.cache_ttl_tracking, provider_timeout=timeout,
    )
    recommendations = RecommendationService(
        customers, products, orders, recommender, cache,
        ttl=settings.cache_ttl_recommendations, provider_timeout=timeout,
    )
    return Services(
        db=db,
        cache=cache,
        settings=settings,
        inventory=inventory,
        customers=customers,
        products=products,
        orders=orders,
        tracking=tracking,
        recommendations=recommendations,
    )


def get_services(request: Request) -> Services:
    """FastAPI dependency returning the services attached to the application."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise RuntimeError("Services are not configured; the application has not started")
    return services
