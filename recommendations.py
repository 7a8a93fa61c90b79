"""Product recommendations from the external recommendation provider.

Provider results are cached per customer and are not invalidated when the
customer places an order; a new purchase shows up once the entry expires.
Products are joined at read time, so recommendations for deleted products
drop out immediately.
"""

import logging
from typing import Any, Dict, List, Optional

from cache import ResponseCache, recommendations_key
from customers import CustomerService
from errors import ServiceUnavailable, ValidationError
from orders import OrderService
from products import ProductService
from providers import RecommendationProvider, call_with_timeout

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 5
MAX_LIMIT = 50


def _check_limit(limit: Optional[int]) -> int:
    limit = DEFAULT_LIMIT if limit is None else limit
    if limit < 1 or limit > MAX_LIMIT:
        raise ValidationError(f"limit must be between 1 and {MAX_LIMIT}")
    return limit


class RecommendationService:
    def __init__(
        self,
        customers: CustomerService,
        products: ProductService,
        orders: OrderService,
        provider: RecommendationProvider,
        cache: ResponseCache,
        ttl: float = 3600,
        provider_timeout: Optional[float] = None,
    ):
        self.customers = customers
        self.products = products
        self.orders = orders
        self.provider = provider
        self.cache = cache
        self.ttl = ttl
        self.provider_timeout = provider_timeout

    def get_recommendations(self, customer_id: str, limit: Optional[int] = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        """Ranked ``{product, score, reason}`` entries for a customer."""
        limit = _check_limit(limit)
        oid = self.customers.require(customer_id)

        key = recommendations_key(f"customer:{oid}")
        ranked = self.cache.get(key)
        if ranked is None:
            purchased = self.orders.purchased_product_ids(customer_id)
            ranked = self._fetch(customer_id, purchased)
            self.cache.set(key, ranked, self.ttl)
        return self._with_products(ranked, limit)

    def get_catalog_recommendations(self, category: Optional[str] = None, limit: Optional[int] = DEFAULT_LIMIT) -> List[Dict[str, Any]]:
        """Anonymous recommendations, optionally restricted to one category."""
        limit = _check_limit(limit)

        key = recommendations_key(f"category:{category or '*'}")
        ranked = self.cache.get(key)
        if ranked is None:
            excluded = self.products.ids_outside_category(category) if category else []
            ranked = self._fetch(None, excluded)
            self.cache.set(key, ranked, self.ttl)

        entries = self._with_products(ranked, MAX_LIMIT)
        if category:
            entries = [entry for entry in entries if entry["product"]["category"] == category]
        return entries[:limit]

    def _fetch(self, customer_id: Optional[str], excluded: List[str]) -> List[Dict[str, Any]]:
        try:
            results = call_with_timeout(
                self.provider.get_recommendations, customer_id, excluded, timeout=self.provider_timeout
            )
        except Exception as exc:
            logger.error("Error fetching product recommendations for %s: %s", customer_id or "catalog", exc)
            raise ServiceUnavailable("recommendation", "Unable to retrieve product recommendations at this time")

        excluded_ids = set(excluded)
        ranked = [
            {"product_id": str(rec["product_id"]), "score": float(rec["score"]), "reason": rec.get("reason")}
            for rec in results
            if str(rec["product_id"]) not in excluded_ids
        ]
        ranked.sort(key=lambda rec: rec["score"], reverse=True)
        return ranked

    def _with_products(self, ranked: List[Dict[str, Any]], limit: int) -> List[Dict[str, Any]]:
        products = self.products.get_many(rec["product_id"] for rec in ranked)
        entries = []
        for rec in ranked:
            product = products.get(rec["product_id"])
            if product is None:
                continue
            entries.append({"product": product, "score": rec["score"], "reason": rec["reason"]})
            if len(entries) == limit:
                break
        return entries
