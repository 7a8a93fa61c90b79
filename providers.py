"""Adapters for the external shipping and recommendation services.

The storefront only relies on the abstract interfaces below. The mock
implementations stand in for the real carriers/recommenders: they add latency
and can fail at a configurable rate.
"""

import logging
import random
import string
import threading
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence

logger = logging.getLogger(__name__)

# At most MAX_WORKERS provider calls run at once. A call that times out keeps
# its worker until the remote side returns.
MAX_WORKERS = 8

_executor: Optional[ThreadPoolExecutor] = None
_executor_lock = threading.Lock()


def _get_executor() -> ThreadPoolExecutor:
    global _executor
    with _executor_lock:
        if _executor is None:
            _executor = ThreadPoolExecutor(max_workers=MAX_WORKERS, thread_name_prefix="provider")
        return _executor


def shutdown_executor() -> None:
    """Stop the provider worker pool; the next timed call starts a fresh one."""
    global _executor
    with _executor_lock:
        executor, _executor = _executor, None
    if executor is not None:
        executor.shutdown(wait=False, cancel_futures=True)
        logger.info("Provider worker pool shut down")


class ProviderError(Exception):
    """Raised by an adapter when the remote service fails."""


def call_with_timeout(func: Callable[..., Any], *args, timeout: Optional[float] = None, **kwargs) -> Any:
    """Run a provider call, giving up after ``timeout`` seconds."""
    if timeout is None:
        return func(*args, **kwargs)
    future = _get_executor().submit(func, *args, **kwargs)
    try:
        return future.result(timeout=timeout)
    except FutureTimeout:
        future.cancel()
        raise ProviderError(f"{getattr(func, '__qualname__', func)} timed out after {timeout}s")


class ShippingProvider(ABC):
    @abstractmethod
    def get_tracking_info(self, tracking_number: str) -> Dict[str, Any]:
        """Return {tracking_number, carrier, status, estimated_delivery, history, last_updated}."""

    @abstractmethod
    def generate_tracking_number(self) -> str:
        ...


class RecommendationProvider(ABC):
    @abstractmethod
    def get_recommendations(self, customer_id: Optional[str], excluded_product_ids: Sequence[str]) -> List[Dict[str, Any]]:
        """Return [{product_id, score, reason}] ordered by descending score."""


class _Flaky:
    """Latency and failure simulation shared by the mocks."""

    def __init__(self, latency: float = 0.0, failure_rate: float = 0.0, rng: Optional[random.Random] = None):
        self.latency = latency
        self.failure_rate = failure_rate
        self.rng = rng or random.Random()

    def _simulate(self, service: str) -> None:
        if self.latency:
            time.sleep(self.latency)
        if self.failure_rate and self.rng.random() < self.failure_rate:
            raise ProviderError(f"{service} service returned an error")


class MockShippingProvider(_Flaky, ShippingProvider):
    CARRIER = "MockEx"
    STATUSES = (
        "SHIPPING_LABEL_CREATED",
        "PACKAGE_RECEIVED",
        "IN_TRANSIT",
        "OUT_FOR_DELIVERY",
        "DELIVERED",
        "DELAYED",
    )
    ROUTE = (("New York", "NY"), ("Columbus", "OH"), ("Chicago", "IL"))
    TRACKING_CHARS = string.ascii_uppercase + string.digits

    def get_tracking_info(self, tracking_number: str) -> Dict[str, Any]:
        self._simulate("Shipping")
        now = datetime.now(timezone.utc)
        status = self.rng.choice(self.STATUSES)
        history = []
        for days_ago, (city, state) in zip((2, 1, 0), self.ROUTE):
            history.append({
                "date": (now - timedelta(days=days_ago)).isoformat(),
                "status": "IN_TRANSIT" if days_ago else status,
                "location": f"{city}, {state}",
                "description": f"Package scanned at {city} facility",
            })
        return {
            "tracking_number": tracking_number,
            "carrier": self.CARRIER,
            "status": status,
            "estimated_delivery": (now + timedelta(days=self.rng.randint(1, 7))).isoformat(),
            "history": history,
            "last_updated": now.isoformat(),
        }

    def generate_tracking_number(self) -> str:
        return "".join(self.rng.choice(self.TRACKING_CHARS) for _ in range(12))


class MockRecommendationProvider(_Flaky, RecommendationProvider):
    """Picks 3-5 random catalog entries the customer has not bought yet.

    ``catalog`` returns the candidate products as ``{id, name, category}`` dicts.
    """

    def __init__(self, catalog: Callable[[], List[Dict[str, Any]]], **kwargs):
        super().__init__(**kwargs)
        self.catalog = catalog

    def get_recommendations(self, customer_id: Optional[str], excluded_product_ids: Sequence[str]) -> List[Dict[str, Any]]:
        self._simulate("Recommendation")
        excluded = set(excluded_product_ids)
        available = [p for p in self.catalog() if p["id"] not in excluded]
        self.rng.shuffle(available)
        count = self.rng.randint(3, 5)

        recommendations = [
            {
                "product_id": product["id"],
                "score": round(self.rng.uniform(0.5, 1.0), 2),
                "reason": self._reason(product.get("category", "")),
            }
            for product in available[:count]
        ]
        recommendations.sort(key=lambda rec: rec["score"], reverse=True)
        return recommendations

    def _reason(self, category: str) -> str:
        reasons = [
            "Customers who purchased similar items also bought this",
            "Based on your browsing history",
            "Popular in your area",
            f"Top seller in {category}",
            "Frequently bought together with your previous purchases",
            "New arrivals you might like",
        ]
        return self.rng.choice(reasons)
