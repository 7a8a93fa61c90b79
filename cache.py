"""In-memory response cache.

One instance is built at startup and handed to every service that reads or
mutates cached views. Entries expire; expired entries are dropped on read and
by a periodic sweep.
"""

import copy
import logging
import threading
import time
from enum import Enum
from typing import Any, Callable, Dict, NamedTuple, Optional, Tuple

from bson import ObjectId

logger = logging.getLogger(__name__)


class CacheNamespace(str, Enum):
    CUSTOMER = "customer"
    PRODUCT = "product"
    ORDER = "order"
    TRACKING = "tracking"
    RECOMMENDATIONS = "recommendations"


class CacheKey(NamedTuple):
    namespace: CacheNamespace
    id: str

    def __str__(self) -> str:
        return f"{self.namespace.value}:{self.id}"


class ResponseCache:
    def __init__(self, default_ttl: float = 3600, clock: Callable[[], float] = time.monotonic):
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[CacheKey, Tuple[Any, float]] = {}
        self._sweeper: Optional[threading.Thread] = None
        self._stop = threading.Event()

    def get(self, key: CacheKey) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            self._entries.pop(key, None)
            return None
        return copy.deepcopy(value)

    def set(self, key: CacheKey, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = (copy.deepcopy(value), self._clock() + ttl)

    def invalidate(self, *keys: CacheKey) -> None:
        for key in keys:
            self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries and return how many were dropped."""
        now = self._clock()
        expired = [key for key, (_, expires_at) in list(self._entries.items()) if expires_at <= now]
        for key in expired:
            self._entries.pop(key, None)
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return self.get(key) is not None

    # Background sweep

    def start_sweeper(self, interval: float) -> None:
        if self._sweeper is not None and self._sweeper.is_alive():
            return
        self._stop.clear()

        def run():
            while not self._stop.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=run, name="cache-sweeper", daemon=True)
        self._sweeper.start()
        logger.info("Cache sweeper started (every %ss)", interval)

    def stop_sweeper(self) -> None:
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None


def _entity_id(value: Any) -> str:
    """Canonical spelling of a document id; hex ids are case-insensitive."""
    if ObjectId.is_valid(value):
        return str(ObjectId(str(value)))
    return str(value)


def customer_key(customer_id: str) -> CacheKey:
    return CacheKey(CacheNamespace.CUSTOMER, _entity_id(customer_id))


def product_key(product_id: str) -> CacheKey:
    return CacheKey(CacheNamespace.PRODUCT, _entity_id(product_id))


def order_key(order_id: str) -> CacheKey:
    return CacheKey(CacheNamespace.ORDER, _entity_id(order_id))


def tracking_key(order_id: str) -> CacheKey:
    return CacheKey(CacheNamespace.TRACKING, _entity_id(order_id))


def recommendations_key(scope: str) -> CacheKey:
    return CacheKey(CacheNamespace.RECOMMENDATIONS, str(scope))
