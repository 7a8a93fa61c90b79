import logging
from typing import Any, Dict, Optional

from cache import ResponseCache, tracking_key
from errors import ServiceUnavailable
from orders import OrderService
from providers import ShippingProvider, call_with_timeout
from schemas import TRACKABLE_STATUSES, OrderStatus, as_utc

logger = logging.getLogger(__name__)


class TrackingService:
    """Shipment status for orders, fetched from the shipping provider."""

    def __init__(
        self,
        orders: OrderService,
        shipping: ShippingProvider,
        cache: ResponseCache,
        ttl: float = 3600,
        provider_timeout: Optional[float] = None,
    ):
        self.orders = orders
        self.shipping = shipping
        self.cache = cache
        self.ttl = ttl
        self.provider_timeout = provider_timeout

    def get_tracking(self, order_id: str) -> Optional[Dict[str, Any]]:
        """Return ``{order, tracking}`` or None while the order has not shipped."""
        order = self.orders.get_order(order_id)
        if OrderStatus(order["status"]) not in TRACKABLE_STATUSES or not order.get("tracking_number"):
            return None

        key = tracking_key(order_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        try:
            info = call_with_timeout(
                self.shipping.get_tracking_info, order["tracking_number"], timeout=self.provider_timeout
            )
        except Exception as exc:
            logger.error("Error fetching tracking information for order %s: %s", order_id, exc)
            raise ServiceUnavailable("tracking")

        created_at = as_utc(order.get("created_at"))
        result = {
            "order": {
                "id": str(order["_id"]),
                "status": order["status"],
                "created_at": created_at.isoformat() if created_at else None,
            },
            "tracking": info,
        }
        self.cache.set(key, result, self.ttl)
        return result
