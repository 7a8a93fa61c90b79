"""Order lifecycle.

Status machine::

    pending -> processing -> shipped -> delivered
        \\___________\\____________\\__-> cancelled

Any non-terminal status may move to any status; ``delivered`` and
``cancelled`` are terminal. Entering ``cancelled`` returns every reserved unit
to stock exactly once: the status flip is a conditional update and only the
caller whose update matched performs the release.

Both API layers call into :class:`OrderService`; neither re-implements any of
these rules.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

import pydantic
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database

from cache import ResponseCache, order_key, tracking_key
from customers import CustomerService
from database import ORDERS, Page, create_document, object_id, paginate, utcnow
from errors import (
    CustomerNotFound,
    ImmutableOrderState,
    InvalidTransition,
    OrderNotFound,
    ServiceUnavailable,
    ValidationError,
)
from inventory import InventoryLedger
from products import ProductService
from providers import ShippingProvider, call_with_timeout
from schemas import (
    Address,
    Order,
    OrderCreate,
    OrderItem,
    OrderStatus,
    OrderUpdate,
    TERMINAL_STATUSES,
)

logger = logging.getLogger(__name__)

_TERMINAL = [status.value for status in TERMINAL_STATUSES]
_NEWEST_FIRST = [("created_at", -1), ("_id", -1)]


def parse_status(value: Union[str, OrderStatus]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(status.value for status in OrderStatus)
        raise ValidationError(f"Invalid status. Must be one of: {allowed}")


def parse_date(value: Union[str, datetime, None], name: str) -> Optional[datetime]:
    if value is None:
        return None
    if not isinstance(value, datetime):
        try:
            value = datetime.fromisoformat(value)
        except ValueError:
            raise ValidationError(f"{name} must be an ISO 8601 date")
    # Stored timestamps are UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


class OrderService:
    def __init__(
        self,
        db: Database,
        cache: ResponseCache,
        inventory: InventoryLedger,
        customers: CustomerService,
        products: ProductService,
        shipping: ShippingProvider,
        provider_timeout: Optional[float] = None,
        ttl: float = 3600,
    ):
        self.db = db
        self.collection = db[ORDERS]
        self.cache = cache
        self.inventory = inventory
        self.customers = customers
        self.products = products
        self.shipping = shipping
        self.provider_timeout = provider_timeout
        self.ttl = ttl

    # Reads

    def get_order(self, order_id: str) -> Dict[str, Any]:
        key = order_key(order_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        doc = self._load(object_id(order_id, OrderNotFound))
        self.cache.set(key, doc, self.ttl)
        return doc

    def get_order_details(self, order_id: str) -> Tuple[Dict[str, Any], Optional[Dict[str, Any]], Dict[str, Dict[str, Any]]]:
        """Return the order with its customer and the products it references."""
        order = self.get_order(order_id)
        try:
            customer = self.customers.get_customer(str(order["customer_id"]))
        except CustomerNotFound:
            customer = None
        products = self.products.get_many(str(item["product_id"]) for item in order["items"])
        return order, customer, products

    def list_orders(
        self,
        page: Optional[int] = 1,
        limit: Optional[int] = 10,
        status: Optional[str] = None,
        start_date: Union[str, datetime, None] = None,
        end_date: Union[str, datetime, None] = None,
    ) -> Page:
        query: Dict[str, Any] = {}
        if status:
            query["status"] = parse_status(status).value
        start = parse_date(start_date, "start_date")
        end = parse_date(end_date, "end_date")
        if start or end:
            query["created_at"] = {}
            if start:
                query["created_at"]["$gte"] = start
            if end:
                query["created_at"]["$lte"] = end
        return paginate(self.db, ORDERS, query, sort=_NEWEST_FIRST, page=page, limit=limit)

    def list_customer_orders(self, customer_id: str, page: Optional[int] = 1, limit: Optional[int] = 10) -> Page:
        oid = self.customers.require(customer_id)
        return paginate(self.db, ORDERS, {"customer_id": oid}, sort=_NEWEST_FIRST, page=page, limit=limit)

    def purchased_product_ids(self, customer_id: str) -> List[str]:
        """Distinct products across the customer's orders that were not cancelled."""
        oid = object_id(customer_id, CustomerNotFound)
        seen: Dict[str, None] = {}
        for order in self.collection.find({"customer_id": oid, "status": {"$ne": OrderStatus.CANCELLED.value}}):
            for item in order.get("items", []):
                seen.setdefault(str(item["product_id"]), None)
        return list(seen)

    # Mutations

    def create_order(self, customer_id: str, payload: OrderCreate) -> Dict[str, Any]:
        customer_oid = self.customers.require(customer_id)

        reserved: List[Tuple[str, int]] = []
        try:
            items = []
            for requested in payload.items:
                price_cents = self.inventory.reserve(requested.product_id, requested.quantity)
                reserved.append((requested.product_id, requested.quantity))
                items.append(OrderItem(
                    product_id=requested.product_id,
                    quantity=requested.quantity,
                    price_cents=price_cents,
                ))

            tracking_number = self._new_tracking_number()
            order = Order(
                customer_id=str(customer_oid),
                items=items,
                total_cents=sum(item.price_cents * item.quantity for item in items),
                shipping_address=payload.shipping_address,
                tracking_number=tracking_number,
            )
            doc = create_document(self.db, ORDERS, self._to_document(order))
        except Exception:
            if reserved:
                logger.warning("Order for customer %s failed; releasing %d reservation(s)", customer_id, len(reserved))
                self.inventory.release_all(reversed(reserved))
            raise

        logger.info("Created order %s for customer %s (%d cents)", doc["_id"], customer_id, doc["total_cents"])
        return doc

    def update_status(self, order_id: str, status: Union[str, OrderStatus]) -> Dict[str, Any]:
        status = parse_status(status)
        oid = object_id(order_id, OrderNotFound)

        if status is OrderStatus.CANCELLED:
            doc = self._cancel(oid)
        else:
            doc = self.collection.find_one_and_update(
                {"_id": oid, "status": {"$nin": _TERMINAL}},
                {"$set": {"status": status.value, "updated_at": utcnow()}},
                return_document=ReturnDocument.AFTER,
            )
            if doc is not None:
                self._invalidate(oid)

        if doc is None:
            current = self._load(oid)
            raise InvalidTransition(current["status"], status.value)

        logger.info("Order %s is now %s", order_id, status.value)
        return doc

    def update_shipping_address(self, order_id: str, address: Union[Address, Dict[str, Any]]) -> Dict[str, Any]:
        if not isinstance(address, Address):
            try:
                address = Address.model_validate(address)
            except pydantic.ValidationError as exc:
                raise ValidationError(f"Invalid shipping address: {exc.errors()[0]['msg']}")
        oid = object_id(order_id, OrderNotFound)

        doc = self.collection.find_one_and_update(
            {"_id": oid, "status": {"$nin": _TERMINAL}},
            {"$set": {"shipping_address": address.model_dump(), "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = self._load(oid)
            raise ImmutableOrderState(current["status"], "update the shipping address of")

        self._invalidate(oid)
        return doc

    def update_order(self, order_id: str, payload: OrderUpdate) -> Dict[str, Any]:
        """Apply a shipping address change and/or a status change."""
        if payload.status is None and payload.shipping_address is None:
            raise ValidationError("Provide a status or a shipping_address to update")

        doc = None
        if payload.shipping_address is not None:
            doc = self.update_shipping_address(order_id, payload.shipping_address)
        if payload.status is not None:
            doc = self.update_status(order_id, payload.status)
        return doc

    def cancel_order(self, order_id: str) -> Dict[str, Any]:
        """Cancel an order. Cancelling an already cancelled order changes nothing."""
        oid = object_id(order_id, OrderNotFound)
        doc = self._cancel(oid)
        if doc is not None:
            logger.info("Order %s cancelled", order_id)
            return doc

        current = self._load(oid)
        if current["status"] == OrderStatus.DELIVERED.value:
            raise ImmutableOrderState(current["status"], "cancel")
        return current

    # Internals

    def _load(self, oid: ObjectId) -> Dict[str, Any]:
        doc = self.collection.find_one({"_id": oid})
        if doc is None:
            raise OrderNotFound(str(oid))
        return doc

    def _cancel(self, oid: ObjectId) -> Optional[Dict[str, Any]]:
        """Flip a non-terminal order to cancelled and restock its items.

        Returns None when the order is missing or already terminal.
        """
        doc = self.collection.find_one_and_update(
            {"_id": oid, "status": {"$nin": _TERMINAL}},
            {"$set": {"status": OrderStatus.CANCELLED.value, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            return None

        failed = self.inventory.release_all(
            (str(item["product_id"]), item["quantity"]) for item in doc["items"]
        )
        if failed:
            logger.error("Order %s cancelled but %d line item(s) could not be restocked", oid, len(failed))
        self._invalidate(oid)
        return doc

    def _invalidate(self, oid: ObjectId) -> None:
        self.cache.invalidate(order_key(str(oid)), tracking_key(str(oid)))

    def _new_tracking_number(self) -> str:
        try:
            return call_with_timeout(self.shipping.generate_tracking_number, timeout=self.provider_timeout)
        except Exception as exc:
            logger.error("Shipping provider could not issue a tracking number: %s", exc)
            raise ServiceUnavailable("shipping", "Unable to assign a tracking number at this time")

    @staticmethod
    def _to_document(order: Order) -> Dict[str, Any]:
        doc = order.model_dump(mode="json")
        doc["customer_id"] = ObjectId(order.customer_id)
        for item in doc["items"]:
            item["product_id"] = ObjectId(item["product_id"])
        return doc
