import logging
import re
from typing import Any, Dict, Optional

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from cache import ResponseCache, customer_key
from database import CUSTOMERS, ORDERS, Page, create_document, object_id, paginate, utcnow
from errors import CustomerHasOrders, CustomerNotFound, DuplicateEmail, ValidationError
from schemas import Customer, CustomerUpdate

logger = logging.getLogger(__name__)


class CustomerService:
    def __init__(self, db: Database, cache: ResponseCache, ttl: float = 3600):
        self.collection = db[CUSTOMERS]
        self.orders = db[ORDERS]
        self.db = db
        self.cache = cache
        self.ttl = ttl

    def get_customer(self, customer_id: str) -> Dict[str, Any]:
        key = customer_key(customer_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        doc = self.collection.find_one({"_id": object_id(customer_id, CustomerNotFound)})
        if doc is None:
            raise CustomerNotFound(customer_id)
        self.cache.set(key, doc, self.ttl)
        return doc

    def require(self, customer_id: str):
        """Return the ObjectId of an existing customer or raise CustomerNotFound."""
        oid = object_id(customer_id, CustomerNotFound)
        if self.collection.find_one({"_id": oid}, {"_id": 1}) is None:
            raise CustomerNotFound(customer_id)
        return oid

    def list_customers(self, page: Optional[int] = 1, limit: Optional[int] = 10, search: Optional[str] = None) -> Page:
        query: Dict[str, Any] = {}
        if search is not None:
            if len(search) < 2:
                raise ValidationError("Search query must be at least 2 characters")
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"email": {"$regex": pattern, "$options": "i"}},
            ]
        return paginate(self.db, CUSTOMERS, query, sort=[("name", 1), ("_id", 1)], page=page, limit=limit)

    def create_customer(self, payload: Customer) -> Dict[str, Any]:
        if self.collection.find_one({"email": payload.email}):
            raise DuplicateEmail(payload.email)
        try:
            doc = create_document(self.db, CUSTOMERS, payload)
        except DuplicateKeyError:
            raise DuplicateEmail(payload.email)
        logger.info("Registered customer %s", doc["_id"])
        return doc

    def update_customer(self, customer_id: str, payload: CustomerUpdate) -> Dict[str, Any]:
        oid = object_id(customer_id, CustomerNotFound)
        changes = {key: value for key, value in payload.model_dump(exclude_unset=True).items() if value is not None}

        if "email" in changes and self.collection.find_one({"email": changes["email"], "_id": {"$ne": oid}}):
            raise DuplicateEmail(changes.get("email", ""))

        changes["updated_at"] = utcnow()
        try:
            doc = self.collection.find_one_and_update(
                {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
            )
        except DuplicateKeyError:
            raise DuplicateEmail(changes.get("email", ""))
        if doc is None:
            raise CustomerNotFound(customer_id)

        self.cache.invalidate(customer_key(customer_id))
        return doc

    def delete_customer(self, customer_id: str) -> bool:
        oid = object_id(customer_id, CustomerNotFound)
        if self.collection.find_one({"_id": oid}, {"_id": 1}) is None:
            raise CustomerNotFound(customer_id)
        if self.orders.find_one({"customer_id": oid}, {"_id": 1}) is not None:
            raise CustomerHasOrders(customer_id)

        self.collection.delete_one({"_id": oid})
        self.cache.invalidate(customer_key(customer_id))
        logger.info("Deleted customer %s", customer_id)
        return True
