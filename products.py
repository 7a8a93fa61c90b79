import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from cache import ResponseCache, product_key
from database import ORDERS, PRODUCTS, Page, create_document, get_documents, object_id, paginate, utcnow
from errors import ProductInUse, ProductNotFound, ValidationError
from inventory import InventoryLedger
from money import Amount, to_cents
from schemas import Product, ProductUpdate, TERMINAL_STATUSES

logger = logging.getLogger(__name__)


class ProductService:
    def __init__(self, db: Database, cache: ResponseCache, inventory: InventoryLedger, ttl: float = 3600):
        self.db = db
        self.collection = db[PRODUCTS]
        self.orders = db[ORDERS]
        self.cache = cache
        self.inventory = inventory
        self.ttl = ttl

    def get_product(self, product_id: str) -> Dict[str, Any]:
        key = product_key(product_id)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        doc = self.collection.find_one({"_id": object_id(product_id, ProductNotFound)})
        if doc is None:
            raise ProductNotFound(product_id)
        self.cache.set(key, doc, self.ttl)
        return doc

    def get_many(self, product_ids: Iterable[str]) -> Dict[str, Dict[str, Any]]:
        """Fetch several products in one query, keyed by string id. Unknown ids are skipped."""
        oids = []
        for product_id in product_ids:
            try:
                oids.append(object_id(product_id, ProductNotFound))
            except ProductNotFound:
                continue
        if not oids:
            return {}
        return {str(doc["_id"]): doc for doc in self.collection.find({"_id": {"$in": oids}})}

    def ids_outside_category(self, category: str) -> List[str]:
        return [str(doc["_id"]) for doc in self.collection.find({"category": {"$ne": category}}, {"_id": 1})]

    def catalog(self) -> List[Dict[str, Any]]:
        """Candidate list handed to the recommendation provider."""
        return [
            {"id": str(doc["_id"]), "name": doc["name"], "category": doc["category"]}
            for doc in get_documents(self.db, PRODUCTS, {"inventory": {"$gt": 0}})
        ]

    def list_products(
        self,
        page: Optional[int] = 1,
        limit: Optional[int] = 10,
        category: Optional[str] = None,
        search: Optional[str] = None,
        min_price: Optional[Amount] = None,
        max_price: Optional[Amount] = None,
    ) -> Page:
        query: Dict[str, Any] = {}
        if category:
            query["category"] = category
        if min_price is not None or max_price is not None:
            query["price_cents"] = {}
            if min_price is not None:
                query["price_cents"]["$gte"] = to_cents(min_price)
            if max_price is not None:
                query["price_cents"]["$lte"] = to_cents(max_price)
        if search is not None:
            if len(search) < 2:
                raise ValidationError("Search query must be at least 2 characters")
            pattern = re.escape(search)
            query["$or"] = [
                {"name": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
                {"category": {"$regex": pattern, "$options": "i"}},
            ]
        return paginate(self.db, PRODUCTS, query, sort=[("name", 1), ("_id", 1)], page=page, limit=limit)

    def create_product(self, payload: Product) -> Dict[str, Any]:
        doc = create_document(self.db, PRODUCTS, payload.to_document())
        logger.info("Created product %s with %d units", doc["_id"], doc["inventory"])
        return doc

    def update_product(self, product_id: str, payload: ProductUpdate) -> Dict[str, Any]:
        oid = object_id(product_id, ProductNotFound)

        # Stock is adjusted first; it is the only part that can be refused.
        if payload.inventory_adjustment:
            self.inventory.adjust(product_id, payload.inventory_adjustment)

        changes = payload.field_changes()
        changes["updated_at"] = utcnow()
        doc = self.collection.find_one_and_update(
            {"_id": oid}, {"$set": changes}, return_document=ReturnDocument.AFTER
        )
        if doc is None:
            raise ProductNotFound(product_id)

        self.cache.invalidate(product_key(product_id))
        return doc

    def adjust_inventory(self, product_id: str, delta: int) -> Dict[str, Any]:
        return self.inventory.adjust(product_id, delta)

    def delete_product(self, product_id: str) -> bool:
        oid = object_id(product_id, ProductNotFound)
        if self.collection.find_one({"_id": oid}, {"_id": 1}) is None:
            raise ProductNotFound(product_id)

        terminal = [s.value for s in TERMINAL_STATUSES]
        if self.orders.find_one({"items.product_id": oid, "status": {"$nin": terminal}}, {"_id": 1}):
            raise ProductInUse(product_id)

        self.collection.delete_one({"_id": oid})
        self.cache.invalidate(product_key(product_id))
        logger.info("Deleted product %s", product_id)
        return True
