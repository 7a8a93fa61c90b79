"""Product stock accounting.

Stock changes are single conditional ``$inc`` updates, so two concurrent
reservations can never both pass the sufficiency check against the same units.
"""

import logging
from typing import Any, Dict, Iterable, List, Tuple

from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError

from cache import ResponseCache, product_key
from database import PRODUCTS, object_id, utcnow
from errors import InsufficientInventory, ProductNotFound, ValidationError

logger = logging.getLogger(__name__)


def _check_quantity(quantity: int) -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise ValidationError("Quantity must be a positive integer")


class InventoryLedger:
    def __init__(self, db: Database, cache: ResponseCache):
        self.products = db[PRODUCTS]
        self.cache = cache

    def reserve(self, product_id: str, quantity: int) -> int:
        """Take ``quantity`` units out of stock and return the unit price in cents."""
        _check_quantity(quantity)
        oid = object_id(product_id, ProductNotFound)
        doc = self.products.find_one_and_update(
            {"_id": oid, "inventory": {"$gte": quantity}},
            {"$inc": {"inventory": -quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = self.products.find_one({"_id": oid}, {"inventory": 1, "name": 1})
            if current is None:
                raise ProductNotFound(str(product_id))
            raise InsufficientInventory(str(product_id), quantity, current.get("inventory"), current.get("name"))

        self.cache.invalidate(product_key(product_id))
        logger.debug("Reserved %d of %s (%d left)", quantity, product_id, doc["inventory"])
        return doc["price_cents"]

    def release(self, product_id: str, quantity: int) -> None:
        """Return ``quantity`` units to stock."""
        _check_quantity(quantity)
        doc = self.products.find_one_and_update(
            {"_id": object_id(product_id, ProductNotFound)},
            {"$inc": {"inventory": quantity}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            raise ProductNotFound(str(product_id))

        self.cache.invalidate(product_key(product_id))
        logger.debug("Released %d of %s (%d left)", quantity, product_id, doc["inventory"])

    def release_all(self, items: Iterable[Tuple[str, int]]) -> List[Tuple[str, int]]:
        """Release every (product_id, quantity) pair, continuing past failures.

        Returns the pairs that could not be released.
        """
        failed = []
        for product_id, quantity in items:
            try:
                self.release(product_id, quantity)
            except ProductNotFound:
                logger.error("Could not return %d units to missing product %s", quantity, product_id)
                failed.append((product_id, quantity))
            except PyMongoError:
                logger.exception("Could not return %d units to product %s", quantity, product_id)
                failed.append((product_id, quantity))
        return failed

    def adjust(self, product_id: str, delta: int) -> Dict[str, Any]:
        """Restock (positive delta) or write off (negative delta) units."""
        if isinstance(delta, bool) or not isinstance(delta, int) or delta == 0:
            raise ValidationError("Adjustment must be a non-zero integer")
        oid = object_id(product_id, ProductNotFound)
        query: Dict[str, Any] = {"_id": oid}
        if delta < 0:
            query["inventory"] = {"$gte": -delta}
        doc = self.products.find_one_and_update(
            query,
            {"$inc": {"inventory": delta}, "$set": {"updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc is None:
            current = self.products.find_one({"_id": oid}, {"inventory": 1, "name": 1})
            if current is None:
                raise ProductNotFound(str(product_id))
            raise InsufficientInventory(str(product_id), -delta, current.get("inventory"), current.get("name"))

        self.cache.invalidate(product_key(product_id))
        logger.info("Adjusted inventory of %s by %+d (now %d)", product_id, delta, doc["inventory"])
        return doc
