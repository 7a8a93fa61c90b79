"""MongoDB access helpers.

Thin wrappers around pymongo shared by the services: connection setup, index
creation, document creation with timestamps, and paginated queries.
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple, Type, Union

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import Settings
from errors import InternalError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

CUSTOMERS = "customer"
PRODUCTS = "product"
ORDERS = "order"

MAX_PAGE_SIZE = 100


def connect(settings: Settings) -> Database:
    if not settings.database_url or not settings.database_name:
        raise RuntimeError(
            "Database not available. Check DATABASE_URL and DATABASE_NAME environment variables."
        )
    client = MongoClient(settings.database_url, tz_aware=True)
    db = client[settings.database_name]
    logger.info("Connected to MongoDB database %s", settings.database_name)
    return db


def ensure_indexes(db: Database) -> None:
    db[CUSTOMERS].create_index([("email", ASCENDING)], unique=True)
    db[CUSTOMERS].create_index([("name", ASCENDING)])
    db[PRODUCTS].create_index([("name", ASCENDING)])
    db[PRODUCTS].create_index([("category", ASCENDING)])
    db[PRODUCTS].create_index([("price_cents", ASCENDING)])
    db[ORDERS].create_index([("customer_id", ASCENDING)])
    db[ORDERS].create_index([("status", ASCENDING)])
    db[ORDERS].create_index([("created_at", DESCENDING)])
    db[ORDERS].create_index([("items.product_id", ASCENDING)])


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def object_id(value: Union[str, ObjectId], not_found: Type[NotFoundError] = NotFoundError) -> ObjectId:
    """Parse an id coming from a client; malformed ids are simply not found."""
    if isinstance(value, ObjectId):
        return value
    try:
        return ObjectId(str(value))
    except (InvalidId, TypeError):
        raise not_found(str(value))


def create_document(db: Database, collection_name: str, data: Union[BaseModel, dict]) -> Dict[str, Any]:
    """Insert a document stamped with created_at/updated_at and return it with its _id."""
    if isinstance(data, BaseModel):
        data_dict = data.model_dump()
    else:
        data_dict = data.copy()

    now = utcnow()
    data_dict["created_at"] = now
    data_dict["updated_at"] = now
    try:
        result = db[collection_name].insert_one(data_dict)
    except DuplicateKeyError:
        raise
    except PyMongoError as exc:
        logger.exception("Insert into %s failed", collection_name)
        raise InternalError(f"Could not save {collection_name}") from exc
    data_dict["_id"] = result.inserted_id
    return data_dict


def get_documents(db: Database, collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None) -> List[dict]:
    cursor = db[collection_name].find(filter_dict or {})
    if limit:
        cursor = cursor.limit(limit)
    return list(cursor)


@dataclass
class Page:
    items: List[dict]
    total: int
    page: int
    limit: int
    has_more: bool

    @property
    def pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def pagination(self) -> Dict[str, int]:
        return {"total": self.total, "page": self.page, "pages": self.pages}


def check_pagination(page: Optional[int], limit: Optional[int]) -> Tuple[int, int]:
    page = 1 if page is None else page
    limit = 10 if limit is None else limit
    if page < 1:
        raise ValidationError("page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}")
    return page, limit


def paginate(
    db: Database,
    collection_name: str,
    filter_dict: Optional[dict] = None,
    sort: Optional[Sequence[Tuple[str, int]]] = None,
    page: Optional[int] = 1,
    limit: Optional[int] = 10,
) -> Page:
    """Fetch one page, reading one extra document to know whether more follow."""
    page, limit = check_pagination(page, limit)
    filter_dict = filter_dict or {}
    cursor = db[collection_name].find(filter_dict)
    if sort:
        cursor = cursor.sort(list(sort))
    docs = list(cursor.skip((page - 1) * limit).limit(limit + 1))
    has_more = len(docs) > limit
    if has_more:
        docs.pop()
    total = db[collection_name].count_documents(filter_dict)
    return Page(items=docs, total=total, page=page, limit=limit, has_more=has_more)
