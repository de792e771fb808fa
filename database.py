"""
Database Helper Functions

MongoDB helpers used by the route modules and services. Each pydantic
model in schemas.py maps to a collection named after the lowercase class
name (Product -> "product").
"""

import logging
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument

from settings import settings

logger = logging.getLogger(__name__)

_client = None
db = None

if settings.database_url and settings.database_name:
    _client = MongoClient(settings.database_url)
    db = _client[settings.database_name]


def _ensure_db():
    if db is None:
        raise RuntimeError("Database not available. Check DATABASE_URL and DATABASE_NAME environment variables.")


def _to_dict(data: Union[BaseModel, dict]) -> dict:
    if isinstance(data, BaseModel):
        return data.model_dump()
    return dict(data)


def utcnow() -> datetime:
    # pymongo hands back naive UTC datetimes; store the same so comparisons line up
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is not None and dt.tzinfo is not None:
        return dt.astimezone(timezone.utc).replace(tzinfo=None)
    return dt


def to_object_id(_id: Any) -> Optional[ObjectId]:
    if isinstance(_id, ObjectId):
        return _id
    if isinstance(_id, str) and ObjectId.is_valid(_id):
        return ObjectId(_id)
    return None


def collection(name: str):
    _ensure_db()
    return db[name]


# CRUD helpers

def create_document(collection_name: str, data: Union[BaseModel, dict]) -> str:
    _ensure_db()
    payload = _to_dict(data)
    now = utcnow()
    payload['created_at'] = now
    payload['updated_at'] = now
    result = db[collection_name].insert_one(payload)
    return str(result.inserted_id)


def get_documents(collection_name: str, filter_dict: Optional[dict] = None, limit: Optional[int] = None,
                  sort: Optional[list] = None, projection: Optional[dict] = None) -> List[dict]:
    _ensure_db()
    cursor = db[collection_name].find(filter_dict or {}, projection)
    if sort:
        cursor = cursor.sort(sort)
    if limit:
        cursor = cursor.limit(int(limit))
    return [serialize_doc(doc) for doc in cursor]


def get_page(collection_name: str, filter_dict: Optional[dict] = None, page: int = 1, limit: int = 10,
             sort: Optional[list] = None, projection: Optional[dict] = None) -> Tuple[List[dict], dict]:
    """Return one page of documents plus the pagination block the admin tables expect."""
    _ensure_db()
    page = max(int(page), 1)
    limit = max(int(limit), 1)
    filter_dict = filter_dict or {}
    cursor = db[collection_name].find(filter_dict, projection)
    if sort:
        cursor = cursor.sort(sort)
    cursor = cursor.skip((page - 1) * limit).limit(limit)
    docs = [serialize_doc(doc) for doc in cursor]
    total = db[collection_name].count_documents(filter_dict)
    pagination = {
        "current": page,
        "page_size": limit,
        "total": total,
        "pages": math.ceil(total / limit),
    }
    return docs, pagination


def get_document_by_id(collection_name: str, _id: str) -> Optional[dict]:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    doc = db[collection_name].find_one({"_id": oid})
    return serialize_doc(doc) if doc else None


def find_one(collection_name: str, filter_dict: dict) -> Optional[dict]:
    _ensure_db()
    return serialize_doc(db[collection_name].find_one(filter_dict))


def update_document(collection_name: str, _id: str, update_data: Dict[str, Any]) -> bool:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return False
    update = {"$set": _to_dict(update_data)}
    update["$set"]["updated_at"] = utcnow()
    result = db[collection_name].update_one({"_id": oid}, update)
    return result.matched_count > 0


def update_and_return(collection_name: str, _id: str, update: Dict[str, Any], match: Optional[dict] = None) -> Optional[dict]:
    """Apply a raw update document and return the updated document.

    `match` adds conditions the document must still satisfy; None is
    returned when the document is absent or no longer matches.
    """
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    update = {op: dict(fields) for op, fields in update.items()}
    update.setdefault("$set", {})["updated_at"] = utcnow()
    doc = db[collection_name].find_one_and_update(
        {**(match or {}), "_id": oid}, update, return_document=ReturnDocument.AFTER
    )
    return serialize_doc(doc)


def delete_and_return(collection_name: str, _id: str) -> Optional[dict]:
    _ensure_db()
    oid = to_object_id(_id)
    if oid is None:
        return None
    return serialize_doc(db[collection_name].find_one_and_delete({"_id": oid}))


def count_documents(collection_name: str, filter_dict: Optional[dict] = None) -> int:
    _ensure_db()
    return db[collection_name].count_documents(filter_dict or {})


def distinct_values(collection_name: str, field: str, filter_dict: Optional[dict] = None) -> list:
    _ensure_db()
    return db[collection_name].distinct(field, filter_dict or {})


def text_filter(q: str, fields: List[str]) -> dict:
    """Case-insensitive substring match of `q` against any of `fields`."""
    pattern = re.escape(q.strip())
    return {"$or": [{f: {"$regex": pattern, "$options": "i"}} for f in fields]}


# Stock

def reserve_stock(product_id: str, quantity: int) -> Optional[dict]:
    """Atomically take `quantity` units from an active product.

    Matches only while stock >= quantity, so concurrent callers can never
    drive stock negative. Returns the updated product, or None when the
    product is gone, inactive, or short.
    """
    _ensure_db()
    oid = to_object_id(product_id)
    if oid is None:
        return None
    doc = db["product"].find_one_and_update(
        {"_id": oid, "is_active": True, "stock": {"$gte": quantity}},
        {"$inc": {"stock": -quantity, "sales_count": quantity}, "$set": {"updated_at": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    return serialize_doc(doc)


def release_stock(product_id: str, quantity: int) -> bool:
    """Give `quantity` units back to a product. Returns False if the product no longer exists."""
    _ensure_db()
    oid = to_object_id(product_id)
    if oid is None:
        return False
    result = db["product"].update_one(
        {"_id": oid},
        {"$inc": {"stock": quantity, "sales_count": -quantity}, "$set": {"updated_at": utcnow()}},
    )
    return result.matched_count > 0


# Indexes

def ensure_indexes() -> None:
    _ensure_db()
    db["product"].create_index([("category", ASCENDING)])
    db["product"].create_index([("is_active", ASCENDING), ("is_featured", ASCENDING)])
    db["product"].create_index([("sales_count", DESCENDING)])
    db["order"].create_index([("order_number", ASCENDING)], unique=True)
    db["order"].create_index([("status", ASCENDING)])
    db["order"].create_index([("created_at", DESCENDING)])
    db["user"].create_index([("email", ASCENDING)], unique=True)
    db["user"].create_index([("username", ASCENDING)], unique=True)
    db["newsletter_subscriber"].create_index([("email", ASCENDING)], unique=True)
    logger.info("Database indexes ensured")


# Utility

def serialize_doc(doc: Optional[dict]) -> Optional[dict]:
    if not doc:
        return None
    d = dict(doc)
    if "_id" in d:
        d["_id"] = str(d["_id"])  # convert ObjectId to string
    return d
