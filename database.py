"""
MongoDB access helpers.

A single client is created at import time when DATABASE_URL and DATABASE_NAME
are set. Routes receive the database through the `get_db` dependency so it can
be swapped out (tests use an in-memory mongomock database).
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from bson import ObjectId
from pydantic import BaseModel
from pymongo import ASCENDING, MongoClient
from pymongo.database import Database

import config
from errors import StoreError

logger = logging.getLogger(__name__)

_client: Optional[MongoClient] = None
db: Optional[Database] = None

if config.DATABASE_URL and config.DATABASE_NAME:
    _client = MongoClient(config.DATABASE_URL)
    db = _client[config.DATABASE_NAME]


def get_db() -> Database:
    if db is None:
        raise StoreError("Database not configured")
    return db


def ensure_indexes(database: Database) -> None:
    database["user"].create_index([("email", ASCENDING)], unique=True)
    database["cart"].create_index([("user_id", ASCENDING)], unique=True)
    database["stock_movement"].create_index([("product_id", ASCENDING)])
    logger.info("indexes ensured on %s", database.name)


def utcnow() -> datetime:
    # naive UTC, which is what pymongo hands back by default
    return datetime.now(timezone.utc).replace(tzinfo=None)


def create_document(database: Database, collection_name: str, data: Union[BaseModel, dict]) -> str:
    """Insert a document stamped with created_at/updated_at and return its id as a string."""
    if isinstance(data, BaseModel):
        doc = data.model_dump()
    else:
        doc = dict(data)
    now = utcnow()
    doc.setdefault("created_at", now)
    doc["updated_at"] = now
    result = database[collection_name].insert_one(doc)
    return str(result.inserted_id)


def get_documents(database: Database, collection_name: str, filter_dict: Optional[dict] = None) -> List[dict]:
    return list(database[collection_name].find(filter_dict or {}))


def doc_to_dict(doc: Any) -> Any:
    """Make a Mongo document JSON friendly: ObjectId -> str, datetime -> ISO, _id -> id."""
    if isinstance(doc, list):
        return [doc_to_dict(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    if not isinstance(doc, dict):
        return doc
    out: Dict[str, Any] = {}
    for k, v in doc.items():
        out[k] = doc_to_dict(v)
    if "_id" in out:
        out["id"] = out.pop("_id")
    return out


def resolve_refs(database: Database, collection_name: str, ids, fields: List[str]) -> Dict[ObjectId, dict]:
    """Fetch referenced documents in one query, keyed by ObjectId, projected to `fields`."""
    unique_ids = list({i for i in ids if i is not None})
    if not unique_ids:
        return {}
    projection = {f: 1 for f in fields}
    docs = database[collection_name].find({"_id": {"$in": unique_ids}}, projection)
    return {d["_id"]: d for d in docs}
