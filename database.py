"""
MongoDB access for the Blog API.

The client is created once on startup by ``connect`` and closed on
shutdown by ``close``; request handlers receive the database handle
through the ``get_db`` dependency instead of importing a global.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Union

from bson import ObjectId
from fastapi import Request
from pydantic import BaseModel
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.database import Database

import config

logger = logging.getLogger(__name__)

USERS = "user"
POSTS = "post"
CATEGORIES = "category"


def connect(url: str = config.DATABASE_URL, name: str = config.DATABASE_NAME,
            timeout_ms: int = config.DB_TIMEOUT_MS) -> Database:
    client = MongoClient(
        url,
        serverSelectionTimeoutMS=timeout_ms,
        connectTimeoutMS=timeout_ms,
        socketTimeoutMS=timeout_ms,
    )
    logger.info("MongoDB client created for database %s", name)
    return client[name]


def close(db: Optional[Database]) -> None:
    if db is None:
        return
    db.client.close()
    logger.info("MongoDB connection closed")


def ensure_indexes(db: Database) -> None:
    db[USERS].create_index("email", unique=True)
    db[USERS].create_index("username", unique=True)
    db[POSTS].create_index("slug", unique=True)
    db[POSTS].create_index([("author", ASCENDING), ("createdAt", DESCENDING)])
    db[POSTS].create_index([("status", ASCENDING), ("publishedAt", DESCENDING)])
    db[POSTS].create_index("tags")
    db[CATEGORIES].create_index("name", unique=True)
    db[CATEGORIES].create_index("slug", unique=True)


def get_db(request: Request) -> Database:
    return request.app.state.db


def now() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(value: Any) -> Optional[ObjectId]:
    """Return an ObjectId for ``value`` or None if it cannot be one."""
    if isinstance(value, ObjectId):
        return value
    if isinstance(value, str) and ObjectId.is_valid(value):
        return ObjectId(value)
    return None


def create_document(db: Database, collection: str, data: Union[BaseModel, Dict[str, Any]]) -> Dict[str, Any]:
    """Insert a document stamped with createdAt/updatedAt and return it with its _id."""
    doc = data.model_dump() if isinstance(data, BaseModel) else dict(data)
    stamp = now()
    doc.setdefault("createdAt", stamp)
    doc["updatedAt"] = stamp
    result = db[collection].insert_one(doc)
    doc["_id"] = result.inserted_id
    return doc


def serialize(doc: Any) -> Any:
    """Make a stored document JSON friendly: ObjectId -> str, datetime -> isoformat."""
    if isinstance(doc, dict):
        return {k: serialize(v) for k, v in doc.items()}
    if isinstance(doc, list):
        return [serialize(v) for v in doc]
    if isinstance(doc, ObjectId):
        return str(doc)
    if isinstance(doc, datetime):
        return doc.isoformat()
    return doc
