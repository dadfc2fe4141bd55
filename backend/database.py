from __future__ import annotations
import logging
import os
from datetime import datetime, timezone
from typing import Any, Optional

from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pydantic_settings import BaseSettings
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from backend.errors import InvalidIdentifier, NotFound

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "bonneaffaire78")
    ENVIRONMENT: str = "development"
    FRONTEND_URL: Optional[str] = None
    PORT: int = 3001
    MAX_POOL_SIZE: int = 10
    SERVER_SELECTION_TIMEOUT_MS: int = 5000
    SOCKET_TIMEOUT_MS: int = 45000

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


settings = Settings()

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


def utcnow() -> datetime:
    # Mongo hands back naive UTC datetimes, keep everything comparable
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_object_id(value: str) -> ObjectId:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        raise InvalidIdentifier(value)


def serialize_doc(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not doc:
        return doc
    doc = dict(doc)
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(
            settings.DATABASE_URL,
            maxPoolSize=settings.MAX_POOL_SIZE,
            serverSelectionTimeoutMS=settings.SERVER_SELECTION_TIMEOUT_MS,
            socketTimeoutMS=settings.SOCKET_TIMEOUT_MS,
        )
        _db = _client[settings.DATABASE_NAME]
    return _db


async def close_db() -> None:
    global _client, _db
    if _client is not None:
        _client.close()
        logger.info("MongoDB connection closed")
    _client = None
    _db = None


async def ping() -> None:
    db = await get_db()
    await db.command("ping")


async def ensure_indexes() -> None:
    db = await get_db()
    await db["order"].create_index("orderNumber", unique=True)
    await db["order"].create_index("customer.email")
    await db["order"].create_index([("status", ASCENDING), ("createdAt", DESCENDING)])
    await db["order"].create_index([("createdAt", DESCENDING)])
    await db["product"].create_index(
        "seo.slug",
        unique=True,
        partialFilterExpression={"seo.slug": {"$type": "string"}},
    )
    await db["product"].create_index(
        [("category", ASCENDING), ("isActive", ASCENDING), ("featured", DESCENDING)]
    )
    await db["product"].create_index("price")


async def create_document(collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    now = utcnow()
    data_with_meta = {**data, "createdAt": now, "updatedAt": now}
    data_with_meta.pop("id", None)
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    return serialize_doc(inserted) or {}


async def replace_document(collection_name: str, doc_id: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    data_with_meta = {**data, "updatedAt": utcnow()}
    data_with_meta.pop("id", None)
    oid = to_object_id(doc_id)
    result = await db[collection_name].replace_one({"_id": oid}, data_with_meta)
    if result.matched_count == 0:
        raise NotFound(collection_name, doc_id)
    updated = await db[collection_name].find_one({"_id": oid})
    return serialize_doc(updated) or {}


async def increment_fields(collection_name: str, doc_id: str, increments: dict[str, int]) -> dict[str, Any]:
    """Apply a single atomic $inc and return the document as stored afterwards."""
    db = await get_db()
    updated = await db[collection_name].find_one_and_update(
        {"_id": to_object_id(doc_id)},
        {"$inc": increments, "$set": {"updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )
    if updated is None:
        raise NotFound(collection_name, doc_id)
    return serialize_doc(updated)


async def get_document(collection_name: str, doc_id: str) -> dict[str, Any]:
    db = await get_db()
    doc = await db[collection_name].find_one({"_id": to_object_id(doc_id)})
    if doc is None:
        raise NotFound(collection_name, doc_id)
    return serialize_doc(doc)


async def find_document(collection_name: str, filter_dict: dict[str, Any]) -> Optional[dict[str, Any]]:
    db = await get_db()
    return serialize_doc(await db[collection_name].find_one(filter_dict))


async def count_documents(collection_name: str, filter_dict: dict[str, Any] | None = None) -> int:
    db = await get_db()
    return await db[collection_name].count_documents(filter_dict or {})


async def get_documents(
    collection_name: str,
    filter_dict: dict[str, Any] | None = None,
    limit: int = 100,
    sort: list[tuple[str, int]] | None = None,
) -> list[dict[str, Any]]:
    db = await get_db()
    cursor = db[collection_name].find(filter_dict or {})
    if sort:
        cursor = cursor.sort(sort)
    cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(serialize_doc(d))
    return docs
