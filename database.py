from __future__ import annotations
from typing import Any, Optional
from datetime import datetime, timezone
from bson import ObjectId
from bson.errors import InvalidId
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from config import settings
from realtime import broadcaster

_client: Optional[AsyncIOMotorClient] = None
_db: Optional[AsyncIOMotorDatabase] = None


async def get_db() -> AsyncIOMotorDatabase:
    global _client, _db
    if _db is None:
        _client = AsyncIOMotorClient(settings.DATABASE_URL)
        _db = _client[settings.DATABASE_NAME]
    return _db


def use_database(db: Optional[AsyncIOMotorDatabase]) -> None:
    """Swap the active database handle (used by the test suite)."""
    global _db
    _db = db


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_object_id(id_str: str) -> Optional[ObjectId]:
    try:
        return ObjectId(id_str)
    except (InvalidId, TypeError):
        return None


def serialize(doc: Optional[dict[str, Any]]) -> Optional[dict[str, Any]]:
    if not doc:
        return None
    if "_id" in doc:
        doc["id"] = str(doc.pop("_id"))
    return doc


async def create_document(collection_name: str, data: dict[str, Any]) -> dict[str, Any]:
    db = await get_db()
    now = utcnow()
    data_with_meta = {**data, "created_at": now, "updated_at": now}
    result = await db[collection_name].insert_one(data_with_meta)
    inserted = await db[collection_name].find_one({"_id": result.inserted_id})
    broadcaster.publish(collection_name, "INSERT")
    return serialize(inserted) or {}


async def get_document(collection_name: str, doc_id: str) -> Optional[dict[str, Any]]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    db = await get_db()
    return serialize(await db[collection_name].find_one({"_id": oid}))


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
    if limit:
        cursor = cursor.limit(limit)
    docs = []
    async for d in cursor:
        docs.append(serialize(d))
    return docs


async def update_document(collection_name: str, doc_id: str, updates: dict[str, Any]) -> Optional[dict[str, Any]]:
    oid = to_object_id(doc_id)
    if oid is None:
        return None
    db = await get_db()
    res = await db[collection_name].update_one({"_id": oid}, {"$set": {**updates, "updated_at": utcnow()}})
    if res.matched_count == 0:
        return None
    broadcaster.publish(collection_name, "UPDATE")
    return serialize(await db[collection_name].find_one({"_id": oid}))


async def delete_document(collection_name: str, doc_id: str) -> bool:
    oid = to_object_id(doc_id)
    if oid is None:
        return False
    db = await get_db()
    res = await db[collection_name].delete_one({"_id": oid})
    if res.deleted_count == 0:
        return False
    broadcaster.publish(collection_name, "DELETE")
    return True
