"""MongoDB repository for the `sessions` collection."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING

from schemas.models.session import SessionDoc

COLLECTION = "sessions"


class MongoSessionRepository:
    def __init__(self, db) -> None:
        self._col = db[COLLECTION]

    async def insert(self, session: SessionDoc) -> SessionDoc:
        result = await self._col.insert_one(session.to_mongo())
        return session.model_copy(update={"id": result.inserted_id})

    async def find_by_hash(self, token_hash: str) -> Optional[SessionDoc]:
        return SessionDoc.from_mongo(await self._col.find_one({"token_hash": token_hash}))

    async def list_active(self, user_id: ObjectId, now: datetime) -> list[SessionDoc]:
        cursor = self._col.find(
            {"user_id": user_id, "revoked_at": None, "expires_at": {"$gt": now}}
        ).sort("expires_at", DESCENDING)
        return [SessionDoc.from_mongo(raw) for raw in await cursor.to_list(length=None)]

    async def revoke(self, user_id: ObjectId, session_id: ObjectId, now: datetime) -> bool:
        result = await self._col.update_one(
            {"_id": session_id, "user_id": user_id, "revoked_at": None},
            {"$set": {"revoked_at": now}},
        )
        return result.modified_count > 0

    async def revoke_all(self, user_id: ObjectId, now: datetime) -> int:
        result = await self._col.update_many(
            {"user_id": user_id, "revoked_at": None},
            {"$set": {"revoked_at": now}},
        )
        return result.modified_count
