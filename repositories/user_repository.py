"""MongoDB repository for the `users` collection (verification-related fields only)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId

from schemas.models.user import UserDoc

COLLECTION = "users"


class MongoUserRepository:
    def __init__(self, db) -> None:
        self._col = db[COLLECTION]

    async def find_by_id(self, user_id: ObjectId) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"_id": user_id}))

    async def find_by_email(self, email: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"email": email}))

    async def find_by_phone(self, phone: str) -> Optional[UserDoc]:
        return UserDoc.from_mongo(await self._col.find_one({"phone": phone}))

    async def mark_email_verified(self, user_id: ObjectId, now: datetime) -> bool:
        return await self._set(
            user_id, {"email_verified": True, "email_verified_at": now, "updated_at": now}
        )

    async def mark_phone_verified(self, user_id: ObjectId, now: datetime) -> bool:
        return await self._set(
            user_id, {"phone_verified": True, "phone_verified_at": now, "updated_at": now}
        )

    async def set_password(
        self, user_id: ObjectId, password_hash: str, now: datetime
    ) -> bool:
        return await self._set(
            user_id,
            {"password_hash": password_hash, "password_changed_at": now, "updated_at": now},
        )

    async def _set(self, user_id: ObjectId, fields: dict) -> bool:
        result = await self._col.update_one({"_id": user_id}, {"$set": fields})
        return result.matched_count > 0
