"""
MongoDB repository for the `verification-tokens` collection.

Every state change is a single-document atomic operation:
- upsert()             find_one_and_update on the pending (user, type) record
- decrement_attempts() $inc guarded by used_at=None and attempts_left>0
- mark_used()          $set guarded by used_at=None, unexpired, attempts left

A guard that no longer matches returns None; the service reads that as
"someone else got there first" rather than re-reading and writing back.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from bson import ObjectId
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from schemas.models.token import TokenType, VerificationTokenDoc
from shared.logging import get_logger

log = get_logger(__name__)

COLLECTION = "verification-tokens"

_NEWEST_FIRST = [("created_at", DESCENDING)]


class MongoTokenRepository:
    def __init__(self, db) -> None:
        self._col = db[COLLECTION]

    async def find_active(
        self, user_id: ObjectId, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]:
        """Newest record for (user, type) that has not been consumed."""
        raw = await self._col.find_one(
            {"user_id": user_id, "token_type": token_type.value, "used_at": None},
            sort=_NEWEST_FIRST,
        )
        return VerificationTokenDoc.from_mongo(raw)

    async def find_latest(
        self, user_id: ObjectId, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]:
        """Newest record for (user, type), consumed or not."""
        raw = await self._col.find_one(
            {"user_id": user_id, "token_type": token_type.value},
            sort=_NEWEST_FIRST,
        )
        return VerificationTokenDoc.from_mongo(raw)

    async def find_by_hash(
        self, token_hash: str, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]:
        raw = await self._col.find_one(
            {"token_type": token_type.value, "token_hash": token_hash},
            sort=_NEWEST_FIRST,
        )
        return VerificationTokenDoc.from_mongo(raw)

    async def upsert(self, record: VerificationTokenDoc) -> VerificationTokenDoc:
        """Write *record* over the pending (user, type) record, or insert it.

        Two concurrent calls for the same key converge on one document: the
        partial unique index rejects the second insert and the retry turns
        it into an update of the winner's record.
        """
        fields = record.to_mongo(include_id=False)
        created_at = fields.pop("created_at")
        for key in ("user_id", "token_type", "used_at"):
            fields.pop(key, None)

        query = {
            "user_id": record.user_id,
            "token_type": record.token_type.value,
            "used_at": None,
        }
        update = {"$set": fields, "$setOnInsert": {"created_at": created_at}}

        try:
            raw = await self._find_one_and_upsert(query, update)
        except DuplicateKeyError:
            log.info(
                "verification_token_upsert_retry",
                user_id=str(record.user_id),
                token_type=record.token_type.value,
            )
            raw = await self._find_one_and_upsert(query, update)
        return VerificationTokenDoc.from_mongo(raw)

    async def _find_one_and_upsert(self, query: dict, update: dict) -> dict:
        return await self._col.find_one_and_update(
            query,
            update,
            sort=_NEWEST_FIRST,
            upsert=True,
            return_document=ReturnDocument.AFTER,
        )

    async def decrement_attempts(
        self, token_id: ObjectId
    ) -> Optional[VerificationTokenDoc]:
        raw = await self._col.find_one_and_update(
            {"_id": token_id, "used_at": None, "attempts_left": {"$gt": 0}},
            {"$inc": {"attempts_left": -1}},
            return_document=ReturnDocument.AFTER,
        )
        return VerificationTokenDoc.from_mongo(raw)

    async def mark_used(
        self, token_id: ObjectId, now: datetime
    ) -> Optional[VerificationTokenDoc]:
        raw = await self._col.find_one_and_update(
            {
                "_id": token_id,
                "used_at": None,
                "expires_at": {"$gt": now},
                "attempts_left": {"$gt": 0},
            },
            {"$set": {"used_at": now}},
            return_document=ReturnDocument.AFTER,
        )
        return VerificationTokenDoc.from_mongo(raw)

    async def delete_expired(self, now: datetime) -> int:
        result = await self._col.delete_many({"expires_at": {"$lte": now}})
        return result.deleted_count
