"""Repository protocols — services depend on these, not on MongoDB.

The Mongo implementations live next to this module; tests use in-memory
implementations of the same protocols.
"""

from datetime import datetime
from typing import Optional, Protocol

from bson import ObjectId

from schemas.models.session import SessionDoc
from schemas.models.token import TokenType, VerificationTokenDoc
from schemas.models.user import UserDoc


class TokenRepository(Protocol):
    async def find_active(
        self, user_id: ObjectId, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]: ...

    async def find_latest(
        self, user_id: ObjectId, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]: ...

    async def find_by_hash(
        self, token_hash: str, token_type: TokenType
    ) -> Optional[VerificationTokenDoc]: ...

    async def upsert(self, record: VerificationTokenDoc) -> VerificationTokenDoc: ...

    async def decrement_attempts(
        self, token_id: ObjectId
    ) -> Optional[VerificationTokenDoc]: ...

    async def mark_used(
        self, token_id: ObjectId, now: datetime
    ) -> Optional[VerificationTokenDoc]: ...

    async def delete_expired(self, now: datetime) -> int: ...


class UserRepository(Protocol):
    async def find_by_id(self, user_id: ObjectId) -> Optional[UserDoc]: ...

    async def find_by_email(self, email: str) -> Optional[UserDoc]: ...

    async def find_by_phone(self, phone: str) -> Optional[UserDoc]: ...

    async def mark_email_verified(self, user_id: ObjectId, now: datetime) -> bool: ...

    async def mark_phone_verified(self, user_id: ObjectId, now: datetime) -> bool: ...

    async def set_password(
        self, user_id: ObjectId, password_hash: str, now: datetime
    ) -> bool: ...


class SessionRepository(Protocol):
    async def insert(self, session: SessionDoc) -> SessionDoc: ...

    async def find_by_hash(self, token_hash: str) -> Optional[SessionDoc]: ...

    async def list_active(self, user_id: ObjectId, now: datetime) -> list[SessionDoc]: ...

    async def revoke(self, user_id: ObjectId, session_id: ObjectId, now: datetime) -> bool: ...

    async def revoke_all(self, user_id: ObjectId, now: datetime) -> int: ...
