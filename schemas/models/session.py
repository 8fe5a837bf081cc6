"""
Session document model.

Maps to the `sessions` MongoDB collection (refresh-style opaque tokens).
token_hash stores SHA-256(session token). A session is live while
revoked_at is None and expires_at is in the future; a password reset
revokes every live session of the user.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import field_validator

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.datetime_utils import ensure_utc


class SessionDoc(MongoBaseModel):
    """Document model for the `sessions` collection."""

    user_id: PyObjectId
    token_hash: str
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    expires_at: datetime
    revoked_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("expires_at", "revoked_at", "created_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and now < self.expires_at
