"""
Verification token document model.

Maps to the `verification-tokens` MongoDB collection.

One record holds one single-use secret for one (user, token_type):
- email / phone      → 6-digit OTP
- password_reset     → opaque hex bearer token (embedded in a reset link)

token_hash stores SHA-256(secret) — the plaintext is never stored.
used_at is None until the token is consumed; once set the record is terminal.
attempts_left counts down on every wrong guess; re-issuing resets it.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import Field, field_validator

from schemas.models.base import MongoBaseModel, PyObjectId
from shared.datetime_utils import ensure_utc


class TokenType(str, Enum):
    EMAIL = "email"
    PHONE = "phone"
    PASSWORD_RESET = "password_reset"

    @property
    def is_otp(self) -> bool:
        return self is not TokenType.PASSWORD_RESET


# Older clients and records spell the reset type the other way round
_LEGACY_TOKEN_TYPES = {"reset_password": TokenType.PASSWORD_RESET.value}

DEFAULT_ATTEMPTS = 5


class VerificationTokenDoc(MongoBaseModel):
    """Document model for the `verification-tokens` collection."""

    user_id: PyObjectId
    token_type: TokenType
    token_hash: str = Field(pattern=r"^[a-fA-F0-9]{32,128}$")
    destination: Optional[str] = None
    attempts_left: int = Field(default=DEFAULT_ATTEMPTS, ge=0, le=10)
    last_sent_at: Optional[datetime] = None
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @field_validator("token_type", mode="before")
    @classmethod
    def _normalize_legacy_type(cls, value):
        if isinstance(value, str):
            return _LEGACY_TOKEN_TYPES.get(value, value)
        return value

    @field_validator("last_sent_at", "expires_at", "used_at", "created_at")
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    @property
    def is_used(self) -> bool:
        return self.used_at is not None

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at

    def is_consumable(self, now: datetime) -> bool:
        return not self.is_used and not self.is_expired(now) and self.attempts_left > 0
