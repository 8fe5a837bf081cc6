"""
User document model.

Maps to the `users` MongoDB collection. Only the fields the verification
and session flows read or write are modelled; the rest of the job-board
profile passes through untouched (extra="ignore").
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import ConfigDict, field_validator

from schemas.models.base import MongoBaseModel
from shared.datetime_utils import ensure_utc


class UserDoc(MongoBaseModel):
    """
    Document model for the `users` collection.

    role values: job_seeker, company, admin
    """

    model_config = ConfigDict(
        populate_by_name=True,
        arbitrary_types_allowed=True,
        extra="ignore",
    )

    email: str
    phone: Optional[str] = None
    name: Optional[str] = None
    role: str = "job_seeker"
    password_hash: Optional[str] = None
    email_verified: bool = False
    email_verified_at: Optional[datetime] = None
    phone_verified: bool = False
    phone_verified_at: Optional[datetime] = None
    disabled: bool = False
    password_changed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator(
        "email_verified_at",
        "phone_verified_at",
        "password_changed_at",
        "created_at",
        "updated_at",
    )
    @classmethod
    def _as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)
