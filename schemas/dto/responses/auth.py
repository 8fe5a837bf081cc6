"""
Response DTOs for authentication endpoints.

UserSummary                  — user block inside LoginResponse
LoginResponse                — POST /auth/login  (200)
VerificationSentResponse     — POST /auth/verify-*/request  (200)
VerificationConfirmResponse  — POST /auth/verify-*/confirm  (200)
ResetTokenStatusResponse     — POST /auth/password/reset/verify  (200)
PasswordResetResponse        — POST /auth/password/reset  (200)
SessionInfo                  — entry in SessionListResponse
SessionListResponse          — GET /auth/sessions  (200)
SessionsRevokedResponse      — DELETE /auth/sessions  (200)
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class UserSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: Optional[str] = None
    role: str
    email_verified: bool
    phone_verified: bool


class LoginResponse(BaseModel):
    """Response body for POST /auth/login (200)."""

    model_config = ConfigDict(populate_by_name=True)

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    user: UserSummary


class VerificationSentResponse(BaseModel):
    """Response body for the verification request endpoints.

    ``dev_otp`` and ``dev_preview_url`` only appear outside production
    (route handlers use exclude_none=True).
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    already_verified: bool = False
    masked_destination: Optional[str] = None
    expires_in: Optional[int] = None
    dev_otp: Optional[str] = None
    dev_preview_url: Optional[str] = None


class VerificationConfirmResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    already_verified: bool = False
    verified_at: Optional[datetime] = None


class ResetTokenStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    valid: bool = True
    masked_email: str
    expires_in: int


class PasswordResetResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    sessions_revoked: int


class SessionInfo(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    user_agent: Optional[str] = None
    ip: Optional[str] = None
    created_at: Optional[datetime] = None
    expires_at: datetime
    current: bool = False


class SessionListResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    sessions: list[SessionInfo]


class SessionsRevokedResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    revoked: int
