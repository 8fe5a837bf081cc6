"""
Request DTOs for authentication endpoints.

LoginRequest                — POST /auth/login
VerificationRequest         — POST /auth/verify-email/request
OtpConfirmRequest           — POST /auth/verify-email/confirm, /auth/verify-phone/confirm
ForgotPasswordRequest       — POST /auth/password/forgot
ResetTokenRequest           — POST /auth/password/reset/verify
ResetPasswordRequest        — POST /auth/password/reset
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from shared.validators import normalize_email


class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)
    password: str = Field(min_length=1, max_length=256)


class VerificationRequest(BaseModel):
    """Request body for POST /auth/verify-email/request.

    ``email`` identifies the account when the caller is not signed in; an
    authenticated caller may send an empty body.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=254)

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value else None


class OtpConfirmRequest(BaseModel):
    """Request body for the verification *confirm* endpoints.

    ``otp`` is the numeric code from the email or SMS; its configured length
    is checked by the service. ``code`` is accepted as an alias for older
    clients.
    """

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=254)
    otp: str = Field(alias="code", max_length=12, pattern=r"^\d+$")

    @field_validator("email")
    @classmethod
    def _normalize(cls, value: Optional[str]) -> Optional[str]:
        return normalize_email(value) if value else None


class ForgotPasswordRequest(BaseModel):
    """Request body for POST /auth/password/forgot."""

    model_config = ConfigDict(populate_by_name=True)

    email: str = Field(min_length=3, max_length=254)


class ResetTokenRequest(BaseModel):
    """Request body for POST /auth/password/reset/verify."""

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1, max_length=256)


class ResetPasswordRequest(BaseModel):
    """Request body for POST /auth/password/reset.

    Password strength is checked by the service, not here, so policy
    failures come back as one structured 422 listing every unmet rule.
    """

    model_config = ConfigDict(populate_by_name=True)

    token: str = Field(min_length=1, max_length=256)
    new_password: str = Field(alias="password", max_length=1024)
