"""
Authentication routes: login, email/phone verification, password reset and
session management.

POST   /auth/login
POST   /auth/logout                    bearer required, revokes the calling session
POST   /auth/verify-email/request      optional bearer, else body.email
POST   /auth/verify-email/confirm      optional bearer, else body.email
POST   /auth/verify-phone/request      bearer required
POST   /auth/verify-phone/confirm      bearer required
POST   /auth/password/forgot           always the same generic answer
POST   /auth/password/reset/verify
POST   /auth/password/reset
GET    /auth/sessions                  bearer required
DELETE /auth/sessions                  bearer required
DELETE /auth/sessions/{session_id}     bearer required

Service errors are AppError subclasses and are turned into JSON by the
handlers in errors.py; nothing here catches them.
"""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Request

from dependencies import (
    CurrentUser,
    OptionalUser,
    SessionServiceDep,
    SettingsDep,
    VerificationServiceDep,
)
from errors import ValidationError
from schemas.dto.requests.auth import (
    ForgotPasswordRequest,
    LoginRequest,
    OtpConfirmRequest,
    ResetPasswordRequest,
    ResetTokenRequest,
    VerificationRequest,
)
from schemas.dto.responses.auth import (
    LoginResponse,
    PasswordResetResponse,
    ResetTokenStatusResponse,
    SessionInfo,
    SessionListResponse,
    SessionsRevokedResponse,
    UserSummary,
    VerificationConfirmResponse,
    VerificationSentResponse,
)
from schemas.dto.responses.common import ErrorResponse, MessageResponse
from schemas.models.token import TokenType
from services.verification_service import IssueResult, VerifyResult
from shared.ip_utils import get_client_ip, get_user_agent

router = APIRouter(
    prefix="/auth",
    tags=["auth"],
    responses={
        status: {"model": ErrorResponse} for status in (400, 401, 403, 404, 422, 429, 503)
    },
)

FORGOT_PASSWORD_MESSAGE = "If an account exists for that email, a reset link has been sent."

_CHANNEL_LABELS = {TokenType.EMAIL: "email", TokenType.PHONE: "phone number"}


def _sent_response(result: IssueResult) -> VerificationSentResponse:
    label = _CHANNEL_LABELS[result.token_type]
    if result.already_verified:
        return VerificationSentResponse(
            message=f"{label} already verified",
            already_verified=True,
            masked_destination=result.masked_destination,
        )
    return VerificationSentResponse(
        message=f"verification code sent to your {label}",
        masked_destination=result.masked_destination,
        expires_in=result.expires_in,
        dev_otp=result.dev_secret,
        dev_preview_url=result.dev_preview_url,
    )


def _confirm_response(result: VerifyResult) -> VerificationConfirmResponse:
    label = _CHANNEL_LABELS[result.token_type]
    return VerificationConfirmResponse(
        message=f"{label} already verified" if result.already_verified else f"{label} verified",
        already_verified=result.already_verified,
        verified_at=result.verified_at,
    )


def _require_email(email: Optional[str]) -> str:
    if not email:
        raise ValidationError("email is required", field="email")
    return email


# ── Login ─────────────────────────────────────────────────────────────────────


@router.post("/login", response_model=LoginResponse)
async def login(
    body: LoginRequest, request: Request, sessions: SessionServiceDep
) -> LoginResponse:
    result = await sessions.login(
        body.email,
        body.password,
        user_agent=get_user_agent(request),
        ip=get_client_ip(request),
    )
    user = result.user
    return LoginResponse(
        access_token=result.access_token,
        expires_in=result.expires_in,
        user=UserSummary(
            id=str(user.id),
            email=user.email,
            name=user.name,
            role=user.role,
            email_verified=user.email_verified,
            phone_verified=user.phone_verified,
        ),
    )


@router.post("/logout", response_model=MessageResponse)
async def logout(current: CurrentUser, sessions: SessionServiceDep) -> MessageResponse:
    await sessions.revoke(current.user.id, str(current.session.id))
    return MessageResponse(success=True, message="signed out")


# ── Email verification ────────────────────────────────────────────────────────


@router.post(
    "/verify-email/request",
    response_model=VerificationSentResponse,
    response_model_exclude_none=True,
)
async def request_email_verification(
    body: VerificationRequest,
    current: OptionalUser,
    service: VerificationServiceDep,
) -> VerificationSentResponse:
    if current is not None:
        result = await service.request_verification(TokenType.EMAIL, user_id=current.user.id)
    else:
        result = await service.request_verification(
            TokenType.EMAIL, destination=_require_email(body.email)
        )
    return _sent_response(result)


@router.post(
    "/verify-email/confirm",
    response_model=VerificationConfirmResponse,
    response_model_exclude_none=True,
)
async def confirm_email_verification(
    body: OtpConfirmRequest,
    current: OptionalUser,
    service: VerificationServiceDep,
) -> VerificationConfirmResponse:
    if current is not None:
        result = await service.verify(TokenType.EMAIL, body.otp, user_id=current.user.id)
    else:
        result = await service.verify(
            TokenType.EMAIL, body.otp, destination=_require_email(body.email)
        )
    return _confirm_response(result)


# ── Phone verification ────────────────────────────────────────────────────────


@router.post(
    "/verify-phone/request",
    response_model=VerificationSentResponse,
    response_model_exclude_none=True,
)
async def request_phone_verification(
    current: CurrentUser, service: VerificationServiceDep
) -> VerificationSentResponse:
    result = await service.request_verification(TokenType.PHONE, user_id=current.user.id)
    return _sent_response(result)


@router.post(
    "/verify-phone/confirm",
    response_model=VerificationConfirmResponse,
    response_model_exclude_none=True,
)
async def confirm_phone_verification(
    body: OtpConfirmRequest, current: CurrentUser, service: VerificationServiceDep
) -> VerificationConfirmResponse:
    result = await service.verify(TokenType.PHONE, body.otp, user_id=current.user.id)
    return _confirm_response(result)


# ── Password reset ────────────────────────────────────────────────────────────


@router.post(
    "/password/forgot",
    response_model=VerificationSentResponse,
    response_model_exclude_none=True,
)
async def forgot_password(
    body: ForgotPasswordRequest,
    service: VerificationServiceDep,
    settings: SettingsDep,
) -> VerificationSentResponse:
    result = await service.request_password_reset(body.email)
    response = VerificationSentResponse(message=FORGOT_PASSWORD_MESSAGE)
    # Development only: surface the link so the flow works without a mail provider
    if result is not None and not settings.is_production:
        response.dev_preview_url = result.dev_preview_url
    return response


@router.post("/password/reset/verify", response_model=ResetTokenStatusResponse)
async def verify_reset_token(
    body: ResetTokenRequest, service: VerificationServiceDep
) -> ResetTokenStatusResponse:
    status = await service.inspect_password_reset_token(body.token)
    return ResetTokenStatusResponse(
        masked_email=status.masked_destination, expires_in=status.expires_in
    )


@router.post("/password/reset", response_model=PasswordResetResponse)
async def reset_password(
    body: ResetPasswordRequest, service: VerificationServiceDep
) -> PasswordResetResponse:
    result = await service.consume_password_reset_token(body.token, body.new_password)
    return PasswordResetResponse(
        message="password updated, please sign in again",
        sessions_revoked=result.sessions_revoked,
    )


# ── Sessions ──────────────────────────────────────────────────────────────────


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    current: CurrentUser, sessions: SessionServiceDep
) -> SessionListResponse:
    active = await sessions.list_sessions(current.user.id)
    return SessionListResponse(
        sessions=[
            SessionInfo(
                id=str(s.id),
                user_agent=s.user_agent,
                ip=s.ip,
                created_at=s.created_at,
                expires_at=s.expires_at,
                current=s.id == current.session.id,
            )
            for s in active
        ]
    )


@router.delete("/sessions", response_model=SessionsRevokedResponse)
async def revoke_all_sessions(
    current: CurrentUser, sessions: SessionServiceDep
) -> SessionsRevokedResponse:
    revoked = await sessions.revoke_all(current.user.id)
    return SessionsRevokedResponse(revoked=revoked)


@router.delete("/sessions/{session_id}", response_model=MessageResponse)
async def revoke_session(
    session_id: str, current: CurrentUser, sessions: SessionServiceDep
) -> MessageResponse:
    await sessions.revoke(current.user.id, session_id)
    return MessageResponse(success=True, message="session revoked")
