"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to consistent JSON responses.

The verification errors keep one class (and one error_code) per outcome so
logs and audit trails can tell expired, unknown and already-used tokens
apart. Their user-facing messages are deliberately the same.

Non-AppError exceptions bubble up as 500s (with Sentry reporting in production).
"""

from __future__ import annotations

import math
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

INVALID_TOKEN_MESSAGE = "invalid or expired code"


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {"error": self.message, "code": self.error_code}
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def headers(self) -> Optional[dict[str, str]]:
        return None


class ValidationError(AppError):
    status_code = 400
    error_code = "validation_error"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "authentication_error"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "forbidden"


class NotFoundError(AppError):
    status_code = 404
    error_code = "not_found"


class RateLimitError(AppError):
    status_code = 429
    error_code = "rate_limit_exceeded"


class ServiceUnavailableError(AppError):
    status_code = 503
    error_code = "service_unavailable"


# ── Verification outcomes ─────────────────────────────────────────────────────


class SubjectNotFoundError(NotFoundError):
    error_code = "subject_not_found"

    def __init__(self, message: str = "user not found", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class TokenRejectedError(ValidationError):
    """A token could not be consumed. Subclasses name the exact reason."""

    error_code = "token_rejected"
    reason = "rejected"

    def __init__(self, message: str = INVALID_TOKEN_MESSAGE, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class TokenNotFoundError(TokenRejectedError):
    error_code = "token_not_found"
    reason = "not_found"


class TokenExpiredError(TokenRejectedError):
    error_code = "token_expired"
    reason = "expired"


class TokenAlreadyUsedError(TokenRejectedError):
    error_code = "token_already_used"
    reason = "already_used"


class TokenMismatchError(TokenRejectedError):
    error_code = "token_mismatch"
    reason = "mismatch"

    def __init__(self, message: str = "incorrect code", **kwargs: Any) -> None:
        super().__init__(message, **kwargs)


class AttemptsExhaustedError(RateLimitError):
    error_code = "attempts_exhausted"
    reason = "attempts_exhausted"

    def __init__(
        self,
        message: str = "too many failed attempts, please request a new code",
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)


class ThrottledError(RateLimitError):
    error_code = "throttled"

    def __init__(self, retry_after: float, message: Optional[str] = None) -> None:
        self.retry_after = max(1, math.ceil(retry_after))
        super().__init__(
            message
            or f"please wait {self.retry_after} seconds before requesting another code",
            details={"retry_after": self.retry_after},
        )

    def headers(self) -> Optional[dict[str, str]]:
        return {"Retry-After": str(self.retry_after)}


class PasswordPolicyError(AppError):
    status_code = 422
    error_code = "password_policy_violation"

    def __init__(self, missing_requirements: list[str]) -> None:
        self.missing_requirements = list(missing_requirements)
        super().__init__(
            "password does not meet requirements",
            field="new_password",
            details={"missing_requirements": self.missing_requirements},
        )


class DeliveryFailedError(ServiceUnavailableError):
    error_code = "delivery_failed"

    def __init__(
        self, message: str = "could not deliver the code right now, try again later"
    ) -> None:
        super().__init__(message)


def register_error_handlers(app: FastAPI) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code, content=exc.to_dict(), headers=exc.headers()
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        # Sentry integration: if sentry_sdk is initialized it will auto-capture
        # unhandled exceptions before this handler fires.
        return JSONResponse(
            status_code=500,
            content={"error": "An internal server error occurred.", "code": "internal_error"},
        )
