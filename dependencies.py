"""
FastAPI dependency providers.

All injectable dependencies are defined here as plain async functions
used with FastAPI's Depends() system. Services are built once in the app
lifespan and stored on app.state; these providers only hand them out.
"""

from __future__ import annotations

from typing import Annotated, Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from config import AppSettings
from errors import AuthenticationError
from services.session_service import AuthenticatedUser, SessionService
from services.verification_service import VerificationTokenService

_bearer = HTTPBearer(auto_error=False)


def get_settings(request: Request) -> AppSettings:
    """Return the AppSettings instance stored on app.state."""
    return request.app.state.settings


async def get_verification_service(request: Request) -> VerificationTokenService:
    return request.app.state.verification_service


async def get_session_service(request: Request) -> SessionService:
    return request.app.state.session_service


async def get_optional_user(
    credentials: Annotated[Optional[HTTPAuthorizationCredentials], Depends(_bearer)],
    sessions: Annotated[SessionService, Depends(get_session_service)],
) -> Optional[AuthenticatedUser]:
    """Resolve the bearer session if one is sent; anonymous callers get None.

    A token that is present but invalid is still a 401.
    """
    if credentials is None:
        return None
    return await sessions.authenticate(credentials.credentials)


async def require_user(
    current: Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)],
) -> AuthenticatedUser:
    if current is None:
        raise AuthenticationError("authentication required")
    return current


VerificationServiceDep = Annotated[VerificationTokenService, Depends(get_verification_service)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
SettingsDep = Annotated[AppSettings, Depends(get_settings)]
OptionalUser = Annotated[Optional[AuthenticatedUser], Depends(get_optional_user)]
CurrentUser = Annotated[AuthenticatedUser, Depends(require_user)]
