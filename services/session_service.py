"""
Session lifecycle — login, bearer authentication, listing and revocation.

Sessions are opaque random tokens; only their SHA-256 digest is stored. A
password reset calls SessionRepository.revoke_all() directly, so every
token issued before the reset stops authenticating.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from config import SessionSettings
from errors import AuthenticationError, ForbiddenError, NotFoundError
from repositories.protocol import SessionRepository, UserRepository
from schemas.models.base import to_object_id
from schemas.models.session import SessionDoc
from schemas.models.user import UserDoc
from shared.crypto import hash_token, verify_password
from shared.datetime_utils import Clock, utc_now
from shared.generators import generate_session_token
from shared.logging import get_logger
from shared.validators import normalize_email

log = get_logger(__name__)

_INVALID_CREDENTIALS = "invalid email or password"


@dataclass
class LoginResult:
    user: UserDoc
    session: SessionDoc
    access_token: str
    expires_in: int


@dataclass
class AuthenticatedUser:
    user: UserDoc
    session: SessionDoc


class SessionService:
    def __init__(
        self,
        users: UserRepository,
        sessions: SessionRepository,
        settings: SessionSettings,
        clock: Clock = utc_now,
    ) -> None:
        self._users = users
        self._sessions = sessions
        self._settings = settings
        self._clock = clock

    async def login(
        self,
        email: str,
        password: str,
        *,
        user_agent: Optional[str] = None,
        ip: Optional[str] = None,
    ) -> LoginResult:
        """Check credentials and open a new session.

        Raises:
            AuthenticationError: unknown email, no password set, or wrong password.
            ForbiddenError: the account is disabled.
        """
        user = await self._users.find_by_email(normalize_email(email))
        if user is None or not user.password_hash:
            log.warning("login_failed", reason="invalid_credentials")
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if not verify_password(password, user.password_hash):
            log.warning("login_failed", reason="invalid_credentials", user_id=str(user.id))
            raise AuthenticationError(_INVALID_CREDENTIALS)
        if user.disabled:
            log.warning("login_failed", reason="account_disabled", user_id=str(user.id))
            raise ForbiddenError("account is disabled")

        now = self._clock()
        raw_token = generate_session_token()
        session = await self._sessions.insert(
            SessionDoc(
                user_id=user.id,
                token_hash=hash_token(raw_token),
                user_agent=user_agent,
                ip=ip,
                expires_at=now + timedelta(seconds=self._settings.session_ttl_seconds),
                created_at=now,
            )
        )
        log.info("session_created", user_id=str(user.id), session_id=str(session.id))
        return LoginResult(
            user=user,
            session=session,
            access_token=raw_token,
            expires_in=self._settings.session_ttl_seconds,
        )

    async def authenticate(self, raw_token: str) -> AuthenticatedUser:
        """Resolve a bearer token to its live session and user."""
        if not raw_token:
            raise AuthenticationError("authentication required")

        session = await self._sessions.find_by_hash(hash_token(raw_token))
        if session is None or not session.is_active(self._clock()):
            raise AuthenticationError("invalid or expired session")

        user = await self._users.find_by_id(session.user_id)
        if user is None or user.disabled:
            raise AuthenticationError("invalid or expired session")
        return AuthenticatedUser(user=user, session=session)

    async def list_sessions(self, user_id: Any) -> list[SessionDoc]:
        return await self._sessions.list_active(to_object_id(user_id), self._clock())

    async def revoke(self, user_id: Any, session_id: str) -> None:
        try:
            session_oid = to_object_id(session_id)
        except ValueError:
            raise NotFoundError("session not found")

        revoked = await self._sessions.revoke(
            to_object_id(user_id), session_oid, self._clock()
        )
        if not revoked:
            raise NotFoundError("session not found")
        log.info("session_revoked", user_id=str(user_id), session_id=session_id)

    async def revoke_all(self, user_id: Any, now: Optional[datetime] = None) -> int:
        count = await self._sessions.revoke_all(to_object_id(user_id), now or self._clock())
        log.info("sessions_revoked_all", user_id=str(user_id), count=count)
        return count
