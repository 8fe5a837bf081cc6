"""
Shared test fixtures: in-memory repositories, recording senders, a
controllable clock, and a fully wired VerificationTokenService.

The in-memory repositories implement the same guarded operations as the
Mongo ones (filtered upsert, conditional decrement / mark-used), so the
service behaves against them exactly as it does against MongoDB.
"""

from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest
from bson import ObjectId

from config import OperatingMode, SessionSettings, VerificationSettings
from infrastructure.notifications import DeliveryReceipt, RenderedMessage
from schemas.models.session import SessionDoc
from schemas.models.token import TokenType, VerificationTokenDoc
from schemas.models.user import UserDoc
from services.messages import MessageRenderer
from services.session_service import SessionService
from services.verification_service import VerificationTokenService
from shared.crypto import hash_password

START = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
USER_PASSWORD = "OldPassw0rd"

_OTP_RE = re.compile(r"\b(\d{6})\b")
_RESET_RE = re.compile(r"token=([0-9a-f]{64})")


# ── Clock ─────────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


# ── Repositories ──────────────────────────────────────────────────────────────


class InMemoryTokenRepository:
    def __init__(self) -> None:
        self.records: dict[ObjectId, VerificationTokenDoc] = {}
        self._order: dict[ObjectId, int] = {}
        self._seq = itertools.count()

    def _newest_first(self, records):
        return sorted(
            records,
            key=lambda r: (r.created_at, self._order[r.id]),
            reverse=True,
        )

    def _matching(self, user_id, token_type, pending_only):
        return self._newest_first(
            r
            for r in self.records.values()
            if r.user_id == user_id
            and r.token_type == token_type
            and (not pending_only or r.used_at is None)
        )

    async def find_active(self, user_id, token_type):
        found = self._matching(user_id, token_type, pending_only=True)
        return found[0].model_copy() if found else None

    async def find_latest(self, user_id, token_type):
        found = self._matching(user_id, token_type, pending_only=False)
        return found[0].model_copy() if found else None

    async def find_by_hash(self, token_hash, token_type):
        found = self._newest_first(
            r
            for r in self.records.values()
            if r.token_hash == token_hash and r.token_type == token_type
        )
        return found[0].model_copy() if found else None

    async def upsert(self, record):
        pending = self._matching(record.user_id, record.token_type, pending_only=True)
        if pending:
            current = pending[0]
            updated = current.model_copy(
                update={
                    "token_hash": record.token_hash,
                    "destination": record.destination,
                    "attempts_left": record.attempts_left,
                    "last_sent_at": record.last_sent_at,
                    "expires_at": record.expires_at,
                }
            )
        else:
            updated = record.model_copy(update={"id": ObjectId(), "used_at": None})
            self._order[updated.id] = next(self._seq)
        self.records[updated.id] = updated
        return updated.model_copy()

    async def decrement_attempts(self, token_id):
        record = self.records.get(token_id)
        if record is None or record.used_at is not None or record.attempts_left <= 0:
            return None
        record = record.model_copy(update={"attempts_left": record.attempts_left - 1})
        self.records[token_id] = record
        return record.model_copy()

    async def mark_used(self, token_id, now):
        record = self.records.get(token_id)
        if (
            record is None
            or record.used_at is not None
            or record.expires_at <= now
            or record.attempts_left <= 0
        ):
            return None
        record = record.model_copy(update={"used_at": now})
        self.records[token_id] = record
        return record.model_copy()

    async def delete_expired(self, now):
        expired = [k for k, r in self.records.items() if r.expires_at <= now]
        for key in expired:
            del self.records[key]
        return len(expired)

    def pending(self, user_id, token_type) -> list[VerificationTokenDoc]:
        return self._matching(user_id, token_type, pending_only=True)


class InMemoryUserRepository:
    def __init__(self) -> None:
        self.users: dict[ObjectId, UserDoc] = {}

    def add(self, user: UserDoc) -> UserDoc:
        if user.id is None:
            user = user.model_copy(update={"id": ObjectId()})
        self.users[user.id] = user
        return user

    async def find_by_id(self, user_id):
        user = self.users.get(user_id)
        return user.model_copy() if user else None

    async def find_by_email(self, email):
        return next((u.model_copy() for u in self.users.values() if u.email == email), None)

    async def find_by_phone(self, phone):
        return next((u.model_copy() for u in self.users.values() if u.phone == phone), None)

    def _set(self, user_id, **fields) -> bool:
        user = self.users.get(user_id)
        if user is None:
            return False
        self.users[user_id] = user.model_copy(update=fields)
        return True

    async def mark_email_verified(self, user_id, now):
        return self._set(user_id, email_verified=True, email_verified_at=now, updated_at=now)

    async def mark_phone_verified(self, user_id, now):
        return self._set(user_id, phone_verified=True, phone_verified_at=now, updated_at=now)

    async def set_password(self, user_id, password_hash, now):
        return self._set(
            user_id, password_hash=password_hash, password_changed_at=now, updated_at=now
        )


class InMemorySessionRepository:
    def __init__(self) -> None:
        self.sessions: dict[ObjectId, SessionDoc] = {}

    async def insert(self, session):
        session = session.model_copy(update={"id": ObjectId()})
        self.sessions[session.id] = session
        return session.model_copy()

    async def find_by_hash(self, token_hash):
        return next(
            (s.model_copy() for s in self.sessions.values() if s.token_hash == token_hash),
            None,
        )

    async def list_active(self, user_id, now):
        active = [
            s.model_copy()
            for s in self.sessions.values()
            if s.user_id == user_id and s.is_active(now)
        ]
        return sorted(active, key=lambda s: s.expires_at, reverse=True)

    async def revoke(self, user_id, session_id, now):
        session = self.sessions.get(session_id)
        if session is None or session.user_id != user_id or session.revoked_at is not None:
            return False
        self.sessions[session_id] = session.model_copy(update={"revoked_at": now})
        return True

    async def revoke_all(self, user_id, now):
        count = 0
        for key, session in list(self.sessions.items()):
            if session.user_id == user_id and session.revoked_at is None:
                self.sessions[key] = session.model_copy(update={"revoked_at": now})
                count += 1
        return count


# ── Senders ───────────────────────────────────────────────────────────────────


class RecordingSender:
    def __init__(self, delivered: bool = True, preview_url: Optional[str] = None) -> None:
        self.delivered = delivered
        self.preview_url = preview_url
        self.sent: list[tuple[str, RenderedMessage]] = []

    async def send(self, destination, message, *, recipient_name=None):
        self.sent.append((destination, message))
        return DeliveryReceipt(delivered=self.delivered, preview_url=self.preview_url)

    @property
    def last_text(self) -> str:
        return self.sent[-1][1].text

    def last_otp(self) -> str:
        return _OTP_RE.search(self.last_text).group(1)

    def last_reset_token(self) -> str:
        return _RESET_RE.search(self.last_text).group(1)


# ── Harness ───────────────────────────────────────────────────────────────────


@dataclass
class Harness:
    clock: FakeClock = field(default_factory=FakeClock)
    tokens: InMemoryTokenRepository = field(default_factory=InMemoryTokenRepository)
    users: InMemoryUserRepository = field(default_factory=InMemoryUserRepository)
    sessions: InMemorySessionRepository = field(default_factory=InMemorySessionRepository)
    email: RecordingSender = field(default_factory=RecordingSender)
    sms: RecordingSender = field(default_factory=RecordingSender)
    mode: OperatingMode = OperatingMode.DEVELOPMENT
    settings: VerificationSettings = field(default_factory=VerificationSettings)
    user_password: str = USER_PASSWORD

    @property
    def service(self) -> VerificationTokenService:
        return VerificationTokenService(
            tokens=self.tokens,
            users=self.users,
            sessions=self.sessions,
            renderer=MessageRenderer(reset_url_base="https://localjobs.test/reset"),
            settings=self.settings,
            mode=self.mode,
            email_sender=self.email,
            sms_sender=self.sms,
            clock=self.clock,
        )

    @property
    def session_service(self) -> SessionService:
        return SessionService(
            users=self.users,
            sessions=self.sessions,
            settings=SessionSettings(),
            clock=self.clock,
        )

    def add_user(self, **overrides) -> UserDoc:
        data = dict(
            email="jane@example.com",
            phone="+15551234567",
            name="Jane",
            password_hash=hash_password(USER_PASSWORD),
            created_at=START,
        )
        data.update(overrides)
        return self.users.add(UserDoc(**data))

    def user(self, user_id) -> UserDoc:
        return self.users.users[user_id]


@pytest.fixture
def harness(monkeypatch) -> Harness:
    # Keep pydantic-settings away from a developer's real .env
    import pydantic_settings.sources.providers.dotenv as ps_dotenv

    monkeypatch.setattr(ps_dotenv, "dotenv_values", lambda *a, **kw: {})
    return Harness()


@pytest.fixture
def user(harness) -> UserDoc:
    return harness.add_user()


@pytest.fixture
def make_token():
    """Factory for VerificationTokenDoc records with sensible defaults."""

    def _make(user_id, token_type=TokenType.EMAIL, **overrides) -> VerificationTokenDoc:
        data = dict(
            user_id=user_id,
            token_type=token_type,
            token_hash="a" * 64,
            destination="jane@example.com",
            attempts_left=5,
            last_sent_at=START,
            expires_at=START + timedelta(minutes=10),
            created_at=START,
        )
        data.update(overrides)
        return VerificationTokenDoc(**data)

    return _make
