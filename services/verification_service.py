"""
Verification token lifecycle: issue → throttle → verify → consume.

One service covers the three token types:

    email           6-digit OTP mailed to the account address
    phone           6-digit OTP texted to the account phone number
    password_reset  opaque hex token embedded in a reset link

Each (user, type) has at most one pending record. Re-issuing rewrites that
record in place (new hash, new expiry, fresh attempts budget) unless the
previous send is younger than the throttle window. A record ends either
consumed (used_at set) or expired; expired records are removed by the TTL
index or by sweep_expired().

Delivery failures depend on the operating mode: in development the secret is
returned to the caller instead, in production DeliveryFailedError is raised
and the record is left as written so a retry hits the throttle.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from bson import ObjectId

from config import OperatingMode, VerificationSettings
from errors import (
    AttemptsExhaustedError,
    DeliveryFailedError,
    ForbiddenError,
    PasswordPolicyError,
    SubjectNotFoundError,
    ThrottledError,
    TokenAlreadyUsedError,
    TokenExpiredError,
    TokenMismatchError,
    TokenNotFoundError,
    TokenRejectedError,
    ValidationError,
)
from infrastructure.notifications import DeliveryReceipt, NotificationSender
from repositories.protocol import SessionRepository, TokenRepository, UserRepository
from schemas.models.base import to_object_id
from schemas.models.token import TokenType, VerificationTokenDoc
from schemas.models.user import UserDoc
from services.messages import MessageRenderer
from shared.crypto import hash_password, hash_token, token_matches
from shared.datetime_utils import Clock, seconds_until, utc_now
from shared.generators import generate_otp_code, generate_reset_token
from shared.logging import get_logger
from shared.validators import (
    is_valid_otp,
    is_valid_phone,
    mask_destination,
    normalize_email,
    normalize_phone,
    validate_password,
)

log = get_logger(__name__)


@dataclass(frozen=True)
class TokenPolicy:
    ttl_seconds: int
    throttle_seconds: int
    max_attempts: int


@dataclass
class IssueResult:
    token_type: TokenType
    masked_destination: str
    expires_in: int
    delivered: bool = False
    already_verified: bool = False
    # Only ever populated outside production
    dev_secret: Optional[str] = None
    dev_preview_url: Optional[str] = None


@dataclass
class VerifyResult:
    token_type: TokenType
    user_id: str
    already_verified: bool = False
    verified_at: Optional[datetime] = None
    # password_reset only: short-lived grant accepted by consume_password_reset_token
    reset_token: Optional[str] = None
    reset_token_expires_in: Optional[int] = None


@dataclass
class ResetTokenStatus:
    masked_destination: str
    expires_in: int


@dataclass
class ResetResult:
    user_id: str
    sessions_revoked: int


class VerificationTokenService:
    def __init__(
        self,
        tokens: TokenRepository,
        users: UserRepository,
        sessions: SessionRepository,
        renderer: MessageRenderer,
        settings: VerificationSettings,
        mode: OperatingMode,
        email_sender: NotificationSender,
        sms_sender: Optional[NotificationSender] = None,
        clock: Clock = utc_now,
    ) -> None:
        self._tokens = tokens
        self._users = users
        self._sessions = sessions
        self._renderer = renderer
        self._settings = settings
        self._mode = mode
        self._email_sender = email_sender
        self._sms_sender = sms_sender
        self._clock = clock

        otp_policy = TokenPolicy(
            ttl_seconds=settings.otp_ttl_seconds,
            throttle_seconds=settings.otp_resend_throttle_seconds,
            max_attempts=settings.otp_max_attempts,
        )
        self._policies = {
            TokenType.EMAIL: otp_policy,
            TokenType.PHONE: otp_policy,
            TokenType.PASSWORD_RESET: TokenPolicy(
                ttl_seconds=settings.password_reset_ttl_seconds,
                throttle_seconds=settings.password_reset_resend_throttle_seconds,
                max_attempts=settings.otp_max_attempts,
            ),
        }

    def policy(self, token_type: TokenType) -> TokenPolicy:
        return self._policies[token_type]

    # ── Issue ─────────────────────────────────────────────────────────────

    async def issue(
        self,
        user_id: Any,
        token_type: TokenType,
        destination: str,
        *,
        user_name: Optional[str] = None,
    ) -> IssueResult:
        """Create or re-issue the pending token for (user, type) and send it.

        The caller has already checked that the account exists and is not
        disabled.

        Raises:
            ThrottledError: the last send is younger than the throttle window.
            DeliveryFailedError: production only, the provider did not accept
                the message.
        """
        user_oid = to_object_id(user_id)
        policy = self.policy(token_type)
        now = self._clock()

        existing = await self._tokens.find_active(user_oid, token_type)
        if existing is not None and existing.last_sent_at is not None:
            elapsed = (now - existing.last_sent_at).total_seconds()
            if elapsed < policy.throttle_seconds:
                retry_after = min(policy.throttle_seconds, policy.throttle_seconds - elapsed)
                log.warning(
                    "verification_token_throttled",
                    user_id=str(user_oid),
                    token_type=token_type.value,
                    retry_after=retry_after,
                )
                raise ThrottledError(retry_after)

        secret = self._generate_secret(token_type)
        record = VerificationTokenDoc(
            id=existing.id if existing else None,
            user_id=user_oid,
            token_type=token_type,
            token_hash=hash_token(secret),
            destination=destination,
            attempts_left=policy.max_attempts,
            last_sent_at=now,
            expires_at=now + timedelta(seconds=policy.ttl_seconds),
            created_at=existing.created_at if existing and existing.created_at else now,
        )
        saved = await self._tokens.upsert(record)

        log.info(
            "verification_token_issued",
            user_id=str(user_oid),
            token_id=str(saved.id),
            token_type=token_type.value,
            reissued=existing is not None,
        )

        receipt = await self._deliver(
            token_type, destination, secret, policy.ttl_seconds, user_name
        )
        result = IssueResult(
            token_type=token_type,
            masked_destination=mask_destination(destination),
            expires_in=policy.ttl_seconds,
            delivered=receipt.delivered,
        )

        if receipt.delivered:
            if not self._mode.is_production:
                result.dev_preview_url = receipt.preview_url
            return result

        if self._mode.is_production:
            log.error(
                "verification_delivery_failed",
                user_id=str(user_oid),
                token_id=str(saved.id),
                token_type=token_type.value,
            )
            raise DeliveryFailedError()

        log.warning(
            "verification_delivery_failed_dev_fallback",
            user_id=str(user_oid),
            token_id=str(saved.id),
            token_type=token_type.value,
        )
        result.dev_secret = secret
        if token_type is TokenType.PASSWORD_RESET:
            result.dev_preview_url = self._renderer.reset_url(secret)
        return result

    async def request_verification(
        self,
        token_type: TokenType,
        *,
        user_id: Any = None,
        destination: Optional[str] = None,
    ) -> IssueResult:
        """Resolve the account, short-circuit if already verified, then issue.

        Used by the email/phone verification endpoints; the account's own
        address is always the destination, never the one in the request.
        """
        if token_type is TokenType.PASSWORD_RESET:
            raise ValueError("use request_password_reset() for password resets")

        user = await self._resolve_user(token_type, user_id, destination)
        if user is None:
            log.warning(
                "verification_request_failed",
                reason="subject_not_found",
                token_type=token_type.value,
            )
            raise SubjectNotFoundError()
        if user.disabled:
            log.warning(
                "verification_request_failed",
                reason="account_disabled",
                user_id=str(user.id),
                token_type=token_type.value,
            )
            raise ForbiddenError("account is disabled")

        address = user.email if token_type is TokenType.EMAIL else user.phone
        if token_type is TokenType.PHONE and not (address and is_valid_phone(address)):
            raise ValidationError("no valid phone number on file", field="phone")

        if self._is_already_verified(user, token_type):
            return IssueResult(
                token_type=token_type,
                masked_destination=mask_destination(address),
                expires_in=0,
                already_verified=True,
            )

        return await self.issue(user.id, token_type, address, user_name=user.name)

    async def request_password_reset(self, email: str) -> Optional[IssueResult]:
        """Issue a reset link if *email* belongs to an active account.

        Every internal outcome (unknown address, disabled account, throttle,
        delivery failure) is logged under its own reason and swallowed; the
        HTTP layer answers all of them identically.
        """
        user = await self._users.find_by_email(normalize_email(email))
        if user is None:
            log.info("password_reset_request_skipped", reason="subject_not_found")
            return None
        if user.disabled:
            log.info("password_reset_request_skipped", reason="account_disabled", user_id=str(user.id))
            return None

        try:
            return await self.issue(
                user.id, TokenType.PASSWORD_RESET, user.email, user_name=user.name
            )
        except ThrottledError as e:
            log.info(
                "password_reset_request_skipped",
                reason="throttled",
                user_id=str(user.id),
                retry_after=e.retry_after,
            )
        except DeliveryFailedError:
            log.info("password_reset_request_skipped", reason="delivery_failed", user_id=str(user.id))
        return None

    # ── Verify ────────────────────────────────────────────────────────────

    async def verify(
        self,
        token_type: TokenType,
        candidate: str,
        *,
        user_id: Any = None,
        destination: Optional[str] = None,
    ) -> VerifyResult:
        """Check *candidate* against the pending token of the resolved user.

        The user is identified by *user_id* (authenticated caller) or by
        *destination* (email, or phone for phone tokens).

        Raises:
            SubjectNotFoundError, TokenNotFoundError, TokenAlreadyUsedError,
            TokenExpiredError, AttemptsExhaustedError, TokenMismatchError
        """
        user = await self._resolve_user(token_type, user_id, destination)
        if user is None:
            log.warning(
                "otp_verification_failed",
                reason="subject_not_found",
                token_type=token_type.value,
            )
            raise SubjectNotFoundError()

        if self._is_already_verified(user, token_type):
            return VerifyResult(
                token_type=token_type,
                user_id=str(user.id),
                already_verified=True,
                verified_at=(
                    user.email_verified_at
                    if token_type is TokenType.EMAIL
                    else user.phone_verified_at
                ),
            )

        if token_type.is_otp and not is_valid_otp(candidate, self._settings.otp_length):
            raise ValidationError(
                f"code must be {self._settings.otp_length} digits", field="otp"
            )

        now = self._clock()
        record = await self._load_pending(user.id, token_type, now)

        if not token_matches(candidate or "", record.token_hash):
            updated = await self._tokens.decrement_attempts(record.id)
            log.warning(
                "otp_verification_failed",
                reason=TokenMismatchError.reason,
                user_id=str(user.id),
                token_id=str(record.id),
                token_type=token_type.value,
                attempts_left=updated.attempts_left if updated else 0,
            )
            raise TokenMismatchError()

        consumed = await self._tokens.mark_used(record.id, now)
        if consumed is None:
            # Another request consumed or exhausted the record in between
            self._log_rejection(user.id, token_type, "lost_race", record)
            raise TokenAlreadyUsedError()

        log.info(
            "otp_verified_success",
            user_id=str(user.id),
            token_id=str(record.id),
            token_type=token_type.value,
        )
        return await self._apply_success(user, token_type, now)

    async def _apply_success(
        self, user: UserDoc, token_type: TokenType, now: datetime
    ) -> VerifyResult:
        result = VerifyResult(token_type=token_type, user_id=str(user.id))

        if token_type is TokenType.EMAIL:
            await self._users.mark_email_verified(user.id, now)
            result.verified_at = now
        elif token_type is TokenType.PHONE:
            await self._users.mark_phone_verified(user.id, now)
            result.verified_at = now
        else:
            grant = generate_reset_token(self._settings.password_reset_token_bytes)
            ttl = self._settings.password_reset_grant_ttl_seconds
            await self._tokens.upsert(
                VerificationTokenDoc(
                    user_id=user.id,
                    token_type=TokenType.PASSWORD_RESET,
                    token_hash=hash_token(grant),
                    destination=user.email,
                    attempts_left=self.policy(token_type).max_attempts,
                    last_sent_at=now,
                    expires_at=now + timedelta(seconds=ttl),
                    created_at=now,
                )
            )
            result.reset_token = grant
            result.reset_token_expires_in = ttl

        return result

    # ── Password reset ────────────────────────────────────────────────────

    async def inspect_password_reset_token(self, raw_token: str) -> ResetTokenStatus:
        """Report whether a reset token is still usable, without consuming it."""
        now = self._clock()
        record = await self._load_reset_token(raw_token, now)
        return ResetTokenStatus(
            masked_destination=mask_destination(record.destination or ""),
            expires_in=seconds_until(record.expires_at, now),
        )

    async def consume_password_reset_token(
        self, raw_token: str, new_password: str
    ) -> ResetResult:
        """Set a new password with a reset token and sign the user out everywhere.

        The password policy is checked before the token is touched, so a
        weak password leaves the token usable for another try.

        Raises:
            TokenNotFoundError, TokenAlreadyUsedError, TokenExpiredError,
            AttemptsExhaustedError, PasswordPolicyError, SubjectNotFoundError,
            ForbiddenError
        """
        now = self._clock()
        record = await self._load_reset_token(raw_token, now)

        is_valid, missing = validate_password(new_password)
        if not is_valid:
            log.info(
                "password_reset_rejected",
                reason="policy_violation",
                user_id=str(record.user_id),
                missing_count=len(missing),
            )
            raise PasswordPolicyError(missing)

        user = await self._users.find_by_id(record.user_id)
        if user is None:
            self._log_rejection(record.user_id, TokenType.PASSWORD_RESET, "subject_not_found", record)
            raise SubjectNotFoundError()
        if user.disabled:
            self._log_rejection(record.user_id, TokenType.PASSWORD_RESET, "account_disabled", record)
            raise ForbiddenError("account is disabled")

        consumed = await self._tokens.mark_used(record.id, now)
        if consumed is None:
            self._log_rejection(user.id, TokenType.PASSWORD_RESET, "lost_race", record)
            raise TokenAlreadyUsedError()

        await self._users.set_password(user.id, hash_password(new_password), now)
        revoked = await self._sessions.revoke_all(user.id, now)

        log.info(
            "password_reset_success",
            user_id=str(user.id),
            token_id=str(record.id),
            sessions_revoked=revoked,
        )
        return ResetResult(user_id=str(user.id), sessions_revoked=revoked)

    # ── Maintenance ───────────────────────────────────────────────────────

    async def sweep_expired(self) -> int:
        """Delete every token whose expiry has passed. Returns the count removed."""
        removed = await self._tokens.delete_expired(self._clock())
        if removed:
            log.info("verification_tokens_swept", removed=removed)
        return removed

    # ── Helpers ───────────────────────────────────────────────────────────

    def _generate_secret(self, token_type: TokenType) -> str:
        if token_type.is_otp:
            return generate_otp_code(self._settings.otp_length)
        return generate_reset_token(self._settings.password_reset_token_bytes)

    async def _deliver(
        self,
        token_type: TokenType,
        destination: str,
        secret: str,
        ttl_seconds: int,
        user_name: Optional[str],
    ) -> DeliveryReceipt:
        sender = self._sms_sender if token_type is TokenType.PHONE else self._email_sender
        if sender is None:
            log.warning("notification_sender_not_configured", token_type=token_type.value)
            return DeliveryReceipt(delivered=False)

        message = self._renderer.render(
            token_type, secret, expires_in_seconds=ttl_seconds, user_name=user_name
        )
        try:
            return await sender.send(destination, message, recipient_name=user_name)
        except Exception as e:
            log.error(
                "notification_send_error",
                token_type=token_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeliveryReceipt(delivered=False)

    async def _resolve_user(
        self, token_type: TokenType, user_id: Any, destination: Optional[str]
    ) -> Optional[UserDoc]:
        if user_id is not None:
            try:
                user_oid = to_object_id(user_id)
            except ValueError:
                return None
            return await self._users.find_by_id(user_oid)
        if destination:
            if token_type is TokenType.PHONE:
                return await self._users.find_by_phone(normalize_phone(destination))
            return await self._users.find_by_email(normalize_email(destination))
        return None

    @staticmethod
    def _is_already_verified(user: UserDoc, token_type: TokenType) -> bool:
        if token_type is TokenType.EMAIL:
            return user.email_verified
        if token_type is TokenType.PHONE:
            return user.phone_verified
        return False

    async def _load_pending(
        self, user_oid: ObjectId, token_type: TokenType, now: datetime
    ) -> VerificationTokenDoc:
        record = await self._tokens.find_active(user_oid, token_type)
        if record is not None and record.is_consumable(now):
            return record

        if record is None:
            latest = await self._tokens.find_latest(user_oid, token_type)
            error: TokenRejectedError = (
                TokenAlreadyUsedError()
                if latest is not None and latest.is_used
                else TokenNotFoundError()
            )
            self._log_rejection(user_oid, token_type, error.reason, latest)
            raise error

        if record.is_expired(now):
            self._log_rejection(user_oid, token_type, TokenExpiredError.reason, record)
            raise TokenExpiredError()
        self._log_rejection(user_oid, token_type, AttemptsExhaustedError.reason, record)
        raise AttemptsExhaustedError()

    async def _load_reset_token(self, raw_token: str, now: datetime) -> VerificationTokenDoc:
        record = await self._tokens.find_by_hash(
            hash_token(raw_token or ""), TokenType.PASSWORD_RESET
        )
        if record is not None and record.is_consumable(now):
            return record

        error: TokenRejectedError | AttemptsExhaustedError
        if record is None:
            error = TokenNotFoundError()
        elif record.is_used:
            error = TokenAlreadyUsedError()
        elif record.is_expired(now):
            error = TokenExpiredError()
        else:
            error = AttemptsExhaustedError()

        self._log_rejection(
            record.user_id if record else None,
            TokenType.PASSWORD_RESET,
            error.reason,
            record,
        )
        raise error

    @staticmethod
    def _log_rejection(
        user_oid: Optional[ObjectId],
        token_type: TokenType,
        reason: str,
        record: Optional[VerificationTokenDoc],
    ) -> None:
        log.warning(
            "otp_verification_failed",
            reason=reason,
            user_id=str(user_oid) if user_oid else None,
            token_id=str(record.id) if record and record.id else None,
            token_type=token_type.value,
        )
