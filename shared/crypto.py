"""
Cryptographic helpers — password hashing and token hashing.

Uses argon2 for passwords (via argon2-cffi) and SHA-256 for token hashing.
Token digests are compared with ``hmac.compare_digest`` so a partial match
takes as long to reject as a total miss.
"""

from __future__ import annotations

import hashlib
import hmac

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

_password_hasher = PasswordHasher()


def hash_password(plain_password: str) -> str:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 hash string (includes algorithm parameters and salt).
    """
    return _password_hasher.hash(plain_password)


def verify_password(plain_password: str, password_hash: str) -> bool:
    """Verify *plain_password* against an argon2 *password_hash*.

    Returns:
        ``True`` if the password matches, ``False`` for a wrong password or
        an unreadable hash.
    """
    try:
        return _password_hasher.verify(password_hash, plain_password)
    except (VerificationError, InvalidHashError):
        return False


def hash_token(token: str) -> str:
    """Return the hex-encoded SHA-256 digest of *token*.

    Used to hash OTP codes, reset tokens and session tokens before storing
    them so the plaintext is never persisted.

    Returns:
        64-character lowercase hex string.
    """
    return hashlib.sha256(str(token).encode("utf-8")).hexdigest()


def token_hashes_match(candidate_hash: str, stored_hash: str) -> bool:
    """Constant-time comparison of two hex digests.

    Digests of different length never match; malformed hex is compared as
    text so it still goes through ``compare_digest``.
    """
    try:
        a = bytes.fromhex(candidate_hash)
        b = bytes.fromhex(stored_hash)
    except ValueError:
        return hmac.compare_digest(
            candidate_hash.encode("utf-8"), stored_hash.encode("utf-8")
        )
    return hmac.compare_digest(a, b)


def token_matches(candidate: str, stored_hash: str) -> bool:
    """Hash *candidate* and compare it against *stored_hash* in constant time."""
    return token_hashes_match(hash_token(candidate), stored_hash)
