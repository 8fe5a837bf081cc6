"""
Random secret generators — pure, side-effect-free functions.

Every generator here draws from the ``secrets`` module; these values are
credentials, never identifiers.
"""

from __future__ import annotations

import secrets


def generate_otp_code(length: int = 6) -> str:
    """Generate a cryptographically secure numeric OTP.

    The code is drawn uniformly from ``[0, 10**length)`` and zero-padded, so
    ``"004821"`` is as likely as ``"482913"``.

    Args:
        length: Number of digits (default 6).

    Returns:
        String of exactly *length* decimal digits.
    """
    if length < 1:
        raise ValueError("OTP length must be positive")
    return str(secrets.randbelow(10**length)).zfill(length)


def generate_reset_token(num_bytes: int = 32) -> str:
    """Generate an opaque password-reset token.

    Args:
        num_bytes: Random bytes before hex encoding (default 32, i.e. a
            64-character token).

    Returns:
        Lowercase hex string.
    """
    return secrets.token_hex(num_bytes)


def generate_session_token(num_bytes: int = 32) -> str:
    """Generate a URL-safe opaque session token.

    Args:
        num_bytes: Random bytes before base64 encoding (default 32).
            The resulting string will be longer than *num_bytes* characters.
    """
    return secrets.token_urlsafe(num_bytes)
