"""
Input validators and formatters — framework-agnostic, pure functions.

validate_password() is the single password policy: registration, login
hardening and password reset all go through it.
"""

from __future__ import annotations

import re
import string
from typing import List, Tuple

PASSWORD_MIN_LENGTH = 8
PASSWORD_MAX_LENGTH = 128

_PHONE_RE = re.compile(r"^\+?\d{7,15}$")


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """Check *password* against the password policy.

    Rules: 8–128 characters with at least one lowercase letter, one
    uppercase letter and one digit.

    Returns:
        ``(is_valid, missing_requirements)``
    """
    if not password:
        return False, ["Password is required"]

    missing = []

    if len(password) < PASSWORD_MIN_LENGTH:
        missing.append(f"At least {PASSWORD_MIN_LENGTH} characters")

    if len(password) > PASSWORD_MAX_LENGTH:
        missing.append(f"Maximum {PASSWORD_MAX_LENGTH} characters")

    if not re.search(r"[a-z]", password):
        missing.append("At least one lowercase letter")

    if not re.search(r"[A-Z]", password):
        missing.append("At least one uppercase letter")

    if not re.search(r"[0-9]", password):
        missing.append("At least one number")

    return len(missing) == 0, missing


def is_valid_otp(code: str, length: int = 6) -> bool:
    """Return True if *code* is exactly *length* ASCII digits."""
    code = code or ""
    return len(code) == length and all(ch in string.digits for ch in code)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_phone(phone: str) -> str:
    """Strip spaces, dashes and brackets; keep a leading ``+``."""
    raw = (phone or "").strip()
    digits = "".join(ch for ch in raw if ch.isdigit())
    return f"+{digits}" if raw.startswith("+") else digits


def is_valid_phone(phone: str) -> bool:
    return bool(_PHONE_RE.match(normalize_phone(phone)))


def mask_email(email: str) -> str:
    """Mask the local part of *email*: ``jane.doe@x.com`` → ``j***e@x.com``.

    Local parts of one or two characters keep only the first character.
    Values without an ``@`` are returned unchanged.
    """
    local, sep, domain = str(email).partition("@")
    if not sep or not local or not domain:
        return email
    if len(local) <= 2:
        return f"{local[0]}***@{domain}"
    return f"{local[0]}***{local[-1]}@{domain}"


def mask_phone(phone: str) -> str:
    """Keep only the last two digits: ``+15551234567`` → ``+*********67``."""
    value = normalize_phone(phone)
    if len(value) <= 2:
        return value
    prefix = "+" if value.startswith("+") else ""
    body = value[len(prefix):]
    return prefix + "*" * (len(body) - 2) + body[-2:]


def mask_destination(destination: str) -> str:
    """Mask an email address or phone number for display."""
    if "@" in (destination or ""):
        return mask_email(destination)
    return mask_phone(destination)
