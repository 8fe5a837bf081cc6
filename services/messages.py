"""
Message rendering for verification notifications.

Turns (token type, secret) into a RenderedMessage. HTML bodies come from
Jinja2 templates under templates/notifications; plain-text bodies are built
inline so SMS and text/plain email parts never depend on the template files.
"""

from __future__ import annotations

import os
from typing import Optional
from urllib.parse import urlencode

from jinja2 import Environment, FileSystemLoader, select_autoescape

from infrastructure.notifications import RenderedMessage
from schemas.models.token import TokenType

_DEFAULT_TEMPLATE_DIR = os.path.join(
    os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
    "templates",
    "notifications",
)


def build_reset_url(base_url: str, token: str) -> str:
    """Append the reset token to *base_url* as a ``token`` query parameter."""
    separator = "&" if "?" in base_url else "?"
    return f"{base_url}{separator}{urlencode({'token': token})}"


class MessageRenderer:
    def __init__(
        self,
        app_name: str = "LocalJobs",
        reset_url_base: str = "https://localjobs.app/reset-password",
        template_dir: str = _DEFAULT_TEMPLATE_DIR,
    ) -> None:
        self._app_name = app_name
        self._reset_url_base = reset_url_base
        self._jinja = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "xml"]),
        )

    def reset_url(self, token: str) -> str:
        return build_reset_url(self._reset_url_base, token)

    def render(
        self,
        token_type: TokenType,
        secret: str,
        *,
        expires_in_seconds: int,
        user_name: Optional[str] = None,
    ) -> RenderedMessage:
        minutes = max(1, expires_in_seconds // 60)
        greeting = f"Hello{f' {user_name}' if user_name else ''},"

        if token_type is TokenType.PHONE:
            return RenderedMessage(
                subject=f"{self._app_name} verification code",
                text=f"{secret} is your {self._app_name} verification code. It expires in {minutes} minutes.",
            )

        if token_type is TokenType.EMAIL:
            html = self._jinja.get_template("email_otp.html").render(
                code=secret,
                user_name=user_name,
                expires_in_minutes=minutes,
                app_name=self._app_name,
            )
            text = (
                f"Confirm your email address - {self._app_name}\n\n"
                f"{greeting}\n\n"
                f"Your verification code is: {secret}\n\n"
                f"This code expires in {minutes} minutes."
            )
            return RenderedMessage(
                subject=f"Your {self._app_name} verification code",
                text=text,
                html=html,
            )

        reset_url = self.reset_url(secret)
        html = self._jinja.get_template("password_reset.html").render(
            reset_url=reset_url,
            user_name=user_name,
            expires_in_minutes=minutes,
            app_name=self._app_name,
        )
        text = (
            f"Reset your password - {self._app_name}\n\n"
            f"{greeting}\n\n"
            f"Open this link to choose a new password:\n{reset_url}\n\n"
            f"The link expires in {minutes} minutes and can be used once."
        )
        return RenderedMessage(
            subject=f"Reset your {self._app_name} password",
            text=text,
            html=html,
        )
