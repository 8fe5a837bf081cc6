"""
Client metadata for FastAPI requests.

Sessions record where they were opened from; these helpers pull the client
address and user agent off an explicit ``Request`` so they stay testable
without a running app.
"""

from __future__ import annotations

from fastapi import Request

_PROXY_HEADERS: tuple[str, ...] = (
    "CF-Connecting-IP",
    "X-Forwarded-For",
    "X-Real-IP",
)

_MAX_USER_AGENT_LENGTH = 256


def get_client_ip(request: Request) -> str:
    """Return the originating client IP for *request*.

    Proxy headers are checked in order (first address wins for
    ``X-Forwarded-For``) before falling back to the socket peer.
    Returns ``""`` when nothing is available.
    """
    for header in _PROXY_HEADERS:
        value = request.headers.get(header)
        if value:
            client_ip = value.split(",")[0].strip()
            if client_ip:
                return client_ip

    return request.client.host if request.client else ""


def get_user_agent(request: Request) -> str:
    """Return the request's User-Agent, truncated for storage."""
    return (request.headers.get("User-Agent") or "")[:_MAX_USER_AGENT_LENGTH]
