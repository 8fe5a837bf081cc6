"""Shared async HTTP client for outbound notification providers."""

from typing import Any, Optional

import httpx

_USER_AGENT = "localjobs-verification/1.0"


class HttpClient:
    """Thin async wrapper around httpx.AsyncClient.

    Built once in the application lifespan and shared by the email and SMS
    providers; closed on shutdown.
    """

    def __init__(self, timeout: float = 5.0, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": _USER_AGENT},
            transport=transport,
        )

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.post(url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
