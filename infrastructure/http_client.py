"""Shared async HTTP client for outbound calls (email API)."""

from typing import Any, Optional

import httpx

DEFAULT_USER_AGENT = "todo-app-auth/1.0"


class HttpClient:
    """Async wrapper around httpx.AsyncClient with a fixed timeout.

    Created once in the app lifespan and closed on shutdown.
    """

    def __init__(self, timeout: float = 5.0, user_agent: Optional[str] = None) -> None:
        self._client = httpx.AsyncClient(
            timeout=timeout,
            headers={"User-Agent": user_agent or DEFAULT_USER_AGENT},
        )

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self._client.post(url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.aclose()
