"""Shared async JSON-over-HTTP client shell for external collaborators.

Each client owns one ``httpx.AsyncClient`` created in :meth:`start` and
closed in :meth:`aclose`; the application lifespan drives both. Every
request carries a bounded timeout.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)


class HttpServiceClient:
    service_name = "service"

    def __init__(self, base_url: str, *, api_key: str | None = None, timeout: float = 15.0):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def start(self) -> None:
        if self._client is not None:
            return
        headers = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        self._client = httpx.AsyncClient(
            base_url=self._base_url,
            headers=headers,
            timeout=httpx.Timeout(self._timeout),
        )
        logger.info("%s client started (base_url=%s)", self.service_name, self._base_url)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the decoded JSON body.

        Raises ``httpx.HTTPError`` subclasses (including timeouts and non-2xx
        statuses) for the caller to translate into its own failure type.
        """
        if self._client is None:
            await self.start()
        assert self._client is not None
        response = await self._client.request(method, path, **kwargs)
        response.raise_for_status()
        if not response.content:
            return {}
        return response.json()
