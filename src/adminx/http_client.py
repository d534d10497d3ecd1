from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable
from types import TracebackType
from typing import Any

import httpx

from .errors import HttpError

logger = logging.getLogger(__name__)


class HttpClient:
    """Thin async httpx wrapper that injects Authorization and handles errors + basic retry."""

    def __init__(
        self,
        base_url: str,
        token_getter: Callable[[], Awaitable[str]] | None = None,
        default_headers: dict[str, str] | None = None,
        timeout: float = 30.0,
        max_retries: int = 2,
        retry_statuses: Iterable[int] | None = None,
        backoff_factor: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._token_getter = token_getter
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._default_headers = default_headers or {}
        self._max_retries = max_retries
        self._retry_statuses: set[int] = set(retry_statuses or {429, 500, 502, 503, 504})
        self._backoff_factor = backoff_factor

    async def _auth_header(self) -> dict[str, str]:
        if not self._token_getter:
            return {}
        token = await self._token_getter()
        return {"Authorization": f"Bearer {token}"} if token else {}

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        if path.startswith(("http://", "https://")):
            url = path
        else:
            url = f"{self.base_url}/{path.lstrip('/')}"
        merged_headers = {**self._default_headers, **(headers or {}), **(await self._auth_header())}
        attempt = 0
        while True:
            try:
                resp = await self._client.request(
                    method, url, params=params, json=json, headers=merged_headers
                )
            except httpx.TransportError as e:
                if attempt < self._max_retries:
                    logger.debug("Transport error on %s %s, retrying: %s", method, url, e)
                    await asyncio.sleep(self._backoff_factor * (2**attempt))
                    attempt += 1
                    continue
                raise HttpError(0, f"Transport error: {e}") from e

            if resp.status_code in self._retry_statuses and attempt < self._max_retries:
                ra = resp.headers.get("Retry-After")
                delay = float(ra) if ra and ra.isdigit() else self._backoff_factor * (2**attempt)
                logger.debug("HTTP %s from %s, retrying in %.1fs", resp.status_code, url, delay)
                await asyncio.sleep(delay)
                attempt += 1
                continue

            if resp.status_code >= 400:
                try:
                    detail = resp.json()
                except ValueError:
                    detail = resp.text
                raise HttpError(resp.status_code, resp.reason_phrase, details=detail)
            return resp

    async def get(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", path, **kwargs)

    async def post(self, path: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", path, **kwargs)

    async def aclose(self) -> None:
        """Close the underlying :class:`httpx.AsyncClient`."""

        await self._client.aclose()

    async def __aenter__(self) -> HttpClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
