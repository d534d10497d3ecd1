from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable
from typing import Any, Protocol


class TokenProvider(ABC):
    @abstractmethod
    async def get_token(self) -> str:
        """Return an access token string for Authorization: Bearer."""


class StaticTokenProvider(TokenProvider):
    def __init__(self, token: str) -> None:
        self._token = token

    async def get_token(self) -> str:
        return self._token


class IdentityClient(Protocol):
    """Blocking OAuth2 client; the session manager calls it from a worker thread.

    Token methods return the raw token response. A response carrying an
    ``error`` key is a rejection; raised exceptions are treated as transient.
    """

    def acquire_interactive(
        self, scopes: Iterable[str], *, timeout: float | None = None
    ) -> dict[str, Any]: ...

    def acquire_by_refresh_token(
        self, refresh_token: str, scopes: Iterable[str]
    ) -> dict[str, Any]: ...

    def remove_accounts(self) -> None: ...
