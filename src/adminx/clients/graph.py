from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from types import TracebackType

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..http_client import HttpClient

logger = logging.getLogger(__name__)

GRAPH_BASE_URL = "https://graph.microsoft.com/v1.0"


class GraphUser(BaseModel):
    """Subset of the Graph ``user`` resource needed to identify the operator."""

    id: str
    display_name: str | None = Field(default=None, alias="displayName")
    user_principal_name: str | None = Field(default=None, alias="userPrincipalName")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class GraphClient:
    """Minimal Microsoft Graph client used for identity lookups."""

    def __init__(
        self,
        token_getter: Callable[[], Awaitable[str]],
        base_url: str = GRAPH_BASE_URL,
        *,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.http = HttpClient(
            base_url,
            token_getter=token_getter,
            default_headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def get_me(self) -> GraphUser:
        """Return the signed-in user (``GET /me``)."""

        resp = await self.http.get("me", params={"$select": "id,displayName,userPrincipalName"})
        return GraphUser.model_validate(resp.json())

    async def aclose(self) -> None:
        await self.http.aclose()

    async def __aenter__(self) -> GraphClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()
