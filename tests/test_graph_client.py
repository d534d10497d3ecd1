from __future__ import annotations

import httpx
import pytest

from adminx.auth.base import StaticTokenProvider
from adminx.clients.graph import GraphClient
from adminx.errors import HttpError


@pytest.mark.asyncio
async def test_get_me(respx_mock) -> None:
    route = respx_mock.get(host="graph.microsoft.com", path="/v1.0/me").mock(
        return_value=httpx.Response(
            200,
            json={"id": "u1", "displayName": "Ada", "userPrincipalName": "ada@contoso.com", "mail": None},
        )
    )

    async with GraphClient(StaticTokenProvider("tok").get_token) as graph:
        me = await graph.get_me()

    assert me.id == "u1"
    assert me.display_name == "Ada"
    assert me.user_principal_name == "ada@contoso.com"
    request = route.calls.last.request
    assert request.headers["Authorization"] == "Bearer tok"
    assert request.url.params["$select"] == "id,displayName,userPrincipalName"


@pytest.mark.asyncio
async def test_get_me_forbidden(respx_mock) -> None:
    respx_mock.get(host="graph.microsoft.com", path="/v1.0/me").mock(
        return_value=httpx.Response(403, json={"error": {"code": "Authorization_RequestDenied"}})
    )

    async with GraphClient(StaticTokenProvider("tok").get_token) as graph:
        with pytest.raises(HttpError) as excinfo:
            await graph.get_me()

    assert excinfo.value.status_code == 403
