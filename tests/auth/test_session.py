from __future__ import annotations

import asyncio
import threading
from datetime import timedelta
from typing import Any

import httpx
import pytest

from adminx.auth.session import REFRESH_ATTEMPTS, AuthSessionManager
from adminx.auth.token_cache import MemoryTokenCache
from adminx.errors import (
    AuthCancelledError,
    AuthRequiredError,
    ConsentDeniedError,
    ErrorKind,
    ScopeMismatchError,
    TokenExpiredUnrecoverableError,
)
from adminx.events import EventPublisher
from adminx.models.auth import AuthenticationResult, AuthState

SCOPES = ["User.Read", "Directory.Read.All"]


def token_response(access: str = "access-1", *, scope: str = "User.Read Directory.Read.All", **extra):
    payload = {
        "access_token": access,
        "refresh_token": "refresh-1",
        "expires_in": 3600,
        "scope": scope,
        "id_token_claims": {"oid": "user-1", "preferred_username": "admin@contoso.com"},
    }
    payload.update(extra)
    return payload


class StubIdentity:
    def __init__(self) -> None:
        self.interactive_responses: list[Any] = []
        self.refresh_responses: list[Any] = []
        self.interactive_calls: list[list[str]] = []
        self.refresh_calls: list[str] = []
        self.removed = 0
        self.release = threading.Event()
        self.block_interactive = False
        self.block_refresh = False
        self.refresh_started = threading.Event()

    @staticmethod
    def _next(responses: list[Any]) -> dict[str, Any]:
        response = responses.pop(0) if len(responses) > 1 else responses[0]
        if isinstance(response, Exception):
            raise response
        return response

    def acquire_interactive(self, scopes, *, timeout=None):
        self.interactive_calls.append(list(scopes))
        if self.block_interactive:
            self.release.wait(5)
        return self._next(self.interactive_responses)

    def acquire_by_refresh_token(self, refresh_token, scopes):
        self.refresh_calls.append(refresh_token)
        self.refresh_started.set()
        if self.block_refresh:
            self.release.wait(5)
        return self._next(self.refresh_responses)

    def remove_accounts(self) -> None:
        self.removed += 1


@pytest.fixture
def identity() -> StubIdentity:
    return StubIdentity()


@pytest.fixture
def events() -> EventPublisher:
    return EventPublisher()


@pytest.fixture
def cache() -> MemoryTokenCache:
    return MemoryTokenCache()


@pytest.fixture
def manager(cache, identity, events, clock) -> AuthSessionManager:
    return AuthSessionManager(
        cache,
        identity=identity,
        events=events,
        default_scopes=SCOPES,
        refresh_margin=300,
        clock=clock,
    )


def cached_result(clock, *, expires_in: int = 3600, scopes=SCOPES) -> AuthenticationResult:
    return AuthenticationResult(
        accessToken="cached-access",
        refreshToken="cached-refresh",
        expiresAt=clock.now + timedelta(seconds=expires_in),
        grantedScopes=frozenset(scopes),
        userId="user-1",
    )


@pytest.mark.asyncio
async def test_silent_without_cache_requires_sign_in(manager, identity, events) -> None:
    with pytest.raises(AuthRequiredError):
        await manager.authenticate(interactive=False)

    assert manager.state is AuthState.SIGNED_OUT
    assert identity.refresh_calls == []
    published = events.drain()
    assert [e.type for e in published] == ["error_occurred"]
    assert published[0].error_kind is ErrorKind.AUTH_REQUIRED


@pytest.mark.asyncio
async def test_interactive_sign_in_commits_and_caches(manager, identity, cache, events) -> None:
    identity.interactive_responses = [token_response()]

    result = await manager.authenticate()

    assert manager.state is AuthState.AUTHENTICATED
    assert result.user_id == "user-1"
    assert cache.load() == result
    assert await manager.get_access_token() == "access-1"
    published = events.drain()
    assert [e.type for e in published] == ["auth_succeeded"]
    assert published[0].user_id == "user-1"
    status = manager.get_status()
    assert status.is_authenticated
    assert status.user_name == "admin@contoso.com"
    assert not status.token_near_expiry


@pytest.mark.asyncio
async def test_consent_declined(manager, identity, events) -> None:
    identity.interactive_responses = [
        {"error": "access_denied", "error_description": "The user declined"}
    ]

    with pytest.raises(ConsentDeniedError):
        await manager.authenticate()

    assert manager.state is AuthState.SIGNED_OUT
    assert events.drain()[0].error_kind is ErrorKind.CONSENT_DENIED


@pytest.mark.asyncio
async def test_other_sign_in_errors_require_auth(manager, identity) -> None:
    identity.interactive_responses = [RuntimeError("browser unavailable")]

    with pytest.raises(AuthRequiredError):
        await manager.authenticate()

    assert manager.state is AuthState.SIGNED_OUT


@pytest.mark.asyncio
async def test_interactive_sign_in_can_be_cancelled(manager, identity) -> None:
    identity.block_interactive = True
    identity.interactive_responses = [token_response()]
    cancel = asyncio.Event()

    task = asyncio.create_task(manager.authenticate(cancel_event=cancel))
    await asyncio.sleep(0.05)
    assert manager.state is AuthState.AUTHENTICATING
    cancel.set()

    with pytest.raises(AuthCancelledError):
        await task
    identity.release.set()

    assert manager.state is AuthState.SIGNED_OUT
    assert manager.current is None


@pytest.mark.asyncio
async def test_partial_grant_keeps_session(manager, identity) -> None:
    identity.interactive_responses = [token_response(scope="User.Read")]

    with pytest.raises(ScopeMismatchError) as excinfo:
        await manager.authenticate()

    assert excinfo.value.missing == ["Directory.Read.All"]
    assert excinfo.value.result is manager.current
    assert manager.state is AuthState.AUTHENTICATED


@pytest.mark.asyncio
async def test_silent_adopts_valid_cached_token(manager, identity, cache, clock) -> None:
    cache.save(cached_result(clock))

    result = await manager.authenticate(interactive=False)

    assert result.access_token.get_secret_value() == "cached-access"
    assert identity.refresh_calls == []
    assert manager.state is AuthState.AUTHENTICATED


@pytest.mark.asyncio
async def test_silent_redeems_stale_cached_token(manager, identity, cache, clock) -> None:
    cache.save(cached_result(clock, expires_in=60))
    identity.refresh_responses = [token_response("access-2", refresh_token=None)]

    result = await manager.authenticate(interactive=False)

    assert identity.refresh_calls == ["cached-refresh"]
    assert result.access_token.get_secret_value() == "access-2"
    assert result.refresh_token.get_secret_value() == "cached-refresh"
    assert cache.load() == result


@pytest.mark.asyncio
async def test_silent_with_revoked_refresh_token_clears_cache(manager, identity, cache, clock) -> None:
    cache.save(cached_result(clock, expires_in=-10))
    identity.refresh_responses = [{"error": "invalid_grant"}]

    with pytest.raises(AuthRequiredError):
        await manager.authenticate(interactive=False)

    assert cache.load() is None
    assert manager.state is AuthState.SIGNED_OUT


@pytest.mark.asyncio
async def test_token_near_expiry_is_refreshed_before_use(manager, identity, clock) -> None:
    identity.interactive_responses = [token_response()]
    identity.refresh_responses = [token_response("access-2")]
    await manager.authenticate()

    clock.advance(3400)

    assert manager.get_status().token_near_expiry
    assert await manager.get_access_token() == "access-2"
    assert identity.refresh_calls == ["refresh-1"]
    assert manager.state is AuthState.AUTHENTICATED


@pytest.mark.asyncio
async def test_concurrent_refreshes_share_one_grant(manager, identity) -> None:
    identity.interactive_responses = [token_response()]
    identity.refresh_responses = [token_response("access-2")]
    await manager.authenticate()

    identity.block_refresh = True

    first = asyncio.ensure_future(manager.refresh())
    assert await asyncio.to_thread(identity.refresh_started.wait, 5)
    assert manager.state is AuthState.REFRESHING
    followers = [asyncio.ensure_future(manager.refresh()) for _ in range(4)]
    readers = [asyncio.ensure_future(manager.get_access_token()) for _ in range(3)]
    await asyncio.sleep(0.05)
    assert len(identity.refresh_calls) == 1
    identity.release.set()

    assert await asyncio.gather(first, *followers) == [True] * 5
    assert await asyncio.gather(*readers) == ["access-2"] * 3
    assert await manager.get_access_token() == "access-2"
    assert len(identity.refresh_calls) == 1


@pytest.mark.asyncio
async def test_refresh_retries_once_then_succeeds(manager, identity, cache, events) -> None:
    identity.interactive_responses = [token_response()]
    identity.refresh_responses = [httpx.ConnectError("offline"), token_response("access-2")]
    await manager.authenticate()
    events.drain()

    assert await manager.refresh() is True

    assert identity.refresh_calls == ["refresh-1"] * REFRESH_ATTEMPTS
    assert manager.state is AuthState.AUTHENTICATED
    assert await manager.get_access_token() == "access-2"
    assert cache.load().access_token.get_secret_value() == "access-2"
    assert "error_occurred" not in [e.type for e in events.drain()]


@pytest.mark.asyncio
async def test_refresh_failure_expires_session_but_keeps_cache(
    manager, identity, cache, events, clock
) -> None:
    identity.interactive_responses = [token_response()]
    identity.refresh_responses = [httpx.ConnectError("offline")]
    await manager.authenticate()
    events.drain()
    clock.advance(3500)

    with pytest.raises(TokenExpiredUnrecoverableError):
        await manager.get_access_token()

    assert len(identity.refresh_calls) == REFRESH_ATTEMPTS
    assert manager.state is AuthState.EXPIRED
    assert cache.load() is not None
    published = events.drain()
    assert published[-1].error_kind is ErrorKind.TOKEN_EXPIRED

    with pytest.raises(TokenExpiredUnrecoverableError):
        await manager.get_access_token()


@pytest.mark.asyncio
async def test_refresh_while_signed_out_is_false(manager, identity) -> None:
    assert await manager.refresh() is False
    assert identity.refresh_calls == []


@pytest.mark.asyncio
async def test_get_access_token_requires_sign_in(manager) -> None:
    with pytest.raises(AuthRequiredError):
        await manager.get_access_token()


@pytest.mark.asyncio
async def test_sign_out_clears_everything(manager, identity, cache, events) -> None:
    identity.interactive_responses = [token_response()]
    await manager.authenticate()
    events.drain()

    assert await manager.sign_out() is True

    assert manager.state is AuthState.SIGNED_OUT
    assert cache.load() is None
    assert identity.removed == 1
    published = events.drain()
    assert [e.type for e in published] == ["signed_out"]
    assert published[0].user_id == "user-1"


@pytest.mark.asyncio
async def test_restore_loads_cache_without_network(manager, identity, cache, clock) -> None:
    cache.save(cached_result(clock))

    assert await manager.restore() is True

    assert manager.state is AuthState.AUTHENTICATED
    assert identity.refresh_calls == []
    assert await manager.get_access_token() == "cached-access"


@pytest.mark.asyncio
async def test_user_identity_falls_back_to_graph(cache, identity, clock, respx_mock) -> None:
    route = respx_mock.get(host="graph.microsoft.com", path="/v1.0/me").mock(
        return_value=httpx.Response(
            200, json={"id": "graph-user", "userPrincipalName": "ops@contoso.com"}
        )
    )
    identity.interactive_responses = [token_response(id_token_claims={})]
    manager = AuthSessionManager(cache, identity=identity, default_scopes=SCOPES, clock=clock)

    result = await manager.authenticate()

    assert route.called
    assert route.calls.last.request.headers["Authorization"] == "Bearer access-1"
    assert result.user_id == "graph-user"
    assert result.user_name == "ops@contoso.com"


def test_manager_needs_an_identity_source(cache) -> None:
    with pytest.raises(ValueError):
        AuthSessionManager(cache)


@pytest.mark.asyncio
async def test_identity_factory_runs_once_on_first_use(cache, identity, clock) -> None:
    built: list[StubIdentity] = []

    def factory() -> StubIdentity:
        built.append(identity)
        return identity

    identity.interactive_responses = [token_response()]
    manager = AuthSessionManager(cache, identity_factory=factory, default_scopes=SCOPES, clock=clock)
    assert built == []

    await manager.authenticate()
    await manager.sign_out()

    assert built == [identity]
    assert identity.removed == 1
