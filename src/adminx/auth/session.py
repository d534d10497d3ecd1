"""OAuth2 session state machine.

States move between ``SIGNED_OUT``, ``AUTHENTICATING``, ``AUTHENTICATED``,
``REFRESHING`` and ``EXPIRED``. Every transition happens under one
:class:`asyncio.Lock`; concurrent refresh callers share a single in-flight
task so at most one refresh grant is sent at a time.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta
from typing import Any, cast

from pydantic import ValidationError

from ..clients.graph import GraphClient
from ..errors import (
    AuthCancelledError,
    AuthError,
    AuthRequiredError,
    ConsentDeniedError,
    HttpError,
    ScopeMismatchError,
    TokenCacheError,
    TokenExpiredUnrecoverableError,
)
from ..events import EventPublisher
from ..models.auth import AuthenticationResult, AuthState, AuthStatus, missing_scopes
from ..models.events import AuthSucceeded, ErrorOccurred, SignedOut
from ..models.results import utcnow
from ..utils.cancellation import OperationCancelledError, wait_cancellable
from .azure_ad import CONSENT_DECLINED_ERRORS
from .base import IdentityClient, StaticTokenProvider, TokenProvider
from .token_cache import TokenCache

logger = logging.getLogger(__name__)

REFRESH_ATTEMPTS = 2


class _RefreshRejected(Exception):
    """The identity provider refused the refresh token."""


class _RefreshUnavailable(Exception):
    """The identity provider could not be reached after retrying."""


def _default_graph_factory(timeout: float) -> Callable[[str], GraphClient]:
    def factory(access_token: str) -> GraphClient:
        return GraphClient(StaticTokenProvider(access_token).get_token, timeout=timeout)

    return factory


class AuthSessionManager(TokenProvider):
    def __init__(
        self,
        cache: TokenCache,
        *,
        identity: IdentityClient | None = None,
        identity_factory: Callable[[], IdentityClient] | None = None,
        events: EventPublisher | None = None,
        default_scopes: Sequence[str] = (),
        refresh_margin: float = 300.0,
        network_timeout: float = 30.0,
        interactive_timeout: float | None = None,
        graph_factory: Callable[[str], GraphClient] | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if identity is None and identity_factory is None:
            raise ValueError("identity or identity_factory is required")
        self._cache = cache
        self._identity = identity
        self._identity_factory: Callable[[], IdentityClient] = identity_factory or (
            lambda: cast(IdentityClient, identity)
        )
        self._events = events
        self._default_scopes = list(default_scopes)
        self._refresh_margin = timedelta(seconds=refresh_margin)
        self._network_timeout = network_timeout
        self._interactive_timeout = interactive_timeout
        self._graph_factory = graph_factory or _default_graph_factory(network_timeout)
        self._clock = clock

        self._state = AuthState.SIGNED_OUT
        self._result: AuthenticationResult | None = None
        self._scopes: list[str] = []
        self._lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[bool] | None = None

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def current(self) -> AuthenticationResult | None:
        return self._result

    def _identity_client(self) -> IdentityClient:
        if self._identity is None:
            self._identity = self._identity_factory()
        return self._identity

    def _publish(self, event: Any) -> None:
        if self._events is not None:
            self._events.publish(event)

    def _publish_error(self, operation: str, exc: AuthError, **context: Any) -> None:
        self._publish(ErrorOccurred(operation=operation, errorKind=exc.kind, context=context))

    # ---- authentication ----
    async def authenticate(
        self,
        scopes: Iterable[str] | None = None,
        *,
        interactive: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> AuthenticationResult:
        """Sign in interactively or resume silently from the token cache.

        Raises:
            AuthRequiredError: silent sign-in found no usable cached session.
            ConsentDeniedError: the user declined consent.
            AuthCancelledError: ``cancel_event`` fired during the interactive flow.
            ScopeMismatchError: sign-in succeeded but not every scope was granted;
                the session is kept for the granted scopes.
        """

        requested = list(scopes or self._default_scopes)
        try:
            async with self._lock:
                result = await self._authenticate_locked(requested, interactive, cancel_event)
        except AuthError as exc:
            self._publish_error("authenticate", exc, interactive=interactive)
            raise

        self._publish(
            AuthSucceeded(userId=result.user_id, scopes=tuple(sorted(result.granted_scopes)))
        )
        missing = missing_scopes(requested, result.granted_scopes)
        if missing:
            exc = ScopeMismatchError(missing, result)
            self._publish_error("authenticate", exc, missing=sorted(missing))
            raise exc
        return result

    async def _authenticate_locked(
        self,
        requested: list[str],
        interactive: bool,
        cancel_event: asyncio.Event | None,
    ) -> AuthenticationResult:
        start_state, start_result = self._state, self._result
        self._state = AuthState.AUTHENTICATING
        logger.debug("Authenticating (interactive=%s) from state %s", interactive, start_state.value)
        try:
            if interactive:
                result = await self._interactive(requested, cancel_event)
            else:
                result = await self._silent(requested)
        except AuthError:
            if self._state is AuthState.AUTHENTICATING:
                self._state, self._result = start_state, start_result
            raise
        except BaseException:
            self._state, self._result = start_state, start_result
            raise

        self._commit(result, requested)
        return result

    async def _interactive(
        self, requested: list[str], cancel_event: asyncio.Event | None
    ) -> AuthenticationResult:
        identity = self._identity_client()
        call = asyncio.to_thread(
            identity.acquire_interactive, requested, timeout=self._interactive_timeout
        )
        try:
            payload = await wait_cancellable(call, cancel_event, timeout=self._interactive_timeout)
        except OperationCancelledError as exc:
            raise AuthCancelledError("Interactive sign-in was cancelled") from exc
        except TimeoutError as exc:
            raise AuthRequiredError("Interactive sign-in timed out") from exc
        except Exception as exc:
            raise AuthRequiredError(f"Interactive sign-in failed: {exc}") from exc

        error = payload.get("error")
        if error:
            description = payload.get("error_description") or error
            if error in CONSENT_DECLINED_ERRORS:
                raise ConsentDeniedError(f"Sign-in was declined: {description}")
            raise AuthRequiredError(f"Sign-in failed: {description}")
        try:
            result = AuthenticationResult.from_token_response(
                payload, requested_scopes=requested, now=self._clock()
            )
        except ValueError as exc:
            raise AuthRequiredError(f"Sign-in returned an unusable token: {exc}") from exc
        return await self._with_user_identity(result)

    async def _silent(self, requested: list[str]) -> AuthenticationResult:
        cached = self._cache.load()
        if cached is None:
            self._state, self._result = AuthState.SIGNED_OUT, None
            raise AuthRequiredError("No cached session; interactive sign-in is required")

        now = self._clock()
        if not cached.expires_within(self._refresh_margin, now) and cached.covers(requested):
            logger.debug("Adopting cached token valid until %s", cached.expires_at.isoformat())
            return cached

        try:
            result = await self._redeem(cached, requested)
        except _RefreshRejected as exc:
            logger.info("Cached refresh token rejected; clearing session: %s", exc)
            self._clear_cache()
            self._state, self._result = AuthState.SIGNED_OUT, None
            raise AuthRequiredError("Cached session was revoked; sign in again") from exc
        except _RefreshUnavailable as exc:
            raise AuthRequiredError(f"Unable to resume cached session: {exc}") from exc
        return await self._with_user_identity(result)

    async def _redeem(
        self, current: AuthenticationResult, scopes: Sequence[str]
    ) -> AuthenticationResult:
        if current.refresh_token is None:
            raise _RefreshRejected("no refresh token cached")
        identity = self._identity_client()
        token = current.refresh_token.get_secret_value()
        last_error: Exception | None = None
        for attempt in range(1, REFRESH_ATTEMPTS + 1):
            try:
                payload = await asyncio.wait_for(
                    asyncio.to_thread(identity.acquire_by_refresh_token, token, list(scopes)),
                    self._network_timeout,
                )
            except Exception as exc:
                last_error = exc
                logger.warning("Refresh attempt %d/%d failed: %s", attempt, REFRESH_ATTEMPTS, exc)
                continue
            if payload.get("error"):
                raise _RefreshRejected(str(payload.get("error")))
            try:
                return AuthenticationResult.from_token_response(
                    payload,
                    requested_scopes=scopes,
                    now=self._clock(),
                    previous_refresh_token=current.refresh_token,
                )
            except ValueError as exc:
                raise _RefreshRejected(str(exc)) from exc
        raise _RefreshUnavailable(repr(last_error))

    async def _with_user_identity(self, result: AuthenticationResult) -> AuthenticationResult:
        if result.user_id:
            return result
        try:
            async with self._graph_factory(result.access_token.get_secret_value()) as graph:
                me = await graph.get_me()
        except (HttpError, ValidationError) as exc:
            logger.warning("Unable to resolve user identity from Graph: %s", exc)
            return result
        return result.model_copy(
            update={"user_id": me.id, "user_name": result.user_name or me.user_principal_name}
        )

    def _commit(self, result: AuthenticationResult, requested: Sequence[str]) -> None:
        self._result = result
        self._scopes = list(requested)
        self._state = AuthState.AUTHENTICATED
        try:
            self._cache.save(result)
        except TokenCacheError as exc:
            logger.warning("Session is active but could not be cached: %s", exc)
        logger.info("Authenticated as %s", result.user_name or result.user_id or "<unknown>")

    def _clear_cache(self) -> bool:
        try:
            self._cache.clear()
        except TokenCacheError as exc:
            logger.warning("Unable to clear token cache: %s", exc)
            return False
        return True

    async def restore(self) -> bool:
        """Load a cached session into memory without contacting the network."""

        async with self._lock:
            if self._result is not None:
                return True
            cached = self._cache.load()
            if cached is None:
                return False
            if cached.refresh_token is None and cached.expires_at <= self._clock():
                return False
            self._result = cached
            self._scopes = sorted(cached.granted_scopes)
            self._state = AuthState.AUTHENTICATED
            return True

    # ---- status / tokens ----
    def get_status(self) -> AuthStatus:
        result = self._result
        if result is None:
            return AuthStatus(state=self._state)
        return AuthStatus(
            state=self._state,
            userId=result.user_id or None,
            userName=result.user_name,
            grantedScopes=result.granted_scopes,
            expiresAt=result.expires_at,
            tokenNearExpiry=result.expires_within(self._refresh_margin, self._clock()),
        )

    async def refresh(self) -> bool:
        """Redeem the refresh token; concurrent callers share one attempt."""

        task = self._refresh_task
        if task is None or task.done():
            task = asyncio.ensure_future(self._run_refresh())
            self._refresh_task = task
        return await asyncio.shield(task)

    async def _run_refresh(self) -> bool:
        async with self._lock:
            current = self._result
            if current is None or self._state is AuthState.SIGNED_OUT:
                logger.debug("Refresh requested while signed out")
                return False
            previous_state = self._state
            self._state = AuthState.REFRESHING
            try:
                result = await self._redeem(current, self._scopes or sorted(current.granted_scopes))
            except (_RefreshRejected, _RefreshUnavailable) as exc:
                logger.warning("Token refresh failed: %s", exc)
                self._state = AuthState.EXPIRED
                self._publish_error(
                    "refresh", TokenExpiredUnrecoverableError(str(exc)), reason=str(exc)
                )
                return False
            except BaseException:
                self._state = previous_state
                raise
            self._commit(result, self._scopes)
            return True

    async def get_access_token(self) -> str:
        """Return a bearer token, refreshing it when it is close to expiry."""

        if self._state is AuthState.AUTHENTICATING:
            async with self._lock:
                pass
        result = self._result
        if self._state is AuthState.SIGNED_OUT or result is None:
            raise AuthRequiredError("Not signed in")
        if self._state is AuthState.EXPIRED:
            raise TokenExpiredUnrecoverableError("Session expired; sign in again")
        if self._state is AuthState.REFRESHING or result.expires_within(
            self._refresh_margin, self._clock()
        ):
            if not await self.refresh():
                raise TokenExpiredUnrecoverableError("Token refresh failed; sign in again")
            result = self._result
            if result is None or result.expires_at <= self._clock():
                raise TokenExpiredUnrecoverableError("Refreshed token is already expired")
        return result.access_token.get_secret_value()

    async def get_token(self) -> str:
        return await self.get_access_token()

    async def sign_out(self) -> bool:
        """Erase the cached session and MSAL accounts. Returns ``False`` if cleanup failed."""

        async with self._lock:
            user_id = self._result.user_id if self._result else None
            ok = self._clear_cache()
            try:
                identity = self._identity_client()
            except AuthError as exc:
                logger.debug("No identity client to clear accounts from: %s", exc)
            else:
                await asyncio.to_thread(identity.remove_accounts)
            self._result = None
            self._scopes = []
            self._state = AuthState.SIGNED_OUT
        self._publish(SignedOut(userId=user_id))
        logger.info("Signed out")
        return ok


__all__ = ["AuthSessionManager", "REFRESH_ATTEMPTS"]
