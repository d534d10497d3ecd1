from __future__ import annotations

import logging
from collections.abc import Iterable
from importlib import import_module
from typing import Any, Protocol, cast

from ..config import Profile
from ..errors import AuthError
from ..models.auth import resource_scopes

logger = logging.getLogger(__name__)

# Errors MSAL reports when the user closes the browser or declines consent.
CONSENT_DECLINED_ERRORS = frozenset(
    {"access_denied", "authentication_canceled", "consent_required", "interaction_required"}
)


class _PublicClient(Protocol):
    def get_accounts(self) -> list[dict[str, Any]]: ...

    def remove_account(self, account: dict[str, Any]) -> None: ...

    def acquire_token_by_refresh_token(
        self, refresh_token: str, scopes: Iterable[str]
    ) -> dict[str, Any] | None: ...

    def acquire_token_interactive(
        self, scopes: Iterable[str], **kwargs: Any
    ) -> dict[str, Any] | None: ...


class _PublicClientFactory(Protocol):
    def __call__(self, client_id: str, authority: str) -> _PublicClient: ...


class _MsalModule(Protocol):
    PublicClientApplication: _PublicClientFactory


def _load_msal() -> _MsalModule | None:
    try:
        module = import_module("msal")
    except ImportError:  # pragma: no cover - dependency not installed
        return None
    return cast(_MsalModule, module)


msal = _load_msal()


class MsalIdentityClient:
    """Public-client identity flows against Azure AD / Entra ID via MSAL."""

    def __init__(self, client_id: str, authority: str) -> None:
        if msal is None:
            raise AuthError("msal is not installed; it is required for interactive sign-in.")
        if not client_id:
            raise AuthError("No client id configured. Run 'adx profile set --client-id ...'.")
        self.client_id = client_id
        self.authority = authority
        self._app: _PublicClient = cast(_MsalModule, msal).PublicClientApplication(
            client_id, authority=authority
        )

    @classmethod
    def from_profile(cls, profile: Profile) -> MsalIdentityClient:
        return cls(profile.client_id or "", profile.authority)

    def acquire_interactive(
        self, scopes: Iterable[str], *, timeout: float | None = None
    ) -> dict[str, Any]:
        logger.info("Starting interactive sign-in against %s", self.authority)
        kwargs: dict[str, Any] = {"prompt": "select_account"}
        if timeout is not None:
            kwargs["timeout"] = timeout
        result = self._app.acquire_token_interactive(resource_scopes(scopes), **kwargs)
        return result or {"error": "no_response", "error_description": "Empty token response"}

    def acquire_by_refresh_token(
        self, refresh_token: str, scopes: Iterable[str]
    ) -> dict[str, Any]:
        result = self._app.acquire_token_by_refresh_token(refresh_token, resource_scopes(scopes))
        if result and "error" in result:
            logger.info("Refresh token rejected with error: %s", result.get("error"))
        return result or {"error": "no_response", "error_description": "Empty token response"}

    def remove_accounts(self) -> None:
        for account in self._app.get_accounts():
            self._app.remove_account(account)
