"""Authentication models shared by the session manager and token caches."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr

GRAPH_RESOURCE = "https://graph.microsoft.com/"
RESERVED_SCOPES = frozenset({"openid", "profile", "offline_access"})


class AuthState(str, Enum):
    SIGNED_OUT = "signed_out"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    EXPIRED = "expired"


def normalize_scope(scope: str) -> str:
    """Return ``scope`` without the Graph resource prefix, lower-cased."""

    value = scope.strip()
    if value.lower().startswith(GRAPH_RESOURCE):
        value = value[len(GRAPH_RESOURCE) :]
    return value.lower()


def resource_scopes(scopes: Iterable[str]) -> list[str]:
    """Drop OIDC reserved scopes that MSAL refuses in token requests."""

    return [scope for scope in scopes if normalize_scope(scope) not in RESERVED_SCOPES]


def missing_scopes(requested: Iterable[str], granted: Iterable[str]) -> set[str]:
    granted_normalized = {normalize_scope(scope) for scope in granted}
    return {
        scope
        for scope in resource_scopes(requested)
        if normalize_scope(scope) not in granted_normalized
    }


class AuthenticationResult(BaseModel):
    """Outcome of a successful login. Replaced, never mutated, on refresh."""

    access_token: SecretStr = Field(alias="accessToken")
    refresh_token: SecretStr | None = Field(default=None, alias="refreshToken")
    expires_at: datetime = Field(alias="expiresAt")
    granted_scopes: frozenset[str] = Field(default=frozenset(), alias="grantedScopes")
    user_id: str = Field(default="", alias="userId")
    user_name: str | None = Field(default=None, alias="userName")
    tenant_id: str | None = Field(default=None, alias="tenantId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_token_response(
        cls,
        payload: Mapping[str, Any],
        *,
        requested_scopes: Iterable[str],
        now: datetime,
        previous_refresh_token: SecretStr | None = None,
    ) -> AuthenticationResult:
        """Build a result from an MSAL token response.

        Raises :class:`ValueError` when the response is not usable: no access
        token, or a lifetime that would put ``expires_at`` at or before ``now``.
        """

        access_token = payload.get("access_token")
        if not isinstance(access_token, str) or not access_token:
            raise ValueError("token response has no access_token")
        try:
            expires_in = int(payload.get("expires_in", 0))
        except (TypeError, ValueError) as exc:
            raise ValueError("token response has a non-numeric expires_in") from exc
        if expires_in <= 0:
            raise ValueError("token response is already expired")

        raw_scope = payload.get("scope")
        if isinstance(raw_scope, str) and raw_scope.strip():
            granted = frozenset(raw_scope.split())
        elif isinstance(raw_scope, (list, tuple)):
            granted = frozenset(str(item) for item in raw_scope)
        else:
            granted = frozenset(resource_scopes(requested_scopes))

        refresh_value = payload.get("refresh_token")
        refresh_token = (
            SecretStr(refresh_value)
            if isinstance(refresh_value, str) and refresh_value
            else previous_refresh_token
        )

        claims = payload.get("id_token_claims") or {}
        user_id = str(claims.get("oid") or claims.get("sub") or "")
        user_name = claims.get("preferred_username") or claims.get("name")
        tenant_id = claims.get("tid")

        return cls(
            accessToken=SecretStr(access_token),
            refreshToken=refresh_token,
            expiresAt=now + timedelta(seconds=expires_in),
            grantedScopes=granted,
            userId=user_id,
            userName=user_name,
            tenantId=tenant_id,
        )

    def expires_within(self, margin: timedelta, now: datetime) -> bool:
        return self.expires_at - margin <= now

    def covers(self, scopes: Iterable[str]) -> bool:
        return not missing_scopes(scopes, self.granted_scopes)

    def to_cache_payload(self) -> dict[str, Any]:
        """Serialize including secret values; only token caches may call this."""

        return {
            "accessToken": self.access_token.get_secret_value(),
            "refreshToken": (
                self.refresh_token.get_secret_value() if self.refresh_token else None
            ),
            "expiresAt": self.expires_at.isoformat(),
            "grantedScopes": sorted(self.granted_scopes),
            "userId": self.user_id,
            "userName": self.user_name,
            "tenantId": self.tenant_id,
        }


class AuthStatus(BaseModel):
    state: AuthState
    user_id: str | None = Field(default=None, alias="userId")
    user_name: str | None = Field(default=None, alias="userName")
    granted_scopes: frozenset[str] = Field(default=frozenset(), alias="grantedScopes")
    expires_at: datetime | None = Field(default=None, alias="expiresAt")
    token_near_expiry: bool = Field(default=False, alias="tokenNearExpiry")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_authenticated(self) -> bool:
        return self.state in (AuthState.AUTHENTICATED, AuthState.REFRESHING)


__all__ = [
    "AuthState",
    "AuthenticationResult",
    "AuthStatus",
    "GRAPH_RESOURCE",
    "RESERVED_SCOPES",
    "missing_scopes",
    "normalize_scope",
    "resource_scopes",
]
