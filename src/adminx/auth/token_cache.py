"""Persistence for the current :class:`AuthenticationResult`.

Only the session manager reads or writes these caches. A record that exists
but cannot be parsed raises :class:`TokenCacheCorruptedError`; an absent
record is ``None``.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from pydantic import ValidationError

from ..config import EncryptedConfigError, Profile, admin_home, decrypt_text, encrypt_text, write_atomic
from ..errors import TokenCacheCorruptedError, TokenCacheError
from ..models.auth import AuthenticationResult
from ..secrets import (
    build_token_cache_ref,
    delete_keyring_secret,
    read_keyring_secret,
    store_keyring_secret,
)

logger = logging.getLogger(__name__)


def _parse_record(raw: str, source: str) -> AuthenticationResult:
    try:
        return AuthenticationResult.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as exc:
        raise TokenCacheCorruptedError(f"Token cache record in {source} is unreadable") from exc


def _serialize(result: AuthenticationResult) -> str:
    return json.dumps(result.to_cache_payload(), separators=(",", ":"))


class TokenCache(ABC):
    @abstractmethod
    def load(self) -> AuthenticationResult | None:
        """Return the cached record or ``None`` when nothing is stored."""

    @abstractmethod
    def save(self, result: AuthenticationResult) -> None:
        """Replace the cached record; raises :class:`TokenCacheError` on failure."""

    @abstractmethod
    def clear(self) -> None:
        """Erase the cached record; raises :class:`TokenCacheError` on failure."""


class MemoryTokenCache(TokenCache):
    def __init__(self, result: AuthenticationResult | None = None) -> None:
        self._result = result

    def load(self) -> AuthenticationResult | None:
        return self._result

    def save(self, result: AuthenticationResult) -> None:
        self._result = result

    def clear(self) -> None:
        self._result = None


class KeyringTokenCache(TokenCache):
    """Token record stored in the OS keyring under service ``adminx``."""

    def __init__(self, profile_name: str) -> None:
        self.ref = build_token_cache_ref(profile_name)

    def load(self) -> AuthenticationResult | None:
        raw, reason = read_keyring_secret(self.ref)
        if reason:
            logger.warning("Keyring unavailable (%s); treating token cache as empty", reason)
            return None
        if not raw:
            return None
        return _parse_record(raw, "keyring")

    def save(self, result: AuthenticationResult) -> None:
        ok, reason = store_keyring_secret(self.ref, _serialize(result))
        if not ok:
            raise TokenCacheError(f"Unable to store token cache in keyring ({reason})")

    def clear(self) -> None:
        ok, reason = delete_keyring_secret(self.ref)
        if not ok:
            raise TokenCacheError(f"Unable to clear token cache from keyring ({reason})")


class EncryptedFileTokenCache(TokenCache):
    """Fernet-encrypted file fallback for hosts without a usable keyring."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> AuthenticationResult | None:
        if not self.path.exists():
            return None
        try:
            raw = decrypt_text(self.path.read_text(encoding="utf-8").strip())
        except EncryptedConfigError as exc:
            raise TokenCacheCorruptedError(str(exc)) from exc
        return _parse_record(raw, str(self.path))

    def save(self, result: AuthenticationResult) -> None:
        try:
            payload = encrypt_text(_serialize(result))
        except EncryptedConfigError as exc:
            raise TokenCacheError(str(exc)) from exc
        try:
            write_atomic(self.path, payload, private=True)
        except OSError as exc:
            raise TokenCacheError(f"Unable to write token cache {self.path}: {exc}") from exc

    def clear(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as exc:
            raise TokenCacheError(f"Unable to remove token cache {self.path}: {exc}") from exc


def build_token_cache(profile: Profile) -> TokenCache:
    """Return the cache backend configured for ``profile``."""

    backend = profile.token_cache.lower()
    if backend == "memory":
        return MemoryTokenCache()
    if backend == "file":
        return EncryptedFileTokenCache(admin_home() / "cache" / f"{profile.name}.bin")
    if backend != "keyring":
        logger.warning("Unknown token cache backend %r; using keyring", profile.token_cache)
    return KeyringTokenCache(profile.name)


__all__ = [
    "EncryptedFileTokenCache",
    "KeyringTokenCache",
    "MemoryTokenCache",
    "TokenCache",
    "build_token_cache",
]
