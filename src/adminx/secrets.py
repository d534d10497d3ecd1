from __future__ import annotations

import logging
from importlib import import_module
from typing import Protocol, cast

logger = logging.getLogger(__name__)

KEYRING_SERVICE_NAME = "adminx"
_KEYRING_CACHE_PREFIX = "token-cache"


class KeyringModule(Protocol):
    def get_password(self, service_name: str, username: str) -> str | None: ...

    def set_password(self, service_name: str, username: str, password: str) -> None: ...

    def delete_password(self, service_name: str, username: str) -> None: ...


def _load_keyring() -> KeyringModule | None:
    try:
        module = import_module("keyring")
    except ImportError:
        return None
    return cast(KeyringModule, module)


def build_token_cache_ref(profile_name: str) -> str:
    """Return a deterministic keyring reference for ``profile_name`` token caches."""

    return f"{KEYRING_SERVICE_NAME}:{_KEYRING_CACHE_PREFIX}:{profile_name}"


def _split_keyring_ref(ref: str) -> tuple[str, str] | None:
    parts = ref.split(":", 1)
    if len(parts) != 2:
        return None
    service, username = parts
    if not service or not username:
        return None
    return service, username


def read_keyring_secret(ref: str) -> tuple[str | None, str | None]:
    """Return ``(secret, failure_reason)`` for ``ref``.

    A missing entry is ``(None, None)``; backend problems set the reason.
    """

    module = _load_keyring()
    if module is None:
        return None, "module-unavailable"
    parsed = _split_keyring_ref(ref)
    if parsed is None:
        return None, "invalid-ref"
    service, username = parsed
    try:
        return module.get_password(service, username), None
    except Exception as exc:
        logger.debug("Keyring read failed for %s: %s", ref, exc)
        return None, f"error:{exc.__class__.__name__}"


def store_keyring_secret(ref: str, secret: str) -> tuple[bool, str | None]:
    """Persist ``secret`` to the system keyring referenced by ``ref``."""

    module = _load_keyring()
    if module is None:
        return False, "module-unavailable"
    parsed = _split_keyring_ref(ref)
    if parsed is None:
        return False, "invalid-ref"
    service, username = parsed
    try:
        module.set_password(service, username, secret)
    except Exception as exc:
        logger.debug("Keyring write failed for %s: %s", ref, exc)
        return False, f"error:{exc.__class__.__name__}"
    return True, None


def delete_keyring_secret(ref: str) -> tuple[bool, str | None]:
    """Remove the password stored for ``ref`` from the system keyring."""

    module = _load_keyring()
    if module is None:
        return False, "module-unavailable"
    parsed = _split_keyring_ref(ref)
    if parsed is None:
        return False, "invalid-ref"
    service, username = parsed
    try:
        module.delete_password(service, username)
    except Exception as exc:
        if exc.__class__.__name__ == "PasswordDeleteError":
            return True, None
        logger.debug("Keyring delete failed for %s: %s", ref, exc)
        return False, f"error:{exc.__class__.__name__}"
    return True, None


__all__ = [
    "KEYRING_SERVICE_NAME",
    "build_token_cache_ref",
    "delete_keyring_secret",
    "read_keyring_secret",
    "store_keyring_secret",
]
