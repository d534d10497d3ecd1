from __future__ import annotations

import base64
import binascii
import hashlib
import json
import logging
import os
import stat
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

from cryptography.fernet import Fernet, InvalidToken

from .errors import AdminxError

logger = logging.getLogger(__name__)

ENCRYPTION_KEY_ENV = "ADMINX_CACHE_ENCRYPTION_KEY"
DEFAULT_AUTHORITY_HOST = "https://login.microsoftonline.com"
DEFAULT_SCOPES = ("User.Read", "Directory.Read.All")

_FERNET_SALT = b"adminx-token-cache"
_cached_cipher: Fernet | None = None
_cached_cipher_key: str | None = None


class EncryptedConfigError(AdminxError):
    """Raised when encrypted data cannot be decrypted with the configured key."""


def admin_home() -> Path:
    """Return the adminx home directory, honouring ``ADMINX_HOME`` at call time."""

    return Path(os.path.expanduser(os.getenv("ADMINX_HOME", "~/.adminx")))


def _derive_fernet_key(raw: str) -> bytes | None:
    """Return a urlsafe base64 Fernet key derived from ``raw``."""

    if not raw:
        return None

    normalized = raw.strip().encode("utf-8")
    if not normalized:
        return None

    try:
        decoded = base64.urlsafe_b64decode(normalized)
    except (binascii.Error, ValueError):
        decoded = b""

    if len(decoded) == 32:
        return normalized

    return base64.urlsafe_b64encode(
        hashlib.pbkdf2_hmac("sha256", normalized, _FERNET_SALT, 390_000, dklen=32)
    )


def get_cipher() -> Fernet | None:
    """Return the Fernet cipher for ``ADMINX_CACHE_ENCRYPTION_KEY`` or ``None``."""

    global _cached_cipher, _cached_cipher_key

    key = os.getenv(ENCRYPTION_KEY_ENV)
    if key != _cached_cipher_key:
        _cached_cipher = None
        _cached_cipher_key = key

    if not key:
        return None

    if _cached_cipher is not None:
        return _cached_cipher

    derived = _derive_fernet_key(key)
    if not derived:
        logger.warning("%s is invalid; expected a Fernet key or passphrase.", ENCRYPTION_KEY_ENV)
        return None

    _cached_cipher = Fernet(derived)
    return _cached_cipher


def encrypt_text(value: str) -> str:
    cipher = get_cipher()
    if cipher is None:
        raise EncryptedConfigError(
            f"Refusing to write secrets to disk: {ENCRYPTION_KEY_ENV} is not set."
        )
    return cipher.encrypt(value.encode("utf-8")).decode("utf-8")


def decrypt_text(value: str) -> str:
    cipher = get_cipher()
    if cipher is None:
        raise EncryptedConfigError(
            f"Encrypted data found but {ENCRYPTION_KEY_ENV} is not set."
        )
    try:
        return cipher.decrypt(value.encode("utf-8")).decode("utf-8")
    except InvalidToken as exc:
        raise EncryptedConfigError("Unable to decrypt data; verify the encryption key.") from exc


def secure_path(path: Path) -> None:
    if not path.exists():
        return

    try:
        if os.name == "nt":
            os.chmod(path, stat.S_IREAD | stat.S_IWRITE)
        else:
            mode = stat.S_IMODE(path.stat().st_mode)
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                logger.warning("Adjusted permissions for %s to 0o600", path)
            path.chmod(0o600)
    except PermissionError as exc:
        logger.warning("Unable to enforce secure permissions for %s: %s", path, exc)


def write_atomic(path: Path, text: str, *, private: bool = False) -> None:
    """Write ``text`` to ``path`` through a temporary file and rename."""

    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(f"{path.name}.tmp")
    try:
        with tmp.open("w", encoding="utf-8") as handle:
            handle.write(text)
        if private:
            secure_path(tmp)
        tmp.replace(path)
    finally:
        if tmp.exists():
            tmp.unlink()


@dataclass
class Profile:
    name: str
    tenant_id: str | None = None
    client_id: str | None = None
    authority_host: str = DEFAULT_AUTHORITY_HOST
    scopes: list[str] = field(default_factory=lambda: list(DEFAULT_SCOPES))
    script_host: str = "pwsh"
    execution_timeout: float = 60.0
    network_timeout: float = 30.0
    interactive_timeout: float | None = None
    refresh_margin: float = 300.0
    token_cache: str = "keyring"
    templates_dir: str | None = None

    @property
    def authority(self) -> str:
        return f"{self.authority_host.rstrip('/')}/{self.tenant_id or 'organizations'}"

    def resolved_templates_dir(self) -> Path:
        if self.templates_dir:
            return Path(os.path.expanduser(self.templates_dir))
        return admin_home() / "templates"


_PROFILE_FIELDS = frozenset(f.name for f in fields(Profile))


def _profile_from_dict(name: str, data: dict[str, Any]) -> Profile:
    known = {key: value for key, value in data.items() if key in _PROFILE_FIELDS and key != "name"}
    return Profile(name=name, **known)


@dataclass
class ConfigData:
    default_profile: str | None = None
    profiles: dict[str, Profile] = field(default_factory=dict)


class ConfigStore:
    def __init__(self, path: str | os.PathLike[str] | None = None) -> None:
        self.path = Path(path) if path else admin_home() / "config.json"

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"default": None, "profiles": {}}
        if os.name != "nt":
            mode = stat.S_IMODE(self.path.stat().st_mode)
            if mode & (stat.S_IRWXG | stat.S_IRWXO):
                logger.warning("Config file %s is group/world accessible; resetting to 0o600.", self.path)
                secure_path(self.path)
        with self.path.open("r", encoding="utf-8") as handle:
            raw = json.load(handle)
        if not isinstance(raw, dict):
            raise AdminxError(f"Config file {self.path} must contain a JSON object")
        return raw

    def load(self) -> ConfigData:
        raw = self._read()
        profiles = {
            name: _profile_from_dict(name, data)
            for name, data in (raw.get("profiles") or {}).items()
            if isinstance(data, dict)
        }
        return ConfigData(default_profile=raw.get("default"), profiles=profiles)

    def save(self, cfg: ConfigData) -> None:
        payload = {
            "default": cfg.default_profile,
            "profiles": {name: asdict(profile) for name, profile in cfg.profiles.items()},
        }
        write_atomic(self.path, json.dumps(payload, indent=2), private=True)
        secure_path(self.path)

    def add_or_update_profile(self, profile: Profile, *, set_default: bool = False) -> ConfigData:
        """Persist ``profile`` and optionally set it as default."""

        cfg = self.load()
        cfg.profiles[profile.name] = profile
        if set_default or not cfg.default_profile:
            cfg.default_profile = profile.name
        self.save(cfg)
        return cfg

    def set_default_profile(self, name: str) -> ConfigData:
        """Mark the profile ``name`` as the default profile."""

        cfg = self.load()
        if name not in cfg.profiles:
            raise KeyError(f"Profile '{name}' not found")
        cfg.default_profile = name
        self.save(cfg)
        return cfg

    def resolve_profile(self, name: str | None = None) -> Profile:
        """Return the named (or default) profile with environment overrides applied.

        Falls back to an unsaved ``default`` profile so that environment-only
        setups (``ADMINX_TENANT_ID``/``ADMINX_CLIENT_ID``) work without a file.
        """

        cfg = self.load()
        profile_name = name or cfg.default_profile or "default"
        profile = cfg.profiles.get(profile_name)
        if profile is None:
            if name:
                raise KeyError(f"Profile '{name}' not found")
            profile = Profile(name=profile_name)
        tenant = os.getenv("ADMINX_TENANT_ID")
        client = os.getenv("ADMINX_CLIENT_ID")
        if tenant:
            profile.tenant_id = tenant
        if client:
            profile.client_id = client
        return profile
