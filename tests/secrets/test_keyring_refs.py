from __future__ import annotations

import pytest

from adminx.secrets import (
    build_token_cache_ref,
    delete_keyring_secret,
    read_keyring_secret,
    store_keyring_secret,
)


class StubKeyring:
    def __init__(self) -> None:
        self.storage: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.storage.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.storage[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        if (service, username) not in self.storage:
            raise PasswordDeleteError("not found")
        del self.storage[(service, username)]


class PasswordDeleteError(Exception):
    pass


def test_token_cache_ref_is_deterministic() -> None:
    assert build_token_cache_ref("work") == "adminx:token-cache:work"


def test_store_read_delete_round_trip(monkeypatch: pytest.MonkeyPatch) -> None:
    stub = StubKeyring()
    monkeypatch.setattr("adminx.secrets._load_keyring", lambda: stub)
    ref = build_token_cache_ref("work")

    assert store_keyring_secret(ref, "payload") == (True, None)
    assert stub.storage == {("adminx", "token-cache:work"): "payload"}
    assert read_keyring_secret(ref) == ("payload", None)
    assert delete_keyring_secret(ref) == (True, None)
    assert read_keyring_secret(ref) == (None, None)


def test_deleting_missing_entry_succeeds(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("adminx.secrets._load_keyring", lambda: StubKeyring())

    assert delete_keyring_secret("adminx:token-cache:none") == (True, None)


def test_missing_module(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("adminx.secrets._load_keyring", lambda: None)

    assert read_keyring_secret("adminx:x") == (None, "module-unavailable")
    assert store_keyring_secret("adminx:x", "v") == (False, "module-unavailable")


def test_invalid_ref(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("adminx.secrets._load_keyring", lambda: StubKeyring())

    assert read_keyring_secret("no-separator") == (None, "invalid-ref")
    assert store_keyring_secret(":user", "v") == (False, "invalid-ref")


def test_backend_failures_report_reason(monkeypatch: pytest.MonkeyPatch) -> None:
    class Failing(StubKeyring):
        def set_password(self, service: str, username: str, password: str) -> None:
            raise RuntimeError("locked")

    monkeypatch.setattr("adminx.secrets._load_keyring", lambda: Failing())

    assert store_keyring_secret("adminx:x", "v") == (False, "error:RuntimeError")
