from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any

import pytest

from adminx.audit import AuditTrail
from adminx.auth.session import AuthSessionManager
from adminx.auth.token_cache import MemoryTokenCache
from adminx.events import EventPublisher
from adminx.execution.engine import ExecutionEngine
from adminx.execution.host import HostResult
from adminx.service import AdminService
from adminx.templates.store import TemplateStore


class StubHost:
    def __init__(self) -> None:
        self.scripts: list[str] = []
        self.result = HostResult(exit_code=0, stdout="ok\n")

    async def run(self, script: str, *, env: Mapping[str, str]) -> HostResult:
        self.scripts.append(script)
        return self.result


class StubIdentity:
    def __init__(self) -> None:
        self.response: dict[str, Any] = {
            "access_token": "cli-access",
            "refresh_token": "cli-refresh",
            "expires_in": 3600,
            "scope": "User.Read User.ReadWrite.All",
            "id_token_claims": {"oid": "admin-1", "preferred_username": "admin@contoso.com"},
        }
        self.removed = 0

    def acquire_interactive(self, scopes, *, timeout=None):
        return self.response

    def acquire_by_refresh_token(self, refresh_token, scopes):
        return self.response

    def remove_accounts(self) -> None:
        self.removed += 1


@pytest.fixture
def stub_host() -> StubHost:
    return StubHost()


@pytest.fixture
def stub_identity() -> StubIdentity:
    return StubIdentity()


@pytest.fixture
def token_cache() -> MemoryTokenCache:
    return MemoryTokenCache()


@pytest.fixture
def service(tmp_path: Path, stub_host, stub_identity, token_cache, monkeypatch) -> AdminService:
    events = EventPublisher()
    session = AuthSessionManager(
        token_cache,
        identity=stub_identity,
        events=events,
        default_scopes=["User.Read", "User.ReadWrite.All"],
    )
    service = AdminService(
        TemplateStore(tmp_path / "templates"),
        session,
        ExecutionEngine(stub_host),
        events=events,
        audit=AuditTrail(tmp_path / "audit.jsonl"),
    )
    built: list[str | None] = []

    def fake_build_service(profile_name: str | None = None) -> AdminService:
        built.append(profile_name)
        return service

    monkeypatch.setattr("adminx.cli.common.build_service", fake_build_service)
    service.built_for = built  # type: ignore[attr-defined]
    return service
