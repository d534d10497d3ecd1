from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import respx
from typer.testing import CliRunner


# Ensure the repository-local ``src`` directory is importable when the project is
# not installed as a package. Pytest executes from the repository root where the
# ``src`` layout is not on ``sys.path`` by default, so the adminx package would
# otherwise be missing.
SRC_PATH = Path(__file__).resolve().parents[1] / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))


class FakeClock:
    """Settable UTC clock for session expiry tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def adminx_home(tmp_path, monkeypatch) -> Path:
    home = tmp_path / "adminx-home"
    monkeypatch.setenv("ADMINX_HOME", str(home))
    monkeypatch.delenv("ADMINX_CACHE_ENCRYPTION_KEY", raising=False)
    monkeypatch.delenv("ADMINX_TENANT_ID", raising=False)
    monkeypatch.delenv("ADMINX_CLIENT_ID", raising=False)
    return home


@pytest.fixture
def respx_mock():
    with respx.mock(assert_all_called=False) as respx_mgr:
        yield respx_mgr


@pytest.fixture
def cli_runner():
    return CliRunner()
