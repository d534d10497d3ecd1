from __future__ import annotations

import re

import pytest
from rich.console import Console

from adminx.cli import app


@pytest.fixture(autouse=True)
def wide_console(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("adminx.cli.audit.console", Console(width=200))


def test_verify_and_list(cli_runner, service) -> None:
    cli_runner.invoke(app, ["run", "reset-password", "-p", "userPrincipalName=a@b.com", "--dry-run"])

    verified = cli_runner.invoke(app, ["audit", "verify"])
    listed = cli_runner.invoke(app, ["audit", "list", "--template", "reset-password"])

    assert verified.exit_code == 0, verified.stdout
    assert "1 entries" in verified.stdout
    assert "preview" in listed.stdout


def test_verify_detects_tampering(cli_runner, service) -> None:
    cli_runner.invoke(app, ["run", "reset-password", "-p", "userPrincipalName=a@b.com", "--dry-run"])
    path = service.audit.path
    path.write_text(path.read_text().replace('"success":true', '"success":false'))

    result = cli_runner.invoke(app, ["audit", "verify"])

    assert result.exit_code == 1
    assert "entry hash mismatch" in result.stdout


def test_report_summarizes_operations(cli_runner, service) -> None:
    cli_runner.invoke(app, ["run", "reset-password", "-p", "userPrincipalName=a@b.com", "--dry-run"])
    cli_runner.invoke(app, ["run", "reset-password", "--dry-run"])

    result = cli_runner.invoke(app, ["audit", "report", "--since", "2000-01-01"])

    assert result.exit_code == 0, result.stdout
    assert "Operations" in result.stdout
    assert "reset-password" in result.stdout
    assert re.search(r"Operations\W+2\b", result.stdout)
    assert re.search(r"Failed\W+1\b", result.stdout)
    assert re.search(r"Previews\W+2\b", result.stdout)


def test_report_for_unknown_user_is_empty(cli_runner, service) -> None:
    cli_runner.invoke(app, ["run", "reset-password", "-p", "userPrincipalName=a@b.com", "--dry-run"])

    result = cli_runner.invoke(app, ["audit", "report", "--user", "nobody"])

    assert result.exit_code == 0, result.stdout
    assert "reset-password" not in result.stdout


def test_alerts_exit_non_zero_when_found(cli_runner, service) -> None:
    quiet = cli_runner.invoke(app, ["audit", "alerts"])
    for _ in range(6):
        service.audit.append("execute", templateId="disable-user", userId="mallory", success=False)

    noisy = cli_runner.invoke(app, ["audit", "alerts", "--hours", "1"])

    assert quiet.exit_code == 0
    assert "No suspicious activity" in quiet.stdout
    assert noisy.exit_code == 1
    assert "failed_operation_spike" in noisy.stdout
    assert "mallory" in noisy.stdout
