from __future__ import annotations

from adminx.cli import app


def test_login_status_logout(cli_runner, service, stub_identity, token_cache) -> None:
    login = cli_runner.invoke(app, ["auth", "login"])
    assert login.exit_code == 0, login.stdout
    assert "Signed in as admin@contoso.com" in login.stdout

    status = cli_runner.invoke(app, ["auth", "status"])
    assert "State: authenticated" in status.stdout
    assert "cli-access" not in status.stdout

    logout = cli_runner.invoke(app, ["auth", "logout"])
    assert logout.exit_code == 0
    assert token_cache.load() is None
    assert stub_identity.removed == 1


def test_login_with_partial_grant_warns(cli_runner, service, stub_identity) -> None:
    stub_identity.response = {**stub_identity.response, "scope": "User.Read"}

    result = cli_runner.invoke(app, ["auth", "login"])

    assert result.exit_code == 0, result.stdout
    assert "signed in without: User.ReadWrite.All" in result.stdout


def test_silent_login_without_cache(cli_runner, service) -> None:
    result = cli_runner.invoke(app, ["auth", "login", "--silent"])

    assert result.exit_code == 1
    assert "adx auth login" in result.stdout


def test_consent_declined(cli_runner, service, stub_identity) -> None:
    stub_identity.response = {"error": "access_denied", "error_description": "declined"}

    result = cli_runner.invoke(app, ["auth", "login"])

    assert result.exit_code == 1
    assert "declined" in result.stdout


def test_refresh_when_signed_out(cli_runner, service) -> None:
    result = cli_runner.invoke(app, ["auth", "refresh"])

    assert result.exit_code == 1
    assert "Refresh failed" in result.stdout
