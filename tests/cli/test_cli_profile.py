from __future__ import annotations

from adminx.cli import app
from adminx.config import ConfigStore


def test_set_list_show(cli_runner) -> None:
    created = cli_runner.invoke(
        app,
        [
            "profile",
            "set",
            "work",
            "--tenant-id",
            "tenant-1",
            "--client-id",
            "client-1",
            "--scope",
            "User.Read",
            "--scope",
            "Group.ReadWrite.All",
            "--token-cache",
            "file",
        ],
    )
    assert created.exit_code == 0, created.stdout

    listed = cli_runner.invoke(app, ["profile", "list"])
    assert "* work" in listed.stdout

    profile = ConfigStore().resolve_profile("work")
    assert profile.scopes == ["User.Read", "Group.ReadWrite.All"]
    assert profile.token_cache == "file"

    shown = cli_runner.invoke(app, ["profile", "show", "work"])
    assert "tenant-1" in shown.stdout


def test_update_keeps_unspecified_fields(cli_runner) -> None:
    cli_runner.invoke(app, ["profile", "set", "work", "--tenant-id", "tenant-1"])
    cli_runner.invoke(app, ["profile", "set", "work", "--execution-timeout", "120"])

    profile = ConfigStore().resolve_profile("work")
    assert profile.tenant_id == "tenant-1"
    assert profile.execution_timeout == 120


def test_invalid_token_cache(cli_runner) -> None:
    result = cli_runner.invoke(app, ["profile", "set", "work", "--token-cache", "registry"])

    assert result.exit_code != 0


def test_show_unknown_profile(cli_runner) -> None:
    result = cli_runner.invoke(app, ["profile", "show", "missing"])

    assert result.exit_code != 0
