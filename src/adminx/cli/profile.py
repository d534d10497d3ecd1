"""Commands for inspecting and mutating stored adminx profiles."""

from __future__ import annotations

from dataclasses import asdict

import typer
from rich import print

from ..config import ConfigStore, Profile
from .common import handle_cli_errors

app = typer.Typer(help="Profiles & configuration")

TOKEN_CACHE_BACKENDS = ("keyring", "file", "memory")


@app.command("list")
@handle_cli_errors
def profile_list() -> None:
    """Show all saved profiles, highlighting the default profile."""

    cfg = ConfigStore().load()
    for name in sorted(cfg.profiles):
        star = "*" if cfg.default_profile == name else " "
        print(f"{star} {name}")


@app.command("show")
@handle_cli_errors
def profile_show(
    name: str | None = typer.Argument(None, help="Profile name (default profile when omitted)"),
) -> None:
    """Display the effective configuration for a profile."""

    try:
        profile = ConfigStore().resolve_profile(name)
    except KeyError:
        raise typer.BadParameter(f"Profile '{name}' not found") from None
    print(asdict(profile))


@app.command("set")
@handle_cli_errors
def profile_set(
    name: str = typer.Argument(..., help="Profile name"),
    tenant_id: str | None = typer.Option(None, "--tenant-id", help="Directory (tenant) id"),
    client_id: str | None = typer.Option(None, "--client-id", help="Public client application id"),
    scope: list[str] | None = typer.Option(None, "--scope", help="Default scope (repeatable)"),
    script_host: str | None = typer.Option(None, "--script-host", help="PowerShell executable"),
    token_cache: str | None = typer.Option(
        None, "--token-cache", help="Token cache backend: keyring, file or memory"
    ),
    templates_dir: str | None = typer.Option(None, "--templates-dir", help="User template directory"),
    execution_timeout: float | None = typer.Option(
        None, "--execution-timeout", help="Script timeout in seconds"
    ),
    network_timeout: float | None = typer.Option(
        None, "--network-timeout", help="Token refresh timeout in seconds"
    ),
    set_default: bool = typer.Option(False, "--default", help="Make this the default profile"),
) -> None:
    """Create or update a profile; unspecified options keep their current value."""

    if token_cache is not None and token_cache not in TOKEN_CACHE_BACKENDS:
        raise typer.BadParameter(f"--token-cache must be one of {', '.join(TOKEN_CACHE_BACKENDS)}")

    store = ConfigStore()
    cfg = store.load()
    profile = cfg.profiles.get(name) or Profile(name=name)
    updates = {
        "tenant_id": tenant_id,
        "client_id": client_id,
        "scopes": list(scope) if scope else None,
        "script_host": script_host,
        "token_cache": token_cache,
        "templates_dir": templates_dir,
        "execution_timeout": execution_timeout,
        "network_timeout": network_timeout,
    }
    for field_name, value in updates.items():
        if value is not None:
            setattr(profile, field_name, value)
    store.add_or_update_profile(profile, set_default=set_default)
    print(f"Profile '{name}' saved")


__all__ = ["app", "profile_list", "profile_set", "profile_show"]
