"""Sign-in, status, refresh and sign-out commands."""

from __future__ import annotations

import typer
from rich import print

from ..errors import ScopeMismatchError
from ..models.auth import AuthStatus
from .common import get_service, handle_cli_errors, run_async

app = typer.Typer(help="Authentication")


def _render_status(status: AuthStatus) -> None:
    print(f"State: {status.state.value}")
    if status.user_id or status.user_name:
        print(f"User: {status.user_name or '-'} ({status.user_id or '-'})")
    if status.granted_scopes:
        print(f"Scopes: {', '.join(sorted(status.granted_scopes))}")
    if status.expires_at:
        suffix = " (refresh due)" if status.token_near_expiry else ""
        print(f"Expires: {status.expires_at.isoformat()}{suffix}")


@app.command("login")
@handle_cli_errors
def auth_login(
    ctx: typer.Context,
    scope: list[str] | None = typer.Option(None, "--scope", help="Scope to request (repeatable)"),
    silent: bool = typer.Option(False, "--silent", help="Only resume a cached session"),
) -> None:
    """Sign in through the browser (or silently from the token cache)."""

    service = get_service(ctx)
    try:
        result = run_async(service.authenticate(scope or None, interactive=not silent))
    except ScopeMismatchError as exc:
        print(f"[yellow]Warning:[/yellow] signed in without: {', '.join(exc.missing)}")
        result = exc.result
    if result is not None:
        print(f"[green]Signed in[/green] as {result.user_name or result.user_id or 'unknown user'}")


@app.command("status")
@handle_cli_errors
def auth_status(ctx: typer.Context) -> None:
    """Show the cached session without contacting the network."""

    service = get_service(ctx)
    run_async(service.session.restore())
    _render_status(service.get_auth_status())


@app.command("refresh")
@handle_cli_errors
def auth_refresh(ctx: typer.Context) -> None:
    """Redeem the cached refresh token now."""

    service = get_service(ctx)
    if not run_async(service.refresh_tokens()):
        print("[red]Refresh failed.[/red] Run `adx auth login` to sign in again.")
        raise typer.Exit(1)
    print("[green]Tokens refreshed[/green]")
    _render_status(service.get_auth_status())


@app.command("logout")
@handle_cli_errors
def auth_logout(ctx: typer.Context) -> None:
    """Erase the cached session."""

    service = get_service(ctx)
    if not run_async(service.sign_out()):
        print("[yellow]Signed out, but the token cache could not be fully cleared.[/yellow]")
        raise typer.Exit(1)
    print("Signed out")


__all__ = ["app", "auth_login", "auth_logout", "auth_refresh", "auth_status"]
