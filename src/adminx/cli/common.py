from __future__ import annotations

import asyncio
import os
from collections.abc import Callable, Coroutine, Iterable
from functools import wraps
from typing import Any, ParamSpec, TypeVar

import typer
from rich.console import Console

from ..config import ConfigStore, EncryptedConfigError
from ..errors import (
    AdminxError,
    AuthError,
    CatalogUnavailableError,
    HttpError,
    ParameterValidationError,
    TokenCacheCorruptedError,
)
from ..service import AdminService

console = Console()
err_console = Console(stderr=True)

CommandParams = ParamSpec("CommandParams")
CommandReturn = TypeVar("CommandReturn")
AsyncResult = TypeVar("AsyncResult")


def handle_cli_errors(
    func: Callable[CommandParams, CommandReturn],
) -> Callable[CommandParams, CommandReturn]:
    @wraps(func)
    def wrapper(*args: CommandParams.args, **kwargs: CommandParams.kwargs) -> CommandReturn:
        try:
            return func(*args, **kwargs)
        except typer.BadParameter:
            raise
        except typer.Exit:
            raise
        except ParameterValidationError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            for issue in exc.result.errors:
                console.print(f"  - {issue.field}: {issue.message}")
            raise typer.Exit(1) from None
        except TokenCacheCorruptedError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            console.print("Run `adx auth logout` to discard the cached session, then sign in again.")
            raise typer.Exit(1) from None
        except EncryptedConfigError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            console.print(
                "Export the original ADMINX_CACHE_ENCRYPTION_KEY, or run `adx auth logout` to start over."
            )
            raise typer.Exit(1) from None
        except AuthError as exc:
            console.print(f"[red]Error:[/red] Authentication failed: {exc}")
            console.print("Run `adx auth login` to sign in again.")
            raise typer.Exit(1) from None
        except CatalogUnavailableError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            console.print("Check the templates_dir setting and its permissions.")
            raise typer.Exit(1) from None
        except HttpError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1) from None
        except AdminxError as exc:
            console.print(f"[red]Error:[/red] {exc}")
            raise typer.Exit(1) from None
        except Exception as exc:
            if os.getenv("ADMINX_DEBUG"):
                raise
            console.print(f"[red]Error:[/red] Unexpected failure: {exc}")
            console.print("Set ADMINX_DEBUG=1 for a stack trace.")
            raise typer.Exit(1) from exc

    return wrapper


def run_async(coro: Coroutine[Any, Any, AsyncResult]) -> AsyncResult:
    return asyncio.run(coro)


def build_service(profile_name: str | None = None) -> AdminService:
    try:
        profile = ConfigStore().resolve_profile(profile_name)
    except KeyError as exc:
        raise typer.BadParameter(str(exc.args[0])) from None
    return AdminService.from_profile(profile)


def get_service(ctx: typer.Context) -> AdminService:
    """Return the service for the profile selected on the command line."""

    obj = ctx.ensure_object(dict)
    service = obj.get("service")
    if service is None:
        service = obj["service"] = build_service(obj.get("profile"))
    return service


def parse_params(pairs: Iterable[str] | None) -> dict[str, str]:
    """Parse repeated ``key=value`` options; a repeated key keeps the last value."""

    values: dict[str, str] = {}
    for pair in pairs or ():
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"Expected key=value, got {pair!r}")
        values[key.strip()] = value
    return values


__all__ = [
    "build_service",
    "console",
    "err_console",
    "get_service",
    "handle_cli_errors",
    "parse_params",
    "run_async",
]
