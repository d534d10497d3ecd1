from __future__ import annotations

import logging

import typer
from rich.logging import RichHandler

from . import audit, auth, profile, run, templates
from .common import err_console

app = typer.Typer(help="adminx: template-driven directory administration")


def _register_sub_app(name: str, sub_app: typer.Typer) -> None:
    app.add_typer(sub_app, name=name)


_register_sub_app("auth", auth.app)
_register_sub_app("profile", profile.app)
_register_sub_app("templates", templates.app)
_register_sub_app("audit", audit.app)
run.register(app)


@app.callback()
def _root_callback(
    ctx: typer.Context,
    profile_name: str | None = typer.Option(
        None, "--profile", envvar="ADMINX_PROFILE", help="Profile to use"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log to stderr"),
) -> None:
    """Initialize shared Typer context state."""

    ctx.ensure_object(dict)
    ctx.obj.setdefault("profile", profile_name)
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(message)s",
            handlers=[RichHandler(console=err_console, show_path=False)],
        )


__all__ = ["app", "audit", "auth", "profile", "run", "templates"]
