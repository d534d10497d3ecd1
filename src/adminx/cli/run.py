"""``adx run``: validate, render and execute a template."""

from __future__ import annotations

import typer
from rich import print

from ..models.results import AdminTaskResult
from ..service import AdminService
from .common import get_service, handle_cli_errors, parse_params, run_async


def _render_result(result: AdminTaskResult, *, show_script: bool) -> None:
    if result.dry_run or show_script:
        typer.echo(result.rendered_script, nl=False)
    if result.output:
        typer.echo(result.output, nl=False)
    for error in result.errors:
        where = f" {error.field}" if error.field else ""
        print(f"[red]{error.kind.value}[/red] ({error.code}){where}: {error.message}")
    status = "[green]succeeded[/green]" if result.success else "[red]failed[/red]"
    mode = "Preview" if result.dry_run else "Execution"
    print(f"{mode} of {result.template_id} {status} in {result.duration_ms} ms")


async def _run(
    service: AdminService, template_id: str, values: dict[str, str], dry_run: bool
) -> AdminTaskResult:
    if not dry_run:
        await service.session.restore()
    return await service.execute_admin_script(template_id, values, dry_run=dry_run)


def register(app: typer.Typer) -> None:
    @app.command("run")
    @handle_cli_errors
    def run_template(
        ctx: typer.Context,
        template_id: str = typer.Argument(..., help="Template id"),
        param: list[str] | None = typer.Option(None, "--param", "-p", help="key=value (repeatable)"),
        dry_run: bool = typer.Option(False, "--dry-run", help="Render the script without running it"),
        show_script: bool = typer.Option(False, "--show-script", help="Print the rendered script"),
    ) -> None:
        """Run a template with the given parameters."""

        service = get_service(ctx)
        result = run_async(_run(service, template_id, parse_params(param), dry_run))
        _render_result(result, show_script=show_script)
        if not result.success:
            raise typer.Exit(1)


__all__ = ["register"]
