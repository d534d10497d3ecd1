"""Template catalog commands."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, cast

import typer
import yaml
from pydantic import ValidationError
from rich import print
from rich.table import Table

from ..models.results import ValidationResult
from ..models.templates import AdminTemplate
from ..templates.store import validate_template
from .common import console, get_service, handle_cli_errors

app = typer.Typer(help="Browse and author templates")


def _load_template_file(path: Path) -> AdminTemplate:
    text = path.read_text(encoding="utf-8")
    loader = json.loads
    if path.suffix.lower() in {".yaml", ".yml"}:
        loader = cast(Any, yaml.safe_load)
    data = loader(text) or {}
    if not isinstance(data, dict):
        raise typer.BadParameter("Template file must contain a JSON or YAML object")
    try:
        return AdminTemplate.model_validate(data)
    except ValidationError as exc:
        raise typer.BadParameter(f"Invalid template definition: {exc}") from exc


def _render_validation(result: ValidationResult) -> None:
    for issue in result.errors:
        print(f"[red]error[/red] {issue.field}: {issue.message} ({issue.code})")
    for issue in result.warnings:
        print(f"[yellow]warning[/yellow] {issue.field}: {issue.message} ({issue.code})")


@app.command("list")
@handle_cli_errors
def templates_list(
    ctx: typer.Context,
    category: str | None = typer.Option(None, "--category", help="Only show this category"),
) -> None:
    """List available templates."""

    templates = get_service(ctx).get_available_templates(category)
    if not templates:
        print("No templates found")
        return
    table = Table("Id", "Name", "Category", "Version", "Custom")
    for template in templates:
        table.add_row(
            template.id,
            template.name,
            template.category,
            template.version,
            "yes" if template.is_custom else "",
        )
    console.print(table)


@app.command("show")
@handle_cli_errors
def templates_show(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Print a template definition as JSON."""

    template = get_service(ctx).get_template(template_id)
    typer.echo(json.dumps(template.to_document(), indent=2))


@app.command("form")
@handle_cli_errors
def templates_form(
    ctx: typer.Context, template_id: str = typer.Argument(..., help="Template id")
) -> None:
    """Print the form definition derived from a template."""

    form = get_service(ctx).generate_form(template_id)
    typer.echo(form.model_dump_json(by_alias=True, indent=2))


@app.command("validate")
@handle_cli_errors
def templates_validate(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template JSON/YAML file"),
) -> None:
    """Check a template definition without saving it."""

    result = validate_template(_load_template_file(path))
    _render_validation(result)
    if not result.is_valid:
        raise typer.Exit(1)
    print("[green]Template is valid[/green]")


@app.command("save")
@handle_cli_errors
def templates_save(
    ctx: typer.Context,
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="Template JSON/YAML file"),
) -> None:
    """Add a user template to the catalog."""

    outcome = get_service(ctx).save_template(_load_template_file(path))
    _render_validation(outcome.validation)
    if not outcome.success:
        raise typer.Exit(1)
    print(f"[green]Saved[/green] as {outcome.template_id}")


__all__ = [
    "app",
    "templates_form",
    "templates_list",
    "templates_save",
    "templates_show",
    "templates_validate",
]
