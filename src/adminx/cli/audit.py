"""Audit log commands."""

from __future__ import annotations

from datetime import datetime, timedelta

import typer
from rich import print
from rich.table import Table

from ..audit import AuditTrail
from .common import console, get_service, handle_cli_errors

app = typer.Typer(help="Audit trail")

DATE_FORMATS = ["%Y-%m-%d", "%Y-%m-%dT%H:%M:%S"]


def _trail(ctx: typer.Context) -> AuditTrail:
    return get_service(ctx).audit or AuditTrail()


@app.command("verify")
@handle_cli_errors
def audit_verify(ctx: typer.Context) -> None:
    """Check the audit log hash chain."""

    verification = _trail(ctx).verify()
    if not verification.ok:
        print(
            f"[red]Audit chain broken[/red] at entry {verification.broken_at}: {verification.reason}"
        )
        raise typer.Exit(1)
    print(f"[green]Audit chain intact[/green] ({verification.entries} entries)")


@app.command("list")
@handle_cli_errors
def audit_list(
    ctx: typer.Context,
    template_id: str | None = typer.Option(None, "--template", help="Only entries for this template"),
    since: datetime | None = typer.Option(None, "--since", formats=DATE_FORMATS, help="UTC start"),
    until: datetime | None = typer.Option(None, "--until", formats=DATE_FORMATS, help="UTC end"),
    user: str | None = typer.Option(None, "--user", help="Only entries by this user id"),
) -> None:
    """Show recorded operations."""

    table = Table("Time", "Operation", "Template", "User", "Success", "Errors")
    for entry in _trail(ctx).entries(template_id, since=since, until=until, user_id=user):
        table.add_row(
            entry.timestamp.isoformat(timespec="seconds"),
            entry.operation,
            entry.template_id or "",
            entry.user_id or "",
            "yes" if entry.success else "no",
            ", ".join(entry.error_kinds),
        )
    console.print(table)


@app.command("report")
@handle_cli_errors
def audit_report(
    ctx: typer.Context,
    since: datetime | None = typer.Option(None, "--since", formats=DATE_FORMATS, help="UTC start"),
    until: datetime | None = typer.Option(None, "--until", formats=DATE_FORMATS, help="UTC end"),
    user: str | None = typer.Option(None, "--user", help="Only operations by this user id"),
) -> None:
    """Summarize operations for a period."""

    report = get_service(ctx).audit_report(since, until, user_id=user)
    summary = Table("Metric", "Value")
    summary.add_row("Operations", str(report.total_operations))
    summary.add_row("Succeeded", str(report.successful_operations))
    summary.add_row("Failed", str(report.failed_operations))
    summary.add_row("Previews", str(report.previews))
    summary.add_row("Unique users", str(report.unique_users))
    summary.add_row("Most active user", report.most_active_user or "-")
    console.print(summary)
    if report.top_templates:
        top = Table("Template", "Count")
        for usage in report.top_templates:
            top.add_row(usage.name, str(usage.count))
        console.print(top)


@app.command("alerts")
@handle_cli_errors
def audit_alerts(
    ctx: typer.Context,
    hours: float = typer.Option(24.0, "--hours", min=0.0, help="Look back this many hours"),
) -> None:
    """Flag mass operations and failure spikes. Exits 1 when any are found."""

    alerts = get_service(ctx).detect_suspicious_activity(timedelta(hours=hours))
    if not alerts:
        print("[green]No suspicious activity[/green]")
        return
    table = Table("Severity", "Type", "User", "Count", "Description")
    for alert in alerts:
        table.add_row(
            alert.severity, alert.alert_type, alert.user_id or "", str(alert.count), alert.description
        )
    console.print(table)
    raise typer.Exit(1)


__all__ = ["app", "audit_alerts", "audit_list", "audit_report", "audit_verify"]
