# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Rich console output for operation results, alerts and backups."""

from __future__ import annotations

from datetime import datetime

import typer
from rich.console import Console
from rich.table import Table

from vigil.backup.models import BackupRecord
from vigil.core.clock import to_iso
from vigil.core.constants import Severity
from vigil.monitoring.alerts import SecurityAlert, SecurityMetrics
from vigil.results import OperationOutcome, OperationResult

console = Console()

SEVERITY_COLORS = {
    Severity.CRITICAL: "bold red",
    Severity.HIGH: "red",
    Severity.MEDIUM: "yellow",
    Severity.LOW: "cyan",
}

OUTCOME_COLORS = {
    OperationOutcome.SUCCEEDED: "bold green",
    OperationOutcome.PARTIAL: "yellow",
    OperationOutcome.REFUSED: "bold yellow",
    OperationOutcome.FAILED: "bold red",
}

# Exit codes: 0 success, 1 failed, 2 refused, 3 partial
OUTCOME_EXIT_CODES = {
    OperationOutcome.SUCCEEDED: 0,
    OperationOutcome.FAILED: 1,
    OperationOutcome.REFUSED: 2,
    OperationOutcome.PARTIAL: 3,
}


def _ts(value: datetime | None) -> str:
    return to_iso(value) if value is not None else ""


def format_operation_result(result: OperationResult) -> None:
    color = OUTCOME_COLORS[result.outcome]
    console.print(f"[{color}]{result.outcome}[/{color}] {result.operation}: {result.message}")
    if result.error_kind:
        console.print(f"  [dim]error kind:[/dim] {result.error_kind}")


def exit_for(result: OperationResult) -> None:
    """Raise :class:`typer.Exit` with a non-zero code unless *result* succeeded."""
    code = OUTCOME_EXIT_CODES[result.outcome]
    if code:
        raise typer.Exit(code)


def format_alerts(alerts: list[SecurityAlert], total: int) -> None:
    if not alerts:
        console.print("[dim]No security alerts found.[/dim]")
        return

    table = Table(title="Security Alerts")
    table.add_column("Created", style="dim", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Severity")
    table.add_column("Type", style="cyan")
    table.add_column("Subject", style="yellow")
    table.add_column("Status", style="bold")

    for alert in alerts:
        color = SEVERITY_COLORS.get(alert.severity, "white")
        table.add_row(
            _ts(alert.created_at),
            alert.id,
            f"[{color}]{alert.severity}[/{color}]",
            alert.alert_type,
            alert.subject_key or "",
            alert.status,
        )

    console.print(table)
    console.print(f"\n[dim]Showing {len(alerts)} of {total} alert(s)[/dim]")


def format_metrics(metrics: SecurityMetrics) -> None:
    table = Table(title=f"Security Metrics (last {metrics.window_hours}h)", show_header=False)
    table.add_column("metric", style="dim")
    table.add_column("value", justify="right")
    for name, value in metrics.model_dump().items():
        if name == "window_hours":
            continue
        table.add_row(name.replace("_", " "), str(value))
    console.print(table)


def format_backups(records: list[BackupRecord], total: int) -> None:
    if not records:
        console.print("[dim]No backups found.[/dim]")
        return

    table = Table(title="Backups")
    table.add_column("Started", style="dim", no_wrap=True)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Type", style="cyan")
    table.add_column("Status", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Flags")
    table.add_column("File", style="green")

    for record in records:
        flags = ",".join(
            flag
            for flag, on in (("gz", record.compressed), ("enc", record.encrypted))
            if on
        )
        table.add_row(
            _ts(record.started_at),
            record.id,
            record.backup_type,
            record.status,
            str(record.file_size or ""),
            flags,
            record.file_path or "",
        )

    console.print(table)
    console.print(f"\n[dim]Showing {len(records)} of {total} backup(s)[/dim]")
