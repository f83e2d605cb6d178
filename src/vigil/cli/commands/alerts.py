# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for anomaly scanning and security alert triage."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

app = typer.Typer()

ActorIdOption = Annotated[
    str, typer.Option("--actor-id", help="Id of the operator performing the action")
]
ActorEmailOption = Annotated[
    str | None, typer.Option("--actor-email", help="Email of the operator")
]


@app.command()
def scan(
    hours: Annotated[
        int | None,
        typer.Option("--hours", help="Trailing window to scan (defaults to configuration)"),
    ] = None,
) -> None:
    """Run every anomaly rule once and report the alerts raised."""
    asyncio.run(_async_scan(hours))


async def _async_scan(hours: int | None) -> None:
    from datetime import timedelta

    from vigil.cli.formatters.console import console, format_alerts
    from vigil.engine import open_engine

    async with open_engine() as engine:
        window = timedelta(hours=hours) if hours else None
        alerts = await engine.detector.scan(window)

    if not alerts:
        console.print("[green]No new anomalies detected.[/green]")
        return
    format_alerts(alerts, len(alerts))


@app.command(name="list")
def alerts_list(
    status: Annotated[
        str | None,
        typer.Option("--status", "-s", help="ACTIVE | INVESTIGATING | RESOLVED | FALSE_POSITIVE"),
    ] = None,
    severity: Annotated[
        str | None,
        typer.Option("--severity", help="CRITICAL | HIGH | MEDIUM | LOW"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of alerts to show"),
    ] = 50,
) -> None:
    """List security alerts, newest first."""
    asyncio.run(_async_list(status, severity, limit))


async def _async_list(status: str | None, severity: str | None, limit: int) -> None:
    from vigil.cli.formatters.console import format_alerts
    from vigil.core.constants import AlertStatus, Severity
    from vigil.engine import open_engine

    try:
        status_filter = AlertStatus(status.upper()) if status else None
        severity_filter = Severity(severity.upper()) if severity else None
    except ValueError as exc:
        typer.echo(f"Invalid filter: {exc}", err=True)
        raise typer.Exit(1) from exc

    async with open_engine() as engine:
        alerts, total = await engine.detector.list_alerts(
            status=status_filter, severity=severity_filter, limit=limit
        )
    format_alerts(alerts, total)


@app.command()
def resolve(
    alert_id: Annotated[str, typer.Argument(help="Alert id")],
    notes: Annotated[str, typer.Option("--notes", help="Resolution notes")] = "",
    false_positive: Annotated[
        bool, typer.Option("--false-positive", help="Close as FALSE_POSITIVE")
    ] = False,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Close an alert as RESOLVED (or FALSE_POSITIVE)."""
    asyncio.run(_async_resolve(alert_id, notes, false_positive, actor_id, actor_email))


async def _async_resolve(
    alert_id: str,
    notes: str,
    false_positive: bool,
    actor_id: str,
    actor_email: str | None,
) -> None:
    from vigil.audit.events import Actor
    from vigil.core.constants import AlertStatus
    from vigil.core.exceptions import InvalidTransitionError, NotFoundError
    from vigil.engine import open_engine

    status = AlertStatus.FALSE_POSITIVE if false_positive else AlertStatus.RESOLVED
    async with open_engine() as engine:
        try:
            alert = await engine.detector.resolve_alert(
                alert_id, Actor(id=actor_id, email=actor_email), notes, status
            )
        except (NotFoundError, InvalidTransitionError) as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc
    typer.echo(f"Alert {alert.id}: {alert.status}")


@app.command()
def investigate(
    alert_id: Annotated[str, typer.Argument(help="Alert id")],
    notes: Annotated[str | None, typer.Option("--notes", help="Investigation notes")] = None,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Mark an ACTIVE alert as under investigation."""
    asyncio.run(_async_investigate(alert_id, notes, actor_id, actor_email))


async def _async_investigate(
    alert_id: str, notes: str | None, actor_id: str, actor_email: str | None
) -> None:
    from vigil.audit.events import Actor
    from vigil.core.exceptions import InvalidTransitionError, NotFoundError
    from vigil.engine import open_engine

    async with open_engine() as engine:
        try:
            alert = await engine.detector.investigate_alert(
                alert_id, Actor(id=actor_id, email=actor_email), notes
            )
        except (NotFoundError, InvalidTransitionError) as exc:
            typer.echo(str(exc), err=True)
            raise typer.Exit(1) from exc
    typer.echo(f"Alert {alert.id}: {alert.status}")


@app.command()
def metrics(
    hours: Annotated[int, typer.Option("--hours", help="Trailing window in hours")] = 24,
) -> None:
    """Show activity counters and the unusual-activity score."""
    asyncio.run(_async_metrics(hours))


async def _async_metrics(hours: int) -> None:
    from datetime import timedelta

    from vigil.cli.formatters.console import format_metrics
    from vigil.engine import open_engine

    async with open_engine() as engine:
        result = await engine.detector.get_metrics(timedelta(hours=hours))
    format_metrics(result)
