# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for querying and pruning the audit trail."""

from __future__ import annotations

import asyncio
from typing import Annotated

import typer

app = typer.Typer()


@app.command(name="list")
def audit_list(
    action: Annotated[
        str | None,
        typer.Option("--action", "-a", help="Filter by action (LOGIN, EXPORT, ...)"),
    ] = None,
    user_id: Annotated[
        str | None,
        typer.Option("--user", "-u", help="Filter by user id"),
    ] = None,
    resource_type: Annotated[
        str | None,
        typer.Option("--resource", "-r", help="Filter by resource type"),
    ] = None,
    start_date: Annotated[
        str | None,
        typer.Option("--start", help="Start date (ISO format, inclusive)"),
    ] = None,
    end_date: Annotated[
        str | None,
        typer.Option("--end", help="End date (ISO format, exclusive)"),
    ] = None,
    limit: Annotated[
        int,
        typer.Option("--limit", "-n", help="Maximum number of entries to show"),
    ] = 50,
) -> None:
    """List audit entries, newest first."""
    asyncio.run(
        _async_audit_list(action, user_id, resource_type, start_date, end_date, limit)
    )


async def _async_audit_list(
    action: str | None,
    user_id: str | None,
    resource_type: str | None,
    start_date: str | None,
    end_date: str | None,
    limit: int,
) -> None:
    from rich.console import Console
    from rich.table import Table

    from vigil.audit.events import AuditFilter
    from vigil.audit.recorder import AuditRecorder
    from vigil.core.clock import parse_iso, to_iso
    from vigil.core.config import get_settings
    from vigil.core.constants import AuditAction, ResourceType
    from vigil.storage.database import open_store

    try:
        audit_filter = AuditFilter(
            user_id=user_id,
            action=AuditAction(action.upper()) if action else None,
            resource_type=ResourceType(resource_type.upper()) if resource_type else None,
            start=parse_iso(start_date),
            end=parse_iso(end_date),
        )
    except ValueError as exc:
        typer.echo(f"Invalid filter: {exc}", err=True)
        raise typer.Exit(1) from exc

    settings = get_settings()
    store = await open_store(settings.db_path)

    try:
        entries, total = await AuditRecorder(store).query(audit_filter, limit=limit)

        console = Console()

        if not entries:
            console.print("[dim]No audit entries found.[/dim]")
            return

        table = Table(title="Audit Trail")
        table.add_column("Timestamp", style="dim", no_wrap=True)
        table.add_column("Action", style="cyan")
        table.add_column("User", style="yellow")
        table.add_column("Resource", style="green")
        table.add_column("OK", style="bold")
        table.add_column("Entry ID", style="dim", no_wrap=True)

        for entry in entries:
            resource = entry.resource_type
            if entry.resource_id:
                resource = f"{resource}/{entry.resource_id}"
            table.add_row(
                to_iso(entry.timestamp) if entry.timestamp else "",
                entry.action,
                entry.user_email or entry.user_id or "",
                resource,
                "yes" if entry.success else "no",
                entry.id[:12] + "...",
            )

        console.print(table)
        console.print(f"\n[dim]Showing {len(entries)} of {total} entries[/dim]")
    finally:
        await store.close()


@app.command()
def purge(
    days: Annotated[
        int | None,
        typer.Option("--days", "-d", help="Delete entries older than this many days"),
    ] = None,
) -> None:
    """Delete audit entries past the retention period."""
    asyncio.run(_async_purge(days))


async def _async_purge(days: int | None) -> None:
    from vigil.audit.recorder import AuditRecorder
    from vigil.core.config import get_settings
    from vigil.storage.database import open_store

    settings = get_settings()
    days = days if days is not None else settings.audit_retention_days
    if days <= 0:
        typer.echo("--days must be positive", err=True)
        raise typer.Exit(1)

    store = await open_store(settings.db_path)
    try:
        removed = await AuditRecorder(store).purge_older_than(days)
    finally:
        await store.close()
    typer.echo(f"Purged {removed} audit entries older than {days} days.")
