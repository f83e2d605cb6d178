# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""CLI commands for creating, listing and restoring backups."""

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
def full(
    no_compress: Annotated[bool, typer.Option("--no-compress", help="Skip gzip")] = False,
    no_encrypt: Annotated[bool, typer.Option("--no-encrypt", help="Skip encryption")] = False,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Back up every configured table."""
    asyncio.run(_async_create("FULL", no_compress, no_encrypt, actor_id, actor_email))


@app.command()
def incremental(
    no_compress: Annotated[bool, typer.Option("--no-compress", help="Skip gzip")] = False,
    no_encrypt: Annotated[bool, typer.Option("--no-encrypt", help="Skip encryption")] = False,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Back up rows changed since the last successful backup."""
    asyncio.run(
        _async_create("INCREMENTAL", no_compress, no_encrypt, actor_id, actor_email)
    )


async def _async_create(
    kind: str,
    no_compress: bool,
    no_encrypt: bool,
    actor_id: str,
    actor_email: str | None,
) -> None:
    from vigil.audit.events import Actor
    from vigil.backup.models import BackupOptions
    from vigil.cli.formatters.console import exit_for, format_operation_result
    from vigil.core.constants import BackupType
    from vigil.engine import open_engine

    async with open_engine() as engine:
        options = BackupOptions.from_settings(engine.settings)
        options = options.model_copy(
            update={
                "compress": options.compress and not no_compress,
                "encrypt": options.encrypt and not no_encrypt,
            }
        )
        result = await engine.create_backup(
            BackupType(kind), Actor(id=actor_id, email=actor_email), options
        )

    format_operation_result(result)
    exit_for(result)


@app.command()
def restore(
    backup_id: Annotated[str, typer.Argument(help="Backup id to restore")],
    tables: Annotated[
        str | None,
        typer.Option("--tables", "-t", help="Comma-separated subset of tables"),
    ] = None,
    confirm: Annotated[
        bool,
        typer.Option(
            "--confirm-destruction",
            help="Acknowledge that live rows in the restored tables are replaced",
        ),
    ] = False,
    actor_id: ActorIdOption = "cli",
    actor_email: ActorEmailOption = None,
) -> None:
    """Replay a backup over live data.  Refused without --confirm-destruction."""
    asyncio.run(_async_restore(backup_id, tables, confirm, actor_id, actor_email))


async def _async_restore(
    backup_id: str,
    tables_str: str | None,
    confirm: bool,
    actor_id: str,
    actor_email: str | None,
) -> None:
    from vigil.audit.events import Actor
    from vigil.cli.formatters.console import exit_for, format_operation_result
    from vigil.engine import open_engine

    tables = (
        [part.strip() for part in tables_str.split(",") if part.strip()]
        if tables_str
        else None
    )
    async with open_engine() as engine:
        result = await engine.restore(
            backup_id,
            Actor(id=actor_id, email=actor_email),
            tables=tables,
            confirm_destruction=confirm,
        )

    format_operation_result(result)
    exit_for(result)


@app.command(name="list")
def backup_list(
    status: Annotated[
        str | None, typer.Option("--status", "-s", help="IN_PROGRESS | SUCCESS | FAILED")
    ] = None,
    limit: Annotated[int, typer.Option("--limit", "-n", help="Maximum rows")] = 50,
) -> None:
    """Show the backup catalog, newest first."""
    asyncio.run(_async_list(status, limit))


async def _async_list(status: str | None, limit: int) -> None:
    from vigil.cli.formatters.console import format_backups
    from vigil.core.constants import BackupStatus
    from vigil.engine import open_engine

    try:
        status_filter = BackupStatus(status.upper()) if status else None
    except ValueError as exc:
        typer.echo(f"Invalid status: {status}", err=True)
        raise typer.Exit(1) from exc

    async with open_engine() as engine:
        records, total = await engine.backups.history(status=status_filter, limit=limit)
    format_backups(records, total)


@app.command()
def reconcile() -> None:
    """Mark backups stuck IN_PROGRESS past the stale threshold as FAILED."""
    asyncio.run(_async_reconcile())


async def _async_reconcile() -> None:
    from vigil.cli.formatters.console import format_operation_result
    from vigil.engine import open_engine
    from vigil.scheduler.jobs import MaintenanceTask

    async with open_engine() as engine:
        result = await engine.run_task(MaintenanceTask.BACKUP_RECONCILE)
    format_operation_result(result)
    for record_id in result.data.get("failed", []):
        typer.echo(f"  {record_id}")
