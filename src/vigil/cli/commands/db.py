# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database management commands."""

from __future__ import annotations

import asyncio

import typer

app = typer.Typer()


@app.command()
def init() -> None:
    """Create the SQLite database and apply every migration."""
    asyncio.run(_init_db())


async def _init_db() -> None:
    from vigil.core.config import get_settings
    from vigil.storage.database import init_db
    from vigil.storage.migrations import get_current_version

    settings = get_settings()
    typer.echo(f"Initializing database at {settings.db_path}...")
    db = await init_db(settings.db_path)
    try:
        version = await get_current_version(db)
    finally:
        await db.close()
    typer.echo(f"Database initialized (schema version {version}).")


@app.command()
def migrate() -> None:
    """Apply pending database migrations.

    Shows the current schema version and any pending migrations,
    then applies them in order.
    """
    asyncio.run(_migrate_db())


async def _migrate_db() -> None:
    from vigil.core.config import get_settings
    from vigil.storage.database import init_db
    from vigil.storage.migrations import (
        get_current_version,
        get_pending_migrations,
        run_migrations,
    )

    settings = get_settings()
    db = await init_db(settings.db_path, auto_migrate=False)

    try:
        current = await get_current_version(db)
        pending = await get_pending_migrations(db)

        typer.echo(f"Database: {settings.db_path}")
        typer.echo(f"Current schema version: {current}")

        if not pending:
            typer.echo("No pending migrations.")
            return

        typer.echo(f"Pending migrations: {len(pending)}")
        for m in pending:
            typer.echo(f"  {m.version:03d}: {m.name}")

        typer.echo()
        for m in await run_migrations(db):
            typer.echo(f"Applied migration {m.version:03d}: {m.name}")

        typer.echo(f"\nSchema version is now: {await get_current_version(db)}")
    finally:
        await db.close()


@app.command()
def stats() -> None:
    """Show row counts for every managed table."""
    asyncio.run(_show_stats())


async def _show_stats() -> None:
    from vigil.core.config import get_settings
    from vigil.storage.database import open_store
    from vigil.storage.schema import COLLECTIONS

    settings = get_settings()
    store = await open_store(settings.db_path)

    try:
        typer.echo(f"Database: {settings.db_path}")
        typer.echo()
        for name in COLLECTIONS:
            typer.echo(f"  {name}: {await store.count(name)} rows")
    finally:
        await store.close()
