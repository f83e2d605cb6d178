# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Database connection management.

Connections are returned to the caller rather than cached at module level;
whoever opens a store owns it and closes it.
"""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from vigil.core.exceptions import StorageError
from vigil.storage.migrations import run_migrations
from vigil.storage.sqlite_backend import SQLiteDataStore


async def init_db(
    db_path: Path | str = "vigil.db",
    *,
    auto_migrate: bool = True,
) -> aiosqlite.Connection:
    """Open a connection, optionally run migrations, and return it.

    The connection runs in autocommit mode with WAL journaling and foreign
    key enforcement enabled.
    """
    db: aiosqlite.Connection | None = None
    try:
        db = await aiosqlite.connect(str(db_path), isolation_level=None)
        db.row_factory = aiosqlite.Row

        # Enable WAL mode for concurrent read performance
        await db.execute("PRAGMA journal_mode=WAL")
        await db.execute("PRAGMA foreign_keys=ON")
        await db.execute("PRAGMA busy_timeout=5000")

        if auto_migrate:
            await run_migrations(db)

        return db
    except Exception as exc:
        if db is not None:
            await db.close()
        msg = f"Failed to initialize database at {db_path}: {exc}"
        raise StorageError(msg) from exc


async def open_store(
    db_path: Path | str = "vigil.db",
    *,
    auto_migrate: bool = True,
) -> SQLiteDataStore:
    """Return a ready-to-use :class:`SQLiteDataStore`."""
    conn = await init_db(db_path, auto_migrate=auto_migrate)
    return SQLiteDataStore(conn)
