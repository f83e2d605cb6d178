# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Storage layer -- data store interface, SQLite backend, and migrations."""

from vigil.storage.backend import DataStore, Mutation
from vigil.storage.database import init_db, open_store
from vigil.storage.migrations import run_migrations
from vigil.storage.sqlite_backend import SQLiteDataStore

__all__ = [
    "DataStore",
    "Mutation",
    "SQLiteDataStore",
    "init_db",
    "open_store",
    "run_migrations",
]
