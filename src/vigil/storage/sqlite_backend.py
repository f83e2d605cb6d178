# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""SQLite implementation of the abstract :class:`DataStore`.

Wraps an :mod:`aiosqlite` connection opened in autocommit mode, so every
single-statement write is independently durable.  Writes are serialised
through one lock so that :meth:`apply_batch` transactions never absorb
unrelated writes issued on the same connection.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import sqlite3
from collections.abc import AsyncIterator, Mapping, Sequence
from typing import Any

import aiosqlite

from vigil.core.exceptions import StorageError
from vigil.storage.backend import DataStore, Mutation
from vigil.storage.query import (
    Filters,
    compile_order,
    compile_where,
    encode_value,
    quote_identifier,
)
from vigil.storage.schema import get_collection


class SQLiteDataStore(DataStore):
    """Async SQLite store backed by an :class:`aiosqlite.Connection`."""

    def __init__(self, connection: aiosqlite.Connection) -> None:
        self._conn = connection
        self._write_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def query(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        rows = await self.fetch_all(
            collection, filters, order_by=order_by, limit=limit, offset=offset
        )
        total = await self.count(collection, filters)
        return rows, total

    async def fetch_all(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        table = self._table(collection)
        where, params = compile_where(filters)
        sql = f"SELECT * FROM {table}{where}{compile_order(order_by)}"  # noqa: S608
        if limit is not None or offset:
            sql += " LIMIT ? OFFSET ?"
            params.extend([limit if limit is not None else -1, offset])
        async with self._guard(collection):
            cursor = await self._conn.execute(sql, params)
            rows = await cursor.fetchall()
        return [self._decode(collection, row) for row in rows]

    async def count(self, collection: str, filters: Filters | None = None) -> int:
        table = self._table(collection)
        where, params = compile_where(filters)
        async with self._guard(collection):
            cursor = await self._conn.execute(
                f"SELECT COUNT(*) FROM {table}{where}",  # noqa: S608
                params,
            )
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def insert(self, collection: str, rows: Sequence[Mapping[str, Any]]) -> int:
        async with self._write_lock, self._guard(collection):
            for row in rows:
                await self._conn.execute(*self._insert_sql(collection, row))
        return len(rows)

    async def upsert(self, collection: str, rows: Sequence[Mapping[str, Any]]) -> int:
        async with self._write_lock, self._guard(collection):
            for row in rows:
                await self._conn.execute(*self._upsert_sql(collection, row))
        return len(rows)

    async def update(
        self, collection: str, filters: Filters, patch: Mapping[str, Any]
    ) -> int:
        if not patch:
            return 0
        table = self._table(collection)
        assignments = ", ".join(f"{quote_identifier(k)} = ?" for k in patch)
        values = [encode_value(v) for v in patch.values()]
        where, params = compile_where(filters)
        async with self._write_lock, self._guard(collection):
            cursor = await self._conn.execute(
                f"UPDATE {table} SET {assignments}{where}",  # noqa: S608
                values + params,
            )
        return cursor.rowcount

    async def delete(self, collection: str, filters: Filters) -> int:
        async with self._write_lock, self._guard(collection):
            cursor = await self._conn.execute(*self._delete_sql(collection, filters))
        return cursor.rowcount

    async def insert_unless_exists(
        self, collection: str, row: Mapping[str, Any], conflict: Filters
    ) -> bool:
        table = self._table(collection)
        columns = ", ".join(quote_identifier(c) for c in row)
        placeholders = ", ".join("?" for _ in row)
        where, params = compile_where(conflict)
        sql = (
            f"INSERT INTO {table} ({columns}) "  # noqa: S608
            f"SELECT {placeholders} "
            f"WHERE NOT EXISTS (SELECT 1 FROM {table}{where})"
        )
        async with self._write_lock, self._guard(collection):
            cursor = await self._conn.execute(
                sql, [encode_value(v) for v in row.values()] + params
            )
        return cursor.rowcount > 0

    async def apply_batch(self, mutations: Sequence[Mutation]) -> int:
        affected = 0
        async with self._write_lock, self._guard("batch"):
            await self._conn.execute("BEGIN IMMEDIATE")
            try:
                for mutation in mutations:
                    if mutation.kind == "upsert":
                        for row in mutation.rows:
                            await self._conn.execute(
                                *self._upsert_sql(mutation.collection, row)
                            )
                            affected += 1
                    elif mutation.kind == "delete":
                        cursor = await self._conn.execute(
                            *self._delete_sql(mutation.collection, mutation.filters)
                        )
                        affected += max(cursor.rowcount, 0)
                    else:
                        raise ValueError(f"Unknown mutation kind: {mutation.kind!r}")
                await self._conn.execute("COMMIT")
            except BaseException:
                await self._conn.execute("ROLLBACK")
                raise
        return affected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        await self._conn.close()

    @property
    def backend_name(self) -> str:
        return "sqlite"

    @property
    def raw_connection(self) -> aiosqlite.Connection:
        """Return the underlying :class:`aiosqlite.Connection`."""
        return self._conn

    # ------------------------------------------------------------------
    # SQL builders
    # ------------------------------------------------------------------

    def _insert_sql(self, collection: str, row: Mapping[str, Any]) -> tuple[str, list[Any]]:
        table = self._table(collection)
        columns = ", ".join(quote_identifier(c) for c in row)
        placeholders = ", ".join("?" for _ in row)
        return (
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",  # noqa: S608
            [encode_value(v) for v in row.values()],
        )

    def _upsert_sql(self, collection: str, row: Mapping[str, Any]) -> tuple[str, list[Any]]:
        if "id" not in row:
            raise StorageError(f"Upsert into {collection} requires an 'id' column")
        sql, params = self._insert_sql(collection, row)
        updates = [
            f"{quote_identifier(c)} = excluded.{quote_identifier(c)}"
            for c in row
            if c != "id"
        ]
        if updates:
            sql += ' ON CONFLICT("id") DO UPDATE SET ' + ", ".join(updates)
        else:
            sql += ' ON CONFLICT("id") DO NOTHING'
        return sql, params

    def _delete_sql(self, collection: str, filters: Filters) -> tuple[str, list[Any]]:
        table = self._table(collection)
        where, params = compile_where(filters)
        return f"DELETE FROM {table}{where}", params  # noqa: S608

    @staticmethod
    def _table(collection: str) -> str:
        get_collection(collection)
        return quote_identifier(collection)

    @staticmethod
    def _decode(collection: str, row: aiosqlite.Row) -> dict[str, Any]:
        info = get_collection(collection)
        data = dict(row)
        for column in info.json_columns:
            raw = data.get(column)
            if isinstance(raw, str):
                try:
                    data[column] = json.loads(raw)
                except json.JSONDecodeError:
                    data[column] = raw
        for column in info.bool_columns:
            if data.get(column) is not None:
                data[column] = bool(data[column])
        return data

    @contextlib.asynccontextmanager
    async def _guard(self, collection: str) -> AsyncIterator[None]:
        """Translate driver errors into :class:`StorageError`."""
        try:
            yield
        except sqlite3.Error as exc:
            raise StorageError(f"{collection}: {exc}") from exc
        except ValueError as exc:
            if "closed" in str(exc).lower() or "no active connection" in str(exc).lower():
                raise StorageError(f"{collection}: {exc}") from exc
            raise
