# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Abstract data store interface used by every engine component.

The store is the only shared mutable resource.  Implementations must give
per-row atomicity for single writes; :meth:`DataStore.insert_unless_exists`
and :meth:`DataStore.apply_batch` are the two places where a stronger
guarantee is required.
"""

from __future__ import annotations

import abc
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Literal

from vigil.storage.query import Filters


@dataclass(frozen=True, slots=True)
class Mutation:
    """One step of an all-or-nothing batch.

    ``upsert`` writes ``rows`` keyed by ``id``; ``delete`` removes rows
    matching ``filters`` (an empty filter removes every row).
    """

    kind: Literal["upsert", "delete"]
    collection: str
    rows: tuple[Mapping[str, Any], ...] = ()
    filters: Mapping[str, Any] = field(default_factory=dict)


class DataStore(abc.ABC):
    """Collection-oriented async store.

    Rows are plain dicts.  JSON and boolean columns declared in
    :mod:`vigil.storage.schema` are decoded on read.
    """

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def query(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> tuple[list[dict[str, Any]], int]:
        """Return ``(rows, total_matching)``; *total* ignores limit/offset."""

    @abc.abstractmethod
    async def fetch_all(
        self,
        collection: str,
        filters: Filters | None = None,
        *,
        order_by: str | Sequence[str] | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return matching rows without computing a total."""

    @abc.abstractmethod
    async def count(self, collection: str, filters: Filters | None = None) -> int:
        """Return the number of rows matching *filters*."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def insert(self, collection: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert rows; returns the number inserted."""

    @abc.abstractmethod
    async def upsert(self, collection: str, rows: Sequence[Mapping[str, Any]]) -> int:
        """Insert rows, replacing column values of rows whose ``id`` exists."""

    @abc.abstractmethod
    async def update(
        self, collection: str, filters: Filters, patch: Mapping[str, Any]
    ) -> int:
        """Apply *patch* to matching rows; returns affected row count."""

    @abc.abstractmethod
    async def delete(self, collection: str, filters: Filters) -> int:
        """Delete matching rows; returns affected row count."""

    @abc.abstractmethod
    async def insert_unless_exists(
        self, collection: str, row: Mapping[str, Any], conflict: Filters
    ) -> bool:
        """Atomically insert *row* only if no row matches *conflict*.

        Returns ``True`` when the row was inserted.
        """

    @abc.abstractmethod
    async def apply_batch(self, mutations: Sequence[Mutation]) -> int:
        """Apply *mutations* in order, all or nothing.

        Returns the number of rows written or removed.
        """

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @abc.abstractmethod
    async def close(self) -> None:
        """Release the underlying connection."""

    @property
    @abc.abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier, e.g. ``'sqlite'``."""
