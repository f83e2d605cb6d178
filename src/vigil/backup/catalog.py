# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Repository for the ``backup_logs`` catalog."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from vigil.backup.models import BackupRecord
from vigil.core.constants import BackupStatus, BackupType
from vigil.storage.backend import DataStore

COLLECTION = "backup_logs"


class BackupCatalog:
    def __init__(self, store: DataStore) -> None:
        self._store = store

    async def create(self, record: BackupRecord) -> BackupRecord:
        await self._store.insert(COLLECTION, [record.to_row()])
        return record

    async def finish(self, record_id: str, patch: dict[str, Any]) -> bool:
        """Apply a terminal patch only while the record is still IN_PROGRESS."""
        affected = await self._store.update(
            COLLECTION,
            {"id": record_id, "status": BackupStatus.IN_PROGRESS},
            patch,
        )
        return affected > 0

    async def get(self, record_id: str) -> BackupRecord | None:
        rows = await self._store.fetch_all(COLLECTION, {"id": record_id}, limit=1)
        return BackupRecord.from_row(rows[0]) if rows else None

    async def latest_success(self) -> BackupRecord | None:
        rows = await self._store.fetch_all(
            COLLECTION,
            {"status": BackupStatus.SUCCESS},
            order_by=["-completed_at", "-started_at"],
            limit=1,
        )
        return BackupRecord.from_row(rows[0]) if rows else None

    async def list_records(
        self,
        *,
        status: BackupStatus | None = None,
        backup_type: BackupType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[BackupRecord], int]:
        filters: dict[str, Any] = {}
        if status is not None:
            filters["status"] = status
        if backup_type is not None:
            filters["backup_type"] = backup_type
        rows, total = await self._store.query(
            COLLECTION,
            filters,
            order_by=["-started_at", "-id"],
            limit=limit,
            offset=offset,
        )
        return [BackupRecord.from_row(r) for r in rows], total

    async def completed_before(self, cutoff: datetime) -> list[BackupRecord]:
        """SUCCESS and FAILED records that finished before *cutoff*."""
        rows = await self._store.fetch_all(
            COLLECTION,
            {
                "status__in": [BackupStatus.SUCCESS, BackupStatus.FAILED],
                "completed_at__lt": cutoff,
            },
        )
        return [BackupRecord.from_row(r) for r in rows]

    async def started_before(
        self, cutoff: datetime, status: BackupStatus = BackupStatus.IN_PROGRESS
    ) -> list[BackupRecord]:
        rows = await self._store.fetch_all(
            COLLECTION, {"status": status, "started_at__lt": cutoff}
        )
        return [BackupRecord.from_row(r) for r in rows]

    async def delete(self, record_ids: list[str]) -> int:
        if not record_ids:
            return 0
        return await self._store.delete(COLLECTION, {"id__in": record_ids})
