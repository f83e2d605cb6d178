# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Backup catalog record and pipeline options."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from vigil.core.clock import parse_iso, to_iso
from vigil.core.config import Settings
from vigil.core.constants import BackupStatus, BackupType

_TIMESTAMPS = ("started_at", "completed_at")


class BackupOptions(BaseModel):
    compress: bool = True
    encrypt: bool = True
    retention_days: int = Field(default=30, ge=1)

    @classmethod
    def from_settings(cls, settings: Settings) -> BackupOptions:
        return cls(
            compress=settings.backup_compress,
            encrypt=settings.backup_encrypt,
            retention_days=settings.backup_retention_days,
        )


class BackupRecord(BaseModel):
    """One row of the ``backup_logs`` catalog.

    ``IN_PROGRESS -> SUCCESS | FAILED``.  A SUCCESS record always carries
    the checksum of the artifact exactly as stored; a FAILED record never
    carries a file path.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    backup_type: BackupType
    status: BackupStatus = BackupStatus.IN_PROGRESS
    file_path: str | None = None
    file_size: int | None = None
    checksum: str | None = None
    encryption_key_id: str | None = None
    started_at: datetime
    completed_at: datetime | None = None
    error_message: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def compressed(self) -> bool:
        return bool(self.metadata.get("compression"))

    @property
    def encrypted(self) -> bool:
        return self.encryption_key_id is not None

    def to_row(self) -> dict[str, Any]:
        row = self.model_dump()
        for column in _TIMESTAMPS:
            value = row[column]
            row[column] = to_iso(value) if value is not None else None
        return row

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> BackupRecord:
        data = dict(row)
        for column in _TIMESTAMPS:
            data[column] = parse_iso(data.get(column))
        data["metadata"] = data.get("metadata") or {}
        return cls.model_validate(data)


class RestoreReport(BaseModel):
    backup_id: str
    backup_type: BackupType
    tables: list[str]
    rows_applied: int
    restored_at: datetime
