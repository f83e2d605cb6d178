# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Append-only audit trail backed by the ``audit_logs`` collection.

Recording has fire-and-forget semantics: a failure to persist an entry is
logged but never propagates, so auditing cannot break the operation it
accompanies.  Reads and purges surface store errors normally.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from vigil.audit.events import Actor, AuditEntry, AuditFilter
from vigil.core.clock import Clock, utc_now
from vigil.core.constants import AuditAction, ResourceType
from vigil.storage.backend import DataStore

_logger = logging.getLogger("vigil.audit")

COLLECTION = "audit_logs"


class AuditRecorder:
    """Records and retrieves :class:`AuditEntry` facts.

    When *log_dir* is given, every entry is also mirrored as one JSON line
    to a daily ``audit-YYYY-MM-DD.jsonl`` file.
    """

    def __init__(
        self,
        store: DataStore,
        *,
        clock: Clock = utc_now,
        log_dir: Path | None = None,
    ) -> None:
        self._store = store
        self._clock = clock
        self._log_dir = log_dir
        if self._log_dir is not None:
            self._log_dir.mkdir(parents=True, exist_ok=True)

    async def record(self, entry: AuditEntry) -> AuditEntry | None:
        """Persist *entry*; returns it stamped, or ``None`` if the write failed."""
        try:
            if entry.timestamp is None:
                entry = entry.model_copy(update={"timestamp": self._clock()})
            await self._store.insert(COLLECTION, [entry.to_row()])
        except Exception:
            _logger.exception(
                "Failed to persist audit entry action=%s resource=%s",
                entry.action,
                entry.resource_type,
            )
            return None

        self._write_json_log(entry)
        _logger.debug(
            "audit entry=%s action=%s actor=%s resource=%s/%s",
            entry.id,
            entry.action,
            entry.user_id,
            entry.resource_type,
            entry.resource_id,
        )
        return entry

    def _write_json_log(self, entry: AuditEntry) -> None:
        """Append a single JSON line to the daily audit log file."""
        if self._log_dir is None or entry.timestamp is None:
            return
        try:
            day = entry.timestamp.strftime("%Y-%m-%d")
            log_file = self._log_dir / f"audit-{day}.jsonl"
            line = json.dumps(entry.model_dump(mode="json"), default=str)
            with log_file.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        except Exception:
            _logger.exception("Failed to write JSON audit log")

    # -----------------------------------------------------------------
    # Retrieval
    # -----------------------------------------------------------------

    async def query(
        self,
        audit_filter: AuditFilter | None = None,
        *,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[AuditEntry], int]:
        """Return one page of matching entries, newest first, and the total."""
        filters = audit_filter.to_filters() if audit_filter else {}
        rows, total = await self._store.query(
            COLLECTION,
            filters,
            order_by=["-timestamp", "-id"],
            limit=limit,
            offset=offset,
        )
        return [AuditEntry.from_row(r) for r in rows], total

    async def fetch_all(self, audit_filter: AuditFilter) -> list[AuditEntry]:
        """Return every matching entry, oldest first."""
        rows = await self._store.fetch_all(
            COLLECTION, audit_filter.to_filters(), order_by="timestamp"
        )
        return [AuditEntry.from_row(r) for r in rows]

    async def count(self, audit_filter: AuditFilter | None = None) -> int:
        return await self._store.count(
            COLLECTION, audit_filter.to_filters() if audit_filter else {}
        )

    async def distinct_actors(self, since: datetime) -> int:
        """Return how many distinct user ids appear at or after *since*."""
        rows = await self._store.fetch_all(
            COLLECTION, {"timestamp__gte": since, "user_id__isnull": False}
        )
        return len({r["user_id"] for r in rows})

    async def purge_older_than(self, days: int) -> int:
        """Delete entries whose timestamp is more than *days* days old."""
        if days <= 0:
            raise ValueError("Audit retention must be a positive number of days")
        cutoff = self._clock() - timedelta(days=days)
        deleted = await self._store.delete(COLLECTION, {"timestamp__lt": cutoff})
        if deleted:
            _logger.info("Purged %d audit entries older than %d days", deleted, days)
        return deleted

    # -----------------------------------------------------------------
    # Convenience recorders for common entry kinds
    # -----------------------------------------------------------------

    async def log_auth(
        self,
        action: AuditAction,
        *,
        actor: Actor | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        success: bool = True,
        error_message: str | None = None,
    ) -> AuditEntry | None:
        """Log a login, logout, or failed login."""
        return await self.record(
            AuditEntry.by(
                actor,
                action=action,
                resource_type=ResourceType.AUTH,
                ip_address=ip_address,
                user_agent=user_agent,
                success=success,
                error_message=error_message,
            )
        )

    async def log_sensitive_access(
        self,
        actor: Actor,
        resource_type: ResourceType,
        resource_id: str,
        *,
        fields: list[str] | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuditEntry | None:
        """Log a read of sensitive personal or clinical data."""
        return await self.record(
            AuditEntry.by(
                actor,
                action=AuditAction.SENSITIVE_DATA_ACCESS,
                resource_type=resource_type,
                resource_id=resource_id,
                ip_address=ip_address,
                user_agent=user_agent,
                metadata={"fields": fields or []},
            )
        )

    async def log_export(
        self,
        actor: Actor,
        resource_type: ResourceType,
        *,
        record_count: int,
        export_format: str = "json",
        filters: dict[str, Any] | None = None,
        ip_address: str | None = None,
    ) -> AuditEntry | None:
        """Log a bulk data export."""
        return await self.record(
            AuditEntry.by(
                actor,
                action=AuditAction.EXPORT,
                resource_type=resource_type,
                ip_address=ip_address,
                metadata={
                    "record_count": record_count,
                    "format": export_format,
                    "filters": filters or {},
                },
            )
        )
