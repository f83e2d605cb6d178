# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Backup pipeline: dump, compress, encrypt, checksum, catalog, restore.

Pipeline for a backup::

    IN_PROGRESS record -> dump -> [compress] -> [encrypt] -> checksum
        -> write artifact -> SUCCESS record

Any stage failure marks the record FAILED and removes whatever artifact
was written.  Restores verify the checksum of the stored bytes before
decrypting, and apply the dump as one all-or-nothing batch.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from typing import Any

from vigil.audit.events import Actor, AuditEntry
from vigil.audit.recorder import AuditRecorder
from vigil.backup.artifacts import ArtifactStore, checksum
from vigil.backup.catalog import BackupCatalog
from vigil.backup.codec import DumpHeader, DumpKind, decode_dump, encode_dump, to_mutations
from vigil.backup.compression import Compressor, GzipCompressor
from vigil.backup.models import BackupOptions, BackupRecord, RestoreReport
from vigil.core.clock import Clock, to_iso, utc_now
from vigil.core.constants import AuditAction, BackupStatus, BackupType, ResourceType
from vigil.core.exceptions import (
    BackupError,
    IntegrityError,
    NotFoundError,
    OperationRefusedError,
)
from vigil.crypto.cipher import CipherService
from vigil.storage.backend import DataStore
from vigil.storage.schema import BACKUP_TABLES, dependency_order, get_collection

logger = logging.getLogger("vigil.backup")


class BackupProvider(ABC):
    """Capability interface for anything that can back up and restore the store."""

    @abstractmethod
    async def create_full(
        self, requester: Actor, options: BackupOptions | None = None
    ) -> BackupRecord: ...

    @abstractmethod
    async def create_incremental(
        self, requester: Actor, options: BackupOptions | None = None
    ) -> BackupRecord: ...

    @abstractmethod
    async def restore(
        self,
        backup_id: str,
        requester: Actor,
        *,
        tables: list[str] | None = None,
        confirm_destruction: bool = False,
    ) -> RestoreReport: ...


class BackupOrchestrator(BackupProvider):
    """Produces and restores encrypted, integrity-checked backups."""

    def __init__(
        self,
        store: DataStore,
        catalog: BackupCatalog,
        artifacts: ArtifactStore,
        recorder: AuditRecorder,
        *,
        cipher: CipherService | None = None,
        compressor: Compressor | None = None,
        tables: list[str] | tuple[str, ...] | None = None,
        stale_after: timedelta = timedelta(hours=6),
        clock: Clock = utc_now,
    ) -> None:
        self._store = store
        self._catalog = catalog
        self._artifacts = artifacts
        self._recorder = recorder
        self._cipher = cipher
        self._compressor = compressor or GzipCompressor()
        self._tables = dependency_order(list(tables or BACKUP_TABLES))
        for table in self._tables:
            get_collection(table)
        self._stale_after = stale_after
        self._clock = clock

    # ------------------------------------------------------------------
    # Backups
    # ------------------------------------------------------------------

    async def create_full(
        self, requester: Actor, options: BackupOptions | None = None
    ) -> BackupRecord:
        options = options or BackupOptions()
        record = await self._run(BackupType.FULL, "full", requester, options, since=None)
        if record.status == BackupStatus.SUCCESS:
            await self.purge_expired(options.retention_days)
        return record

    async def create_incremental(
        self, requester: Actor, options: BackupOptions | None = None
    ) -> BackupRecord:
        """Back up rows changed since the last successful backup began.

        Falls back to a full backup when no successful backup exists.
        """
        options = options or BackupOptions()
        previous = await self._catalog.latest_success()
        if previous is None:
            logger.info("No successful backup in the catalog; running a full backup")
            return await self.create_full(requester, options)
        return await self._run(
            BackupType.INCREMENTAL,
            "incremental",
            requester,
            options,
            since=previous.started_at,
            base_id=previous.id,
        )

    async def _run(
        self,
        backup_type: BackupType,
        kind: DumpKind,
        requester: Actor,
        options: BackupOptions,
        *,
        since: datetime | None,
        base_id: str | None = None,
    ) -> BackupRecord:
        started = self._clock()
        metadata: dict[str, Any] = {
            "requested_by": requester.id,
            "compression": self._compressor.name if options.compress else None,
            "encrypted": options.encrypt,
            "retention_days": options.retention_days,
        }
        if since is not None:
            metadata["since"] = to_iso(since)
            metadata["base_backup_id"] = base_id
        record = await self._catalog.create(
            BackupRecord(backup_type=backup_type, started_at=started, metadata=metadata)
        )
        logger.info("Backup %s (%s) started", record.id, backup_type)

        path: str | None = None
        try:
            header, rows, skipped = await self._dump(kind, started, since)
            payload = encode_dump(header, rows)
            metadata["tables"] = list(header.tables)
            metadata["row_counts"] = {t: len(r) for t, r in rows.items()}
            if skipped:
                metadata["skipped_tables"] = skipped

            if options.compress:
                payload = self._compressor.compress(payload)

            key_id = None
            if options.encrypt:
                if self._cipher is None:
                    raise BackupError("Encryption requested but no cipher is configured")
                payload = self._cipher.encrypt_bytes(payload)
                key_id = self._cipher.key_id

            digest = checksum(payload)
            path = await self._artifacts.write(self._artifact_name(record, options), payload)

            finished = await self._catalog.finish(
                record.id,
                {
                    "status": BackupStatus.SUCCESS,
                    "file_path": path,
                    "file_size": len(payload),
                    "checksum": digest,
                    "encryption_key_id": key_id,
                    "completed_at": self._clock(),
                    "metadata": metadata,
                },
            )
            if not finished:
                raise BackupError("Backup record was closed by another process")
        except Exception as exc:
            logger.exception("Backup %s failed", record.id)
            if path is not None:
                await self._artifacts.delete(path)
            await self._catalog.finish(
                record.id,
                {
                    "status": BackupStatus.FAILED,
                    "file_path": None,
                    "error_message": str(exc) or type(exc).__name__,
                    "completed_at": self._clock(),
                    "metadata": metadata,
                },
            )
            result = await self._require(record.id)
            await self._audit_backup(requester, result, success=False)
            return result

        result = await self._require(record.id)
        logger.info(
            "Backup %s completed: %d bytes, %d rows",
            result.id,
            result.file_size or 0,
            sum(metadata["row_counts"].values()),
        )
        await self._audit_backup(requester, result, success=True)
        return result

    async def _dump(
        self, kind: DumpKind, started: datetime, since: datetime | None
    ) -> tuple[DumpHeader, dict[str, list[dict[str, Any]]], list[str]]:
        rows: dict[str, list[dict[str, Any]]] = {}
        skipped: list[str] = []
        for table in self._tables:
            if since is None:
                rows[table] = await self._store.fetch_all(table, order_by="id")
                continue
            change_column = get_collection(table).change_column
            if change_column is None:
                skipped.append(table)
                continue
            rows[table] = await self._store.fetch_all(
                table, {f"{change_column}__gte": since}, order_by="id"
            )
        header = DumpHeader(
            kind=kind,
            tables=tuple(rows),
            created_at=to_iso(started),
            since=to_iso(since) if since is not None else None,
        )
        return header, rows, skipped

    def _artifact_name(self, record: BackupRecord, options: BackupOptions) -> str:
        stamp = record.started_at.strftime("%Y%m%dT%H%M%S%fZ")
        kind = record.backup_type.lower()
        name = f"vigil-{kind}-backup-{stamp}-{record.id[:8]}.jsonl"
        if options.compress:
            name += self._compressor.suffix
        if options.encrypt:
            name += ".enc"
        return name

    async def _audit_backup(
        self, requester: Actor, record: BackupRecord, *, success: bool
    ) -> None:
        await self._recorder.record(
            AuditEntry.by(
                requester,
                action=AuditAction.BACKUP,
                resource_type=ResourceType.BACKUP,
                resource_id=record.id,
                success=success,
                error_message=record.error_message,
                metadata={
                    "backup_type": record.backup_type,
                    "file_size": record.file_size,
                    "checksum": record.checksum,
                    "encryption_key_id": record.encryption_key_id,
                    "row_counts": record.metadata.get("row_counts", {}),
                },
            )
        )

    # ------------------------------------------------------------------
    # Restore
    # ------------------------------------------------------------------

    async def restore(
        self,
        backup_id: str,
        requester: Actor,
        *,
        tables: list[str] | None = None,
        confirm_destruction: bool = False,
    ) -> RestoreReport:
        """Replay a backup over live data.

        Refuses outright unless *confirm_destruction* is set.  The stored
        bytes are checked against the catalogued checksum before anything
        is decrypted or written.
        """
        if not confirm_destruction:
            logger.warning("Restore of %s refused: destruction not confirmed", backup_id)
            raise OperationRefusedError(
                "Restore overwrites live data; pass confirm_destruction=True to proceed"
            )
        if tables is not None:
            unknown = sorted(set(tables) - set(BACKUP_TABLES))
            if unknown:
                raise BackupError(f"Tables cannot be restored: {', '.join(unknown)}")

        record = await self._catalog.get(backup_id)
        if record is None:
            raise NotFoundError(f"Backup not found: {backup_id}")
        if record.status != BackupStatus.SUCCESS or not record.file_path:
            raise BackupError(f"Backup {backup_id} is {record.status} and cannot be restored")

        data = await self._artifacts.read(record.file_path)
        actual = checksum(data)
        if actual != record.checksum:
            logger.error(
                "Integrity check failed for backup %s: expected %s, got %s",
                backup_id,
                record.checksum,
                actual,
            )
            raise IntegrityError(
                f"Backup {backup_id} does not match its catalogued checksum"
            )

        if record.encrypted:
            if self._cipher is None:
                raise BackupError("Backup is encrypted but no cipher is configured")
            if self._cipher.key_id != record.encryption_key_id:
                logger.warning(
                    "Backup %s was encrypted under key %s; current key is %s",
                    backup_id,
                    record.encryption_key_id,
                    self._cipher.key_id,
                )
            data = self._cipher.decrypt_bytes(data)
        if record.compressed:
            data = self._compressor.decompress(data)

        header, ops = decode_dump(data)
        mutations, scope = to_mutations(header, ops, tables)
        applied = await self._store.apply_batch(mutations)

        report = RestoreReport(
            backup_id=backup_id,
            backup_type=record.backup_type,
            tables=scope,
            rows_applied=applied,
            restored_at=self._clock(),
        )
        logger.info("Restored backup %s: %d rows across %s", backup_id, applied, scope)
        await self._recorder.record(
            AuditEntry.by(
                requester,
                action=AuditAction.RESTORE,
                resource_type=ResourceType.BACKUP,
                resource_id=backup_id,
                metadata={
                    "backup_type": record.backup_type,
                    "tables": scope,
                    "requested_tables": tables,
                    "rows_applied": applied,
                },
            )
        )
        return report

    # ------------------------------------------------------------------
    # Catalog maintenance
    # ------------------------------------------------------------------

    async def history(
        self,
        *,
        status: BackupStatus | None = None,
        backup_type: BackupType | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[BackupRecord], int]:
        return await self._catalog.list_records(
            status=status, backup_type=backup_type, limit=limit, offset=offset
        )

    async def purge_expired(self, retention_days: int) -> int:
        """Drop catalog entries (and artifacts) that finished over *retention_days* ago."""
        cutoff = self._clock() - timedelta(days=retention_days)
        expired = await self._catalog.completed_before(cutoff)
        for record in expired:
            if record.file_path:
                await self._artifacts.delete(record.file_path)
        removed = await self._catalog.delete([r.id for r in expired])
        if removed:
            logger.info("Purged %d backups older than %d days", removed, retention_days)
        return removed

    async def reconcile(self) -> list[str]:
        """Mark backups stuck IN_PROGRESS past the stale threshold as FAILED."""
        cutoff = self._clock() - self._stale_after
        stale = await self._catalog.started_before(cutoff)
        failed: list[str] = []
        for record in stale:
            closed = await self._catalog.finish(
                record.id,
                {
                    "status": BackupStatus.FAILED,
                    "file_path": None,
                    "error_message": "Backup did not complete; marked failed by reconciliation",
                    "completed_at": self._clock(),
                },
            )
            if closed:
                failed.append(record.id)
                logger.warning("Backup %s reconciled to FAILED", record.id)
        return failed

    async def _require(self, record_id: str) -> BackupRecord:
        record = await self._catalog.get(record_id)
        if record is None:
            raise NotFoundError(f"Backup not found: {record_id}")
        return record
