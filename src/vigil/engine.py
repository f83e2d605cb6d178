# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""ComplianceEngine -- builds every service from one Settings snapshot.

The engine is constructed per run and holds no process-wide state::

    async with open_engine() as engine:
        result = await engine.scan()
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncIterator
from datetime import timedelta
from pathlib import Path

from vigil.audit.events import Actor
from vigil.audit.recorder import AuditRecorder
from vigil.backup.artifacts import LocalArtifactStore
from vigil.backup.catalog import BackupCatalog
from vigil.backup.models import BackupOptions, BackupRecord
from vigil.backup.orchestrator import BackupOrchestrator
from vigil.core.clock import Clock, utc_now
from vigil.core.config import Settings, get_settings
from vigil.core.constants import BackupStatus, BackupType
from vigil.core.exceptions import VigilError
from vigil.crypto.cipher import CipherService
from vigil.monitoring.alerts import AlertStore
from vigil.monitoring.detector import AnomalyDetector
from vigil.monitoring.rules import DetectionThresholds
from vigil.results import OperationOutcome, OperationResult
from vigil.retention.engine import RetentionEngine
from vigil.retention.policies import RetentionPolicy, policies_from_settings
from vigil.retention.requests import RequestStore
from vigil.scheduler.jobs import MaintenanceTask
from vigil.storage.backend import DataStore
from vigil.storage.database import open_store

logger = logging.getLogger("vigil.engine")


class ComplianceEngine:
    """Explicit wiring of store, cipher, clock, thresholds and services."""

    def __init__(
        self,
        settings: Settings,
        store: DataStore,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self.settings = settings
        self.store = store
        self.clock = clock
        # Raises ConfigurationError when the secret is missing.
        self.cipher = CipherService.from_settings(settings)

        self.recorder = AuditRecorder(
            store,
            clock=clock,
            log_dir=Path(settings.audit_log_dir) if settings.audit_log_dir else None,
        )
        self.detector = AnomalyDetector(
            self.recorder,
            AlertStore(store),
            thresholds=DetectionThresholds.from_settings(settings),
            dedup_window=timedelta(minutes=settings.alert_dedup_minutes),
            scan_window=timedelta(hours=settings.scan_window_hours),
            clock=clock,
        )
        self.retention = RetentionEngine(
            store,
            self.recorder,
            RequestStore(store),
            legal_hold_days=settings.legal_hold_days,
            clock=clock,
        )
        self.backups = BackupOrchestrator(
            store,
            BackupCatalog(store),
            LocalArtifactStore(settings.backup_storage_path),
            self.recorder,
            cipher=self.cipher,
            tables=settings.backup_tables or None,
            stale_after=timedelta(minutes=settings.backup_stale_minutes),
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Administrative operations with structured results
    # ------------------------------------------------------------------

    async def scan(self) -> OperationResult:
        try:
            alerts = await self.detector.scan()
        except VigilError as exc:
            return OperationResult.from_exception("anomaly_scan", exc)
        return OperationResult.succeeded(
            "anomaly_scan",
            f"{len(alerts)} new alert(s)",
            alerts=[a.id for a in alerts],
        )

    async def apply_retention(
        self,
        actor: Actor | None = None,
        policies: list[RetentionPolicy] | None = None,
    ) -> OperationResult:
        try:
            policies = policies if policies is not None else policies_from_settings(self.settings)
        except VigilError as exc:
            return OperationResult.from_exception("retention", exc)

        report = await self.retention.apply(policies, actor)
        data = report.model_dump()
        data["failed_policies"] = report.failed_policies
        summary = (
            f"processed={report.processed} anonymized={report.anonymized} "
            f"deleted={report.deleted}"
        )
        if not report.partial:
            return OperationResult.succeeded("retention", summary, **data)
        if len(report.failed_policies) == len(report.runs):
            return OperationResult(
                operation="retention",
                outcome=OperationOutcome.FAILED,
                message=f"All {len(report.runs)} policies failed",
                error_kind="PolicyError",
                data=data,
            )
        done = len(report.runs) - len(report.failed_policies)
        return OperationResult.partial(
            "retention",
            f"Processed {done} of {len(report.runs)} policies; {summary}",
            **data,
        )

    async def create_backup(
        self,
        backup_type: BackupType,
        actor: Actor | None = None,
        options: BackupOptions | None = None,
    ) -> OperationResult:
        actor = actor or Actor.system()
        options = options or BackupOptions.from_settings(self.settings)
        operation = f"{backup_type.lower()}_backup"
        try:
            if backup_type == BackupType.FULL:
                record = await self.backups.create_full(actor, options)
            elif backup_type == BackupType.INCREMENTAL:
                record = await self.backups.create_incremental(actor, options)
            else:
                raise VigilError(f"Unsupported backup type: {backup_type}")
        except VigilError as exc:
            return OperationResult.from_exception(operation, exc)
        return _backup_result(operation, record)

    async def restore(
        self,
        backup_id: str,
        actor: Actor,
        *,
        tables: list[str] | None = None,
        confirm_destruction: bool = False,
    ) -> OperationResult:
        try:
            report = await self.backups.restore(
                backup_id,
                actor,
                tables=tables,
                confirm_destruction=confirm_destruction,
            )
        except VigilError as exc:
            return OperationResult.from_exception("restore", exc)
        return OperationResult.succeeded(
            "restore",
            f"Restored {report.rows_applied} rows from {backup_id}",
            **report.model_dump(mode="json"),
        )

    async def run_task(self, task: MaintenanceTask) -> OperationResult:
        """Entry point for scheduled maintenance."""
        if task == MaintenanceTask.ANOMALY_SCAN:
            return await self.scan()
        if task == MaintenanceTask.RETENTION:
            return await self.apply_retention()
        if task == MaintenanceTask.INCREMENTAL_BACKUP:
            return await self.create_backup(BackupType.INCREMENTAL)
        if task == MaintenanceTask.FULL_BACKUP:
            return await self.create_backup(BackupType.FULL)
        if task == MaintenanceTask.BACKUP_RECONCILE:
            failed = await self.backups.reconcile()
            return OperationResult.succeeded(
                "backup_reconcile", f"{len(failed)} stale backup(s) failed", failed=failed
            )
        raise ValueError(f"Unknown maintenance task: {task}")


def _backup_result(operation: str, record: BackupRecord) -> OperationResult:
    if record.status == BackupStatus.SUCCESS:
        return OperationResult.succeeded(
            operation,
            f"Backup {record.id} stored at {record.file_path}",
            **record.model_dump(mode="json"),
        )
    return OperationResult(
        operation=operation,
        outcome=OperationOutcome.FAILED,
        message=record.error_message or "Backup failed",
        error_kind="BackupError",
        data=record.model_dump(mode="json"),
    )


@contextlib.asynccontextmanager
async def open_engine(
    settings: Settings | None = None,
    *,
    clock: Clock = utc_now,
) -> AsyncIterator[ComplianceEngine]:
    """Open the store, build the engine, and close the store afterwards."""
    settings = settings or get_settings()
    store = await open_store(settings.db_path, auto_migrate=settings.auto_migrate)
    try:
        yield ComplianceEngine(settings, store, clock=clock)
    finally:
        await store.close()


async def run_maintenance_task(task: MaintenanceTask) -> OperationResult:
    """Run one task against a freshly loaded configuration."""
    async with open_engine(get_settings()) as engine:
        return await engine.run_task(task)
