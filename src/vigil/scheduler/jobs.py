# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Maintenance job definitions for the scheduler."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from vigil.core.config import Settings
from vigil.scheduler.cron import CronSchedule


class MaintenanceTask(StrEnum):
    ANOMALY_SCAN = "anomaly_scan"
    RETENTION = "retention"
    INCREMENTAL_BACKUP = "incremental_backup"
    FULL_BACKUP = "full_backup"
    BACKUP_RECONCILE = "backup_reconcile"


@dataclass
class MaintenanceJob:
    """A recurring maintenance task on a cron schedule."""

    task: MaintenanceTask
    schedule: CronSchedule
    enabled: bool = True
    last_run: datetime | None = None
    next_run: datetime | None = None

    @property
    def name(self) -> str:
        return str(self.task)

    def to_dict(self) -> dict:
        return {
            "task": str(self.task),
            "schedule": self.schedule.expression,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "next_run": self.next_run.isoformat() if self.next_run else None,
        }


@dataclass
class JobRun:
    """One execution of a maintenance job."""

    task: MaintenanceTask
    started_at: datetime
    status: str = "running"  # running | completed | failed
    outcome: str | None = None
    message: str = ""
    completed_at: datetime | None = None
    details: dict = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "task": str(self.task),
            "status": self.status,
            "outcome": self.outcome,
            "message": self.message,
            "started_at": self.started_at.isoformat(),
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
        }


_DISABLED = frozenset({"", "off", "disabled"})


def jobs_from_settings(settings: Settings) -> list[MaintenanceJob]:
    """Build the job table.

    An empty expression, or ``off``, disables that job.  Environment
    variables set to an empty string are ignored by the settings loader,
    so ``VIGIL_SCHEDULE_RETENTION=off`` is the way to switch one off there.
    """
    schedules = {
        MaintenanceTask.ANOMALY_SCAN: settings.schedule_anomaly_scan,
        MaintenanceTask.RETENTION: settings.schedule_retention,
        MaintenanceTask.INCREMENTAL_BACKUP: settings.schedule_incremental_backup,
        MaintenanceTask.FULL_BACKUP: settings.schedule_full_backup,
        MaintenanceTask.BACKUP_RECONCILE: settings.schedule_backup_reconcile,
    }
    return [
        MaintenanceJob(task=task, schedule=CronSchedule.parse(expression))
        for task, expression in schedules.items()
        if expression.strip().lower() not in _DISABLED
    ]
