# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Scheduled maintenance: cron parsing, job table, and the asyncio loop."""

from vigil.scheduler.cron import CronParseError, CronSchedule
from vigil.scheduler.engine import MaintenanceScheduler
from vigil.scheduler.jobs import JobRun, MaintenanceJob, MaintenanceTask, jobs_from_settings

__all__ = [
    "CronParseError",
    "CronSchedule",
    "JobRun",
    "MaintenanceJob",
    "MaintenanceScheduler",
    "MaintenanceTask",
    "jobs_from_settings",
]
