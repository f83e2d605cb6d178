# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""Tests for the maintenance scheduler.

Covers cron parsing and matching, the job table built from settings,
and the scheduler engine's tick/execute logic.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from vigil.core.config import Settings
from vigil.results import OperationOutcome, OperationResult
from vigil.scheduler.cron import CronParseError, CronSchedule
from vigil.scheduler.engine import MaintenanceScheduler
from vigil.scheduler.jobs import MaintenanceJob, MaintenanceTask, jobs_from_settings

# Tuesday
NOW = datetime(2026, 3, 10, 14, 0, tzinfo=UTC)


class FakeRunner:
    """Records the tasks it is asked to run and replays canned results."""

    def __init__(self, result: OperationResult | Exception | None = None) -> None:
        self.calls: list[MaintenanceTask] = []
        self._result = result

    async def __call__(self, task: MaintenanceTask) -> OperationResult:
        self.calls.append(task)
        if isinstance(self._result, Exception):
            raise self._result
        return self._result or OperationResult.succeeded(str(task), "ok", count=1)


def _job(expression: str, task: MaintenanceTask = MaintenanceTask.ANOMALY_SCAN, **kw):
    return MaintenanceJob(task=task, schedule=CronSchedule.parse(expression), **kw)


# =========================================================================
# Cron parsing
# =========================================================================


class TestCronParsing:
    def test_all_stars(self):
        schedule = CronSchedule.parse("* * * * *")
        assert schedule.minutes == frozenset(range(60))
        assert schedule.hours == frozenset(range(24))
        assert schedule.weekdays == frozenset(range(7))
        assert not schedule.day_restricted

    def test_lists_ranges_and_steps(self):
        schedule = CronSchedule.parse("0,30 9-17/4 1 */6 1-5")
        assert schedule.minutes == {0, 30}
        assert schedule.hours == {9, 13, 17}
        assert schedule.days == {1}
        assert schedule.months == {1, 7}
        assert schedule.weekdays == {1, 2, 3, 4, 5}

    def test_value_with_step_runs_to_upper_bound(self):
        assert CronSchedule.parse("50/5 * * * *").minutes == {50, 55}

    def test_sunday_is_zero_or_seven(self):
        assert CronSchedule.parse("0 0 * * 7").weekdays == {0}

    @pytest.mark.parametrize(
        "expression",
        [
            "* * *",
            "* * * * * *",
            "60 * * * *",
            "* 24 * * *",
            "* * 0 * *",
            "*/0 * * * *",
            "a * * * *",
            "5-1 * * * *",
        ],
    )
    def test_invalid(self, expression: str):
        with pytest.raises(CronParseError):
            CronSchedule.parse(expression)


class TestCronMatching:
    def test_matches(self):
        schedule = CronSchedule.parse("0 14 * * 2")
        assert schedule.matches(NOW)
        assert not schedule.matches(NOW.replace(minute=1))

    def test_next_after_is_strictly_later(self):
        assert CronSchedule.parse("*/15 * * * *").next_after(NOW) == NOW.replace(minute=15)

    def test_next_after_rolls_to_next_day(self):
        assert CronSchedule.parse("30 1 * * *").next_after(NOW) == datetime(
            2026, 3, 11, 1, 30, tzinfo=UTC
        )

    def test_weekly(self):
        assert CronSchedule.parse("0 3 * * 0").next_after(NOW) == datetime(
            2026, 3, 15, 3, 0, tzinfo=UTC
        )

    def test_day_or_weekday_when_both_restricted(self):
        """Classic cron: '1st of the month OR Friday'."""
        schedule = CronSchedule.parse("0 0 1 * 5")
        assert schedule.next_after(NOW) == datetime(2026, 3, 13, 0, 0, tzinfo=UTC)
        assert schedule.matches(datetime(2026, 4, 1, 0, 0, tzinfo=UTC))

    def test_day_only(self):
        assert CronSchedule.parse("0 0 1 * *").next_after(NOW) == datetime(
            2026, 4, 1, 0, 0, tzinfo=UTC
        )

    def test_never_fires(self):
        with pytest.raises(CronParseError, match="never fires"):
            CronSchedule.parse("0 0 31 2 *").next_after(NOW)


# =========================================================================
# Job table
# =========================================================================


class TestJobsFromSettings:
    def test_default_table(self):
        jobs = jobs_from_settings(Settings(_env_file=None))
        assert [j.task for j in jobs] == list(MaintenanceTask)
        assert jobs[0].schedule.expression == "*/15 * * * *"

    def test_empty_expression_disables_job(self):
        jobs = jobs_from_settings(Settings(_env_file=None, schedule_retention=""))
        assert MaintenanceTask.RETENTION not in [j.task for j in jobs]
        assert len(jobs) == 4

    def test_off_disables_job(self, monkeypatch):
        monkeypatch.setenv("VIGIL_SCHEDULE_FULL_BACKUP", "off")
        jobs = jobs_from_settings(Settings(_env_file=None))
        assert MaintenanceTask.FULL_BACKUP not in [j.task for j in jobs]

    def test_bad_expression_is_fatal(self):
        with pytest.raises(CronParseError):
            jobs_from_settings(Settings(_env_file=None, schedule_full_backup="every sunday"))

    def test_to_dict(self):
        job = _job("0 2 * * *", MaintenanceTask.INCREMENTAL_BACKUP, next_run=NOW)
        assert job.to_dict() == {
            "task": "incremental_backup",
            "schedule": "0 2 * * *",
            "enabled": True,
            "last_run": None,
            "next_run": NOW.isoformat(),
        }


# =========================================================================
# Scheduler engine
# =========================================================================


class TestScheduler:
    def test_initial_next_run(self, clock):
        job = _job("*/15 * * * *")
        MaintenanceScheduler([job], FakeRunner(), clock=clock)
        assert job.next_run == NOW.replace(minute=15)

    async def test_tick_runs_only_due_jobs(self, clock):
        scan = _job("*/15 * * * *")
        nightly = _job("30 1 * * *", MaintenanceTask.RETENTION)
        runner = FakeRunner()
        scheduler = MaintenanceScheduler([scan, nightly], runner, clock=clock)

        assert await scheduler.tick() == []

        clock.advance(minutes=15)
        runs = await scheduler.tick()
        assert [r.task for r in runs] == [MaintenanceTask.ANOMALY_SCAN]
        assert runner.calls == [MaintenanceTask.ANOMALY_SCAN]
        assert scan.last_run == NOW.replace(minute=15)
        assert scan.next_run == NOW.replace(minute=30)

    async def test_disabled_job_is_skipped(self, clock):
        job = _job("*/15 * * * *", enabled=False)
        runner = FakeRunner()
        scheduler = MaintenanceScheduler([job], runner, clock=clock)
        clock.advance(hours=1)
        assert await scheduler.tick() == []
        assert runner.calls == []

    async def test_successful_run(self, clock):
        scheduler = MaintenanceScheduler([], FakeRunner(), clock=clock)
        run = await scheduler.execute_job(_job("0 * * * *"))
        assert run.status == "completed"
        assert run.outcome == OperationOutcome.SUCCEEDED
        assert run.details == {"count": 1}
        assert run.completed_at == NOW

    async def test_runner_exception_is_recorded(self, clock):
        job = _job("0 * * * *")
        scheduler = MaintenanceScheduler([job], FakeRunner(RuntimeError("boom")), clock=clock)
        run = await scheduler.execute_job(job)
        assert run.status == "failed"
        assert run.outcome == OperationOutcome.FAILED
        assert run.message == "boom"
        assert job.next_run == NOW.replace(hour=15)

    async def test_partial_result_counts_as_failed_run(self, clock):
        result = OperationResult.partial("retention", "1 policy failed")
        scheduler = MaintenanceScheduler([], FakeRunner(result), clock=clock)
        run = await scheduler.execute_job(_job("0 * * * *", MaintenanceTask.RETENTION))
        assert run.status == "failed"
        assert run.outcome == OperationOutcome.PARTIAL

    async def test_history_is_bounded(self, clock):
        job = _job("* * * * *")
        scheduler = MaintenanceScheduler([job], FakeRunner(), clock=clock)
        for _ in range(105):
            await scheduler.execute_job(job)
        assert len(scheduler.history) == 100

    async def test_start_and_stop(self, clock):
        scheduler = MaintenanceScheduler([], FakeRunner(), check_interval=0.01, clock=clock)
        await scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0.02)
        await scheduler.stop()
        assert not scheduler.running
