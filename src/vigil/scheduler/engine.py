# Copyright (c) 2026 Veritas Aequitas Holdings LLC. All rights reserved.
"""MaintenanceScheduler -- runs compliance maintenance on cron schedules.

Uses pure asyncio (no external scheduler dependencies).  Each due job is
handed to a runner coroutine that builds its services from freshly loaded
configuration, so nothing but the job table outlives a run.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable

from vigil.core.clock import Clock, utc_now
from vigil.results import OperationOutcome, OperationResult
from vigil.scheduler.jobs import JobRun, MaintenanceJob, MaintenanceTask

logger = logging.getLogger("vigil.scheduler.engine")

_CHECK_INTERVAL_SECONDS = 30
_HISTORY_SIZE = 100

TaskRunner = Callable[[MaintenanceTask], Awaitable[OperationResult]]


class MaintenanceScheduler:
    """Asyncio-based scheduler that polls for due jobs and runs them in turn."""

    def __init__(
        self,
        jobs: list[MaintenanceJob],
        runner: TaskRunner,
        *,
        check_interval: float = _CHECK_INTERVAL_SECONDS,
        clock: Clock = utc_now,
    ) -> None:
        self._jobs = jobs
        self._runner = runner
        self._check_interval = check_interval
        self._clock = clock
        self._task: asyncio.Task[None] | None = None
        self._running = False
        self._history: deque[JobRun] = deque(maxlen=_HISTORY_SIZE)

        now = self._clock()
        for job in self._jobs:
            if job.next_run is None:
                job.next_run = job.schedule.next_after(now)

    @property
    def running(self) -> bool:
        return self._running

    @property
    def jobs(self) -> list[MaintenanceJob]:
        return list(self._jobs)

    @property
    def history(self) -> list[JobRun]:
        return list(self._history)

    async def start(self) -> None:
        """Start the scheduler background loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info(
            "Maintenance scheduler started (%d jobs, interval=%ss)",
            len(self._jobs),
            self._check_interval,
        )

    async def stop(self) -> None:
        """Gracefully stop the scheduler."""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None
        logger.info("Maintenance scheduler stopped")

    async def wait(self) -> None:
        """Block until the background loop ends."""
        if self._task is not None:
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.tick()
            except Exception:
                logger.exception("Scheduler tick failed")
            await asyncio.sleep(self._check_interval)

    async def tick(self) -> list[JobRun]:
        """Run every enabled job whose next run time has passed."""
        now = self._clock()
        runs = []
        for job in self._jobs:
            if job.enabled and job.next_run is not None and job.next_run <= now:
                logger.info("Executing due job: %s", job.name)
                runs.append(await self.execute_job(job))
        return runs

    async def execute_job(self, job: MaintenanceJob) -> JobRun:
        """Run *job* once and reschedule it.  Failures are recorded, never retried."""
        run = JobRun(task=job.task, started_at=self._clock())
        self._history.append(run)

        try:
            result = await self._runner(job.task)
        except Exception as exc:
            run.status = "failed"
            run.outcome = OperationOutcome.FAILED
            run.message = str(exc)
            logger.error("Job %s failed: %s", job.name, exc)
        else:
            run.status = "completed" if result.ok else "failed"
            run.outcome = result.outcome
            run.message = result.message
            run.details = result.data
            if not result.ok:
                logger.warning("Job %s finished %s: %s", job.name, result.outcome, result.message)
        run.completed_at = self._clock()

        job.last_run = run.started_at
        job.next_run = job.schedule.next_after(run.completed_at)
        return run
