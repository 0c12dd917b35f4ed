"""
Periodic background jobs.

The scheduler runs named async jobs on fixed intervals: the feedback sweep
that deletes expired replies and the purge of expired cache entries. Each
job runs once right after :meth:`Scheduler.start`, then after every
interval. A failing run is logged and the job keeps its schedule.

Example:
    >>> scheduler = Scheduler()
    >>> scheduler.add_job("feedback_sweep", 60_000, lifecycle.sweep)
    >>> scheduler.start()
    >>> ...
    >>> await scheduler.stop()
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

import structlog

log = structlog.get_logger(__name__)


@dataclass
class ScheduledJob:
    """A named job and its run counters.

    Attributes:
        name: Identifier used in logs.
        interval_ms: Delay between the end of one run and the start of the next.
        func: Zero-argument coroutine function to run.
        runs: Completed runs, successful or not.
        failures: Runs that raised.
    """

    name: str
    interval_ms: int
    func: Callable[[], Awaitable[Any]]
    runs: int = 0
    failures: int = 0


class Scheduler:
    """Run jobs periodically on the running event loop."""

    def __init__(self) -> None:
        self.jobs: dict[str, ScheduledJob] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def add_job(self, name: str, interval_ms: int, func: Callable[[], Awaitable[Any]]) -> ScheduledJob:
        """Register a job. Jobs added while running start immediately.

        Raises:
            ValueError: If a job with the same name exists or the interval is not positive.
        """
        if name in self.jobs:
            raise ValueError(f"Job already registered: {name}")
        if interval_ms <= 0:
            raise ValueError(f"Job interval must be positive, got {interval_ms}")

        job = ScheduledJob(name=name, interval_ms=interval_ms, func=func)
        self.jobs[name] = job
        if self.running:
            self._launch(job)
        return job

    def start(self) -> None:
        """Start every registered job. Calling start twice is a no-op."""
        if self.running:
            return
        for job in self.jobs.values():
            self._launch(job)
        log.info("scheduler_started", jobs=list(self.jobs))

    async def stop(self) -> None:
        """Cancel all jobs and wait for them to finish."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        if tasks:
            log.info("scheduler_stopped", jobs=list(self.jobs))

    async def run_once(self, name: str) -> None:
        """Run a job immediately, outside its schedule."""
        await self._run(self.jobs[name])

    def _launch(self, job: ScheduledJob) -> None:
        self._tasks[job.name] = asyncio.create_task(self._loop(job), name=f"scheduler:{job.name}")

    async def _loop(self, job: ScheduledJob) -> None:
        while True:
            await self._run(job)
            await asyncio.sleep(job.interval_ms / 1000)

    async def _run(self, job: ScheduledJob) -> None:
        try:
            await job.func()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            job.failures += 1
            log.error("scheduled_job_failed", job=job.name, error=str(e), exc_info=True)
        finally:
            job.runs += 1
