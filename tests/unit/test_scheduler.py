"""Tests for telegit/engine/scheduler.py - periodic background jobs."""

import asyncio

import pytest

from telegit.engine.scheduler import Scheduler


class TestScheduler:
    """Tests for Scheduler."""

    def test_duplicate_job_name(self):
        """Job names must be unique."""
        scheduler = Scheduler()
        scheduler.add_job("sweep", 1000, lambda: asyncio.sleep(0))

        with pytest.raises(ValueError, match="already registered"):
            scheduler.add_job("sweep", 1000, lambda: asyncio.sleep(0))

    def test_invalid_interval(self):
        """Intervals must be positive."""
        with pytest.raises(ValueError):
            Scheduler().add_job("sweep", 0, lambda: asyncio.sleep(0))

    @pytest.mark.asyncio
    async def test_job_runs_immediately_and_repeats(self):
        """A job should run at start and again after each interval."""
        scheduler = Scheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.add_job("sweep", 10, job)
        scheduler.start()
        await asyncio.sleep(0.06)
        await scheduler.stop()

        assert len(calls) >= 2
        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_failing_job_keeps_schedule(self):
        """A job that raises should be logged and run again."""
        scheduler = Scheduler()

        async def job():
            raise RuntimeError("boom")

        scheduled = scheduler.add_job("purge", 10, job)
        scheduler.start()
        await asyncio.sleep(0.06)
        await scheduler.stop()

        assert scheduled.failures >= 2
        assert scheduled.runs == scheduled.failures

    @pytest.mark.asyncio
    async def test_stop_halts_jobs(self):
        """No runs should happen after stop."""
        scheduler = Scheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.add_job("sweep", 10, job)
        scheduler.start()
        await asyncio.sleep(0.03)
        await scheduler.stop()
        count = len(calls)
        await asyncio.sleep(0.03)

        assert len(calls) == count

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        """Stopping a scheduler that never started should be a no-op."""
        scheduler = Scheduler()

        await scheduler.stop()

        assert not scheduler.running

    @pytest.mark.asyncio
    async def test_run_once(self):
        """run_once should run a job outside its schedule."""
        scheduler = Scheduler()
        calls = []

        async def job():
            calls.append(1)

        scheduler.add_job("sweep", 60_000, job)
        await scheduler.run_once("sweep")

        assert calls == [1]
        assert scheduler.jobs["sweep"].runs == 1
