"""
Unit tests for the periodic scheduler and leaderboard maintenance jobs.

Time is driven by the FakeClock fixture and run_pending(), so no test
waits on wall-clock intervals.
"""

import asyncio
import pytest
from unittest.mock import AsyncMock

from charterboard.cache.memory_cache import CacheKeys
from charterboard.services.events import UpdateEvent
from charterboard.tasks.maintenance_tasks import (
    evict_expired_cache,
    queue_watchdog,
    register_maintenance_jobs,
    schedule_full_recalculation,
)
from charterboard.tasks.scheduler import PeriodicScheduler


class TestPeriodicScheduler:

    @pytest.mark.asyncio
    async def test_job_runs_once_interval_elapses(self, clock):
        scheduler = PeriodicScheduler(clock=clock)
        job = AsyncMock()
        scheduler.add_job("tick", 30, job)

        assert await scheduler.run_pending() == []

        clock.advance(30)
        assert await scheduler.run_pending() == ["tick"]
        assert await scheduler.run_pending() == []
        job.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_independent_intervals(self, clock):
        scheduler = PeriodicScheduler(clock=clock)
        scheduler.add_job("fast", 30, AsyncMock())
        scheduler.add_job("slow", 600, AsyncMock())

        ran = []
        for _ in range(20):
            clock.advance(30)
            ran.extend(await scheduler.run_pending())

        assert ran.count("fast") == 20
        assert ran.count("slow") == 1

    @pytest.mark.asyncio
    async def test_failing_job_is_logged_and_rescheduled(self, clock):
        scheduler = PeriodicScheduler(clock=clock)
        scheduler.add_job("broken", 10, AsyncMock(side_effect=RuntimeError("engine down")))

        clock.advance(10)
        await scheduler.run_pending()
        clock.advance(10)
        await scheduler.run_pending()

        job = scheduler.jobs["broken"]
        assert job.runs == 2
        assert job.failures == 2

    def test_duplicate_job_name_rejected(self, clock):
        scheduler = PeriodicScheduler(clock=clock)
        scheduler.add_job("tick", 30, AsyncMock())

        with pytest.raises(ValueError):
            scheduler.add_job("tick", 60, AsyncMock())

    @pytest.mark.asyncio
    async def test_start_and_stop(self):
        scheduler = PeriodicScheduler(max_sleep_seconds=0.01)
        ran = asyncio.Event()

        async def job():
            ran.set()

        scheduler.add_job("quick", 0.01, job)
        scheduler.start()
        assert scheduler.is_running is True

        await asyncio.wait_for(ran.wait(), timeout=2)
        await scheduler.stop()

        assert scheduler.is_running is False


class TestMaintenanceJobs:

    @pytest.mark.asyncio
    async def test_registers_three_jobs(self, service, test_settings, clock):
        scheduler = PeriodicScheduler(clock=clock)

        register_maintenance_jobs(scheduler, service, test_settings)

        intervals = {name: job.interval.total_seconds() for name, job in scheduler.jobs.items()}
        assert intervals == {
            "evict-expired-cache": 600,
            "full-recalculation": 3600,
            "queue-watchdog": 30,
        }

    @pytest.mark.asyncio
    async def test_eviction_job(self, service, cache, clock):
        cache.put(CacheKeys.leaderboard("seasonal", "seasonal", "weekly", 10), [], "seasonal", "seasonal")
        cache.put(CacheKeys.leaderboard("rating", "rating", "weekly", 10), [], "rating", "rating")
        clock.advance(120)

        result = await evict_expired_cache(service)

        assert result == {"evicted": 1, "remaining": 1}

    @pytest.mark.asyncio
    async def test_recalculation_job_only_when_due(self, service, engine):
        first = await schedule_full_recalculation(service)
        second = await schedule_full_recalculation(service)

        assert first["recalculated"] is True
        assert first["dispatch"]["ok"] is True
        assert second == {"recalculated": False}
        engine.trigger_recalculation.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_watchdog_job_drains_queue(self, service):
        service._queue.append(UpdateEvent.create("u1", "experience_gained", {}, ["seasonal"]))

        result = await queue_watchdog(service)

        assert result == {"queued_before": 1, "queued_after": 0}

    @pytest.mark.asyncio
    async def test_scheduled_run_over_virtual_hour(self, service, engine, cache, test_settings, clock):
        scheduler = PeriodicScheduler(clock=clock)
        register_maintenance_jobs(scheduler, service, test_settings)
        cache.put(CacheKeys.leaderboard("seasonal", "seasonal", "weekly", 10), [], "seasonal", "seasonal")

        for _ in range(120):
            clock.advance(30)
            await scheduler.run_pending()

        jobs = scheduler.jobs
        assert jobs["queue-watchdog"].runs == 120
        assert jobs["evict-expired-cache"].runs == 6
        assert jobs["full-recalculation"].runs == 1
        assert len(cache) == 0
        engine.trigger_recalculation.assert_awaited_once()
