"""
In-process periodic job runner.

Leaderboard maintenance has to run inside the API process because the cache
and update queue live in its memory, so jobs are asyncio tasks rather than
worker-queue tasks.

- start() / stop(): own one background loop task
- run_pending(now): run every due job once and wait for it (virtual time)

A job that raises is logged and rescheduled; a job still running when it
comes due again is skipped for that tick.
"""
import asyncio

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

from charterboard.cache.memory_cache import Clock, utc_now
from charterboard.utils.logger import logger


JobFunc = Callable[[], Awaitable[Any]]


@dataclass
class ScheduledJob:
    name: str
    interval: timedelta
    func: JobFunc
    next_run: datetime
    task: Optional[asyncio.Task] = None
    runs: int = 0
    failures: int = 0


class PeriodicScheduler:
    def __init__(self, clock: Optional[Clock] = None, max_sleep_seconds: float = 1.0):
        self._clock = clock or utc_now
        self._max_sleep = max_sleep_seconds
        self._jobs: Dict[str, ScheduledJob] = {}
        self._loop_task: Optional[asyncio.Task] = None

    @property
    def jobs(self) -> Dict[str, ScheduledJob]:
        return dict(self._jobs)

    @property
    def is_running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    def add_job(self, name: str, interval_seconds: float, func: JobFunc) -> ScheduledJob:
        """Register a job; first run is one interval from now."""
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")

        interval = timedelta(seconds=interval_seconds)
        job = ScheduledJob(name=name, interval=interval, func=func, next_run=self._clock() + interval)
        self._jobs[name] = job
        return job

    def start(self) -> None:
        if self.is_running:
            return
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"🔄 Leaderboard background tasks started ({len(self._jobs)} jobs)")

    async def stop(self) -> None:
        tasks = [job.task for job in self._jobs.values() if job.task is not None and not job.task.done()]
        if self._loop_task is not None:
            tasks.append(self._loop_task)
            self._loop_task = None

        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.info("Leaderboard background tasks stopped")

    async def run_pending(self, now: Optional[datetime] = None) -> List[str]:
        """Run due jobs and wait for them. Returns the names that ran."""
        launched = self._launch_due(now or self._clock())
        if launched:
            await asyncio.gather(*(job.task for job in launched))
        return [job.name for job in launched]

    def _launch_due(self, now: datetime) -> List[ScheduledJob]:
        launched = []
        for job in self._jobs.values():
            if job.next_run > now:
                continue

            job.next_run = now + job.interval
            if job.task is not None and not job.task.done():
                logger.warning(f"⚠️ Job {job.name} still running, skipping this tick")
                continue

            job.task = asyncio.create_task(self._run_job(job))
            launched.append(job)
        return launched

    async def _run_job(self, job: ScheduledJob) -> None:
        job.runs += 1
        try:
            await job.func()
        except Exception as e:
            job.failures += 1
            logger.error(f"❌ Job {job.name} failed: {e}")

    async def _run_loop(self) -> None:
        while True:
            self._launch_due(self._clock())

            if self._jobs:
                next_due = min(job.next_run for job in self._jobs.values())
                delay = (next_due - self._clock()).total_seconds()
            else:
                delay = self._max_sleep
            await asyncio.sleep(min(max(delay, 0.0), self._max_sleep))
