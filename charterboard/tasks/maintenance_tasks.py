"""
Maintenance jobs for the real-time leaderboard.

These jobs run on schedule to:
1. Evict expired cache entries (every 10 minutes)
2. Clear the cache and trigger a full engine recalculation (hourly check)
3. Drain a stalled update queue and retry failed notifications (every 30s)

Each job catches its own errors through PeriodicScheduler; nothing here
reaches a user-facing path.
"""
from typing import Any, Dict

from charterboard.config.settings import Settings
from charterboard.services.realtime_service import LeaderboardRealtimeService
from charterboard.tasks.scheduler import PeriodicScheduler
from charterboard.utils.logger import logger


async def evict_expired_cache(service: LeaderboardRealtimeService) -> Dict[str, Any]:
    """
    Remove expired leaderboard pages.

    Run: Every 10 minutes

    Returns:
        Dict with eviction count and remaining entries
    """
    evicted = service.cache.evict_expired()
    return {"evicted": evicted, "remaining": len(service.cache)}


async def schedule_full_recalculation(service: LeaderboardRealtimeService) -> Dict[str, Any]:
    """
    Full recalculation if the last one is older than the configured max age.

    Run: Every hour

    Returns:
        Dict with whether it ran and the engine dispatch status
    """
    result = await service.full_recalculation()
    if result is None:
        return {"recalculated": False}
    return {"recalculated": True, "dispatch": result.to_dict()}


async def queue_watchdog(service: LeaderboardRealtimeService) -> Dict[str, Any]:
    """
    Safety net for the update queue.

    Starts a drain if events are waiting and none is running, then retries
    notifications that failed earlier.

    Run: Every 30 seconds
    """
    queued = service.queue_size
    if queued and not service.is_processing:
        logger.info(f"⏰ Watchdog draining {queued} queued leaderboard updates")
    await service.run_watchdog()
    return {"queued_before": queued, "queued_after": service.queue_size}


def register_maintenance_jobs(
    scheduler: PeriodicScheduler,
    service: LeaderboardRealtimeService,
    settings: Settings,
) -> None:
    """Register the three maintenance jobs on a scheduler."""
    schedule = {
        "evict-expired-cache": (
            settings.cache_eviction_interval_seconds,
            lambda: evict_expired_cache(service),
        ),
        "full-recalculation": (
            settings.full_recalculation_interval_seconds,
            lambda: schedule_full_recalculation(service),
        ),
        "queue-watchdog": (
            settings.queue_watchdog_interval_seconds,
            lambda: queue_watchdog(service),
        ),
    }

    for name, (interval, func) in schedule.items():
        scheduler.add_job(name, interval, func)
