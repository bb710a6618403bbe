"""
Real-time leaderboard service.

Coordinates three things on one event loop:
1. Read path: serve computed pages from LeaderboardCache or ask the engine
2. Update queue: score-affecting events invalidate caches immediately and are
   drained in the background to detect significant rank changes
3. Maintenance hooks: full recalculation, notification retry, watchdog
   (scheduled by charterboard.tasks.maintenance_tasks)

Concurrency model:
    Single-threaded asyncio. Queue and cache mutations happen synchronously
    between awaits, so no locks are used. Draining is single-flight: at most
    one process_update_queue() runs at a time, guarded by is_processing.
"""
import asyncio
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Deque, Dict, Iterable, List, Optional

from charterboard.cache.memory_cache import CacheKeys, Clock, LeaderboardCache, utc_now
from charterboard.cache.position_store import InMemoryPositionStore, PositionStore
from charterboard.clients.engine_client import (
    DispatchResult,
    EngineClient,
    NotificationClient,
)
from charterboard.config.settings import Settings, get_settings
from charterboard.services.events import (
    UpdateEvent,
    achievement_event,
    badge_event,
    experience_event,
    rating_event,
    trip_event,
)
from charterboard.utils.logger import logger


@dataclass
class PositionChange:
    category: str
    old_position: Optional[int]
    new_position: int

    @property
    def change(self) -> int:
        """Places gained (positive) or lost (negative)."""
        if self.old_position is None:
            return 0
        return self.old_position - self.new_position

    @property
    def direction(self) -> str:
        if self.old_position is None:
            return "new"
        if self.new_position < self.old_position:
            return "up"
        if self.new_position > self.old_position:
            return "down"
        return "stable"

    def is_significant(self, threshold: int) -> bool:
        return self.old_position is not None and abs(self.new_position - self.old_position) >= threshold

    def to_payload(self) -> Dict[str, Any]:
        return {
            "oldPosition": self.old_position,
            "newPosition": self.new_position,
            "change": self.change,
            "direction": self.direction,
        }


@dataclass
class PendingNotification:
    user_id: str
    notification_type: str
    data: Dict[str, Any]
    attempts: int = 1
    last_error: Optional[str] = None


class LeaderboardRealtimeService:
    """
    Usage:
        service = LeaderboardRealtimeService(
            cache=LeaderboardCache(),
            engine=EngineClient(settings),
            notifier=NotificationClient(settings),
        )

        page = await service.get_leaderboard("composite", "composite", "weekly", 10)
        await service.queue_update(trip_event("user_1", {"fishCaught": 4}))
    """

    def __init__(
        self,
        cache: LeaderboardCache,
        engine: EngineClient,
        notifier: NotificationClient,
        positions: Optional[PositionStore] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        self.settings = settings or get_settings()
        self.cache = cache
        self.engine = engine
        self.notifier = notifier
        self.positions = positions if positions is not None else InMemoryPositionStore()
        self._clock = clock or utc_now

        self._queue: List[UpdateEvent] = []
        self._is_processing = False
        self._drain_task: Optional[asyncio.Task] = None
        self._failed_notifications: Deque[PendingNotification] = deque()
        self.last_full_recalculation = datetime.fromtimestamp(0, tz=timezone.utc)

    @property
    def is_processing(self) -> bool:
        return self._is_processing

    @property
    def queue_size(self) -> int:
        return len(self._queue)

    @property
    def failed_notifications(self) -> List[PendingNotification]:
        return list(self._failed_notifications)

    # ─────────────────────────────────────────────────────────────────
    # Read Path
    # ─────────────────────────────────────────────────────────────────

    async def get_leaderboard(
        self,
        category: str,
        algorithm: str,
        timeframe: str,
        limit: int,
        bypass_cache: bool = False,
    ) -> Dict[str, Any]:
        """
        Get a leaderboard page, from cache when possible.

        Raises:
            EngineError: the page had to be computed and the engine failed.
                Not retried; the caller decides how to report it.
        """
        cache_key = CacheKeys.leaderboard(category, algorithm, timeframe, limit)

        if not bypass_cache:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.info(f"📊 Serving cached leaderboard: {cache_key}")
                return {
                    "from_cache": True,
                    "leaderboard": cached.data,
                    "metadata": cached.metadata,
                    "generated_at": cached.generated_at.isoformat(),
                    "expires_at": cached.expires_at.isoformat(),
                }

        logger.info(f"🔄 Generating fresh leaderboard: {cache_key}")
        version = self.cache.version(category)
        fresh = await self.engine.fetch_leaderboard(category, algorithm, timeframe, limit)

        entry = self.cache.put(
            cache_key,
            fresh["leaderboard"],
            algorithm=algorithm,
            category=category,
            metadata=fresh["metadata"],
            version=version,
        )

        return {
            "from_cache": False,
            "leaderboard": fresh["leaderboard"],
            "metadata": fresh["metadata"],
            "generated_at": entry.generated_at.isoformat() if entry else self._clock().isoformat(),
            "expires_at": entry.expires_at.isoformat() if entry else None,
        }

    # ─────────────────────────────────────────────────────────────────
    # Update Queue
    # ─────────────────────────────────────────────────────────────────

    async def queue_update(self, event: UpdateEvent) -> DispatchResult:
        """
        Queue a score-affecting event.

        Before the first await: the event is enqueued, affected cache
        categories (plus composite) are dropped and a drain is scheduled.
        Then a leaderboard_update notification is sent; its result is
        returned and a failure lands in the retry outbox.
        """
        logger.info(f"🔄 Queueing leaderboard update: {event.event_type.value} for user {event.user_id}")

        self._queue.append(event)
        self.cache.invalidate_categories(event.affected_categories)
        self._schedule_drain()

        return await self._notify(event.user_id, "leaderboard_update", {
            "eventType": event.event_type.value,
            "affectedCategories": sorted(event.affected_categories),
            "timestamp": self._clock().isoformat(),
        })

    def _schedule_drain(self) -> None:
        if self._is_processing:
            return
        if self._drain_task is not None and not self._drain_task.done():
            return
        self._drain_task = asyncio.create_task(self.process_update_queue())

    async def process_update_queue(self) -> int:
        """
        Drain the queue once. Single-flight.

        Takes every event queued so far, groups them by user and checks each
        user's rank in the categories they touched. Events queued while this
        runs wait for the next pass (watchdog or a later queue_update).

        Returns:
            Number of users processed (0 if skipped)
        """
        if self._is_processing or not self._queue:
            return 0

        self._is_processing = True
        try:
            pending, self._queue = self._queue, []
            logger.info(f"🔄 Processing {len(pending)} leaderboard updates")

            user_events: Dict[str, List[UpdateEvent]] = {}
            for event in pending:
                user_events.setdefault(event.user_id, []).append(event)

            for user_id, events in user_events.items():
                await self._process_user_updates(user_id, events)

            logger.info(f"✅ Processed leaderboard updates for {len(user_events)} users")
            return len(user_events)
        finally:
            self._is_processing = False

    async def _process_user_updates(self, user_id: str, events: List[UpdateEvent]) -> bool:
        categories = sorted({category for event in events for category in event.affected_categories})

        try:
            changes = await self.calculate_position_changes(user_id, categories)
            threshold = self.settings.significant_position_change
            if any(change.is_significant(threshold) for change in changes.values()):
                await self._broadcast_position_changes(user_id, changes)
                return True
        except Exception as e:
            logger.error(f"❌ Error processing updates for user {user_id}: {e}")

        return False

    async def calculate_position_changes(
        self, user_id: str, categories: Iterable[str]
    ) -> Dict[str, PositionChange]:
        """
        Compare each category's last known rank with the engine's current one
        and record the current rank as the new snapshot.

        Categories where the user is unranked or the lookup fails are skipped.
        """
        changes: Dict[str, PositionChange] = {}

        for category in categories:
            try:
                old_position = await self.positions.get(user_id, category)
                new_position = await self.engine.fetch_user_position(user_id, category)
                if new_position is None:
                    continue

                changes[category] = PositionChange(category, old_position, new_position)
                await self.positions.set(user_id, category, new_position)

            except Exception as e:
                logger.error(f"❌ Error calculating position change for {user_id} in {category}: {e}")

        return changes

    async def _broadcast_position_changes(
        self, user_id: str, changes: Dict[str, PositionChange]
    ) -> DispatchResult:
        result = await self._notify(user_id, "position_change", {
            "positionChanges": {
                "userId": user_id,
                "categories": {category: change.to_payload() for category, change in changes.items()},
                "hasSignificantChange": True,
            },
            "timestamp": self._clock().isoformat(),
        })
        if result.ok:
            logger.info(f"📈 Position change broadcast sent for user {user_id}")
        return result

    # ─────────────────────────────────────────────────────────────────
    # Notifications Outbox
    # ─────────────────────────────────────────────────────────────────

    async def _notify(self, user_id: str, notification_type: str, data: Dict[str, Any]) -> DispatchResult:
        result = await self.notifier.send(user_id, notification_type, data)
        if result.ok:
            if result.sent is not None:
                logger.info(f"📢 {notification_type} notification sent: {result.sent} connections")
        else:
            logger.warning(f"⚠️ {notification_type} notification for {user_id} failed: {result.error}")
            self._stash_failed(PendingNotification(user_id, notification_type, data, last_error=result.error))
        return result

    def _stash_failed(self, item: PendingNotification) -> None:
        if len(self._failed_notifications) >= self.settings.failed_notification_buffer:
            dropped = self._failed_notifications.popleft()
            logger.error(
                f"❌ Notification outbox full, dropping {dropped.notification_type} for {dropped.user_id}"
            )
        self._failed_notifications.append(item)

    async def retry_failed_notifications(self) -> int:
        """
        Resend failed notifications once each.

        Items that keep failing are dropped after notification_max_attempts.

        Returns:
            Number delivered on this pass
        """
        if not self._failed_notifications:
            return 0

        pending = list(self._failed_notifications)
        self._failed_notifications.clear()
        delivered = 0

        for item in pending:
            result = await self.notifier.send(item.user_id, item.notification_type, item.data)
            if result.ok:
                delivered += 1
                continue

            item.attempts += 1
            item.last_error = result.error
            if item.attempts >= self.settings.notification_max_attempts:
                logger.error(
                    f"❌ Giving up on {item.notification_type} for {item.user_id} "
                    f"after {item.attempts} attempts: {item.last_error}"
                )
            else:
                self._stash_failed(item)

        if delivered:
            logger.info(f"📢 Redelivered {delivered} notifications")
        return delivered

    # ─────────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────────

    async def run_watchdog(self) -> None:
        """Drain a stalled queue and retry failed notifications."""
        if self._queue and not self._is_processing:
            await self.process_update_queue()
        await self.retry_failed_notifications()

    async def full_recalculation(self, force: bool = False) -> Optional[DispatchResult]:
        """
        Clear the cache and ask the engine to recalculate everything.

        Only acts when full_recalculation_max_age_seconds have passed since
        the last one, unless forced. Returns None when skipped.
        """
        now = self._clock()
        max_age = timedelta(seconds=self.settings.full_recalculation_max_age_seconds)
        if not force and now - self.last_full_recalculation < max_age:
            return None

        logger.info("🔄 Scheduling full leaderboard recalculation")
        self.cache.clear()
        self.last_full_recalculation = now

        result = await self.engine.trigger_recalculation()
        if not result.ok:
            logger.error(f"❌ Full recalculation trigger failed: {result.error}")
        return result

    def clear_cache(self) -> int:
        """Manual cache clear (for admin/testing)"""
        count = self.cache.clear()
        logger.info("🗑️ Leaderboard cache manually cleared")
        return count

    def get_cache_stats(self) -> Dict[str, Any]:
        """Get cache statistics for monitoring."""
        return {
            **self.cache.stats(),
            "queue_size": len(self._queue),
            "is_processing": self._is_processing,
            "last_full_recalculation": self.last_full_recalculation.isoformat(),
            "failed_notifications": len(self._failed_notifications),
        }

    async def shutdown(self) -> None:
        """Cancel a pending drain. Queued events are discarded."""
        if self._drain_task is not None and not self._drain_task.done():
            self._drain_task.cancel()
            try:
                await self._drain_task
            except asyncio.CancelledError:
                pass
        if self._queue:
            logger.warning(f"Discarding {len(self._queue)} unprocessed leaderboard updates")

    # ─────────────────────────────────────────────────────────────────
    # Event Helpers
    # ─────────────────────────────────────────────────────────────────

    async def update_for_achievement(self, user_id: str, achievement_type: str) -> DispatchResult:
        return await self.queue_update(achievement_event(user_id, achievement_type))

    async def update_for_badge(self, user_id: str, badge_name: str, rarity: str) -> DispatchResult:
        return await self.queue_update(badge_event(user_id, badge_name, rarity))

    async def update_for_trip(self, user_id: str, trip_data: Dict[str, Any]) -> DispatchResult:
        return await self.queue_update(trip_event(user_id, trip_data))

    async def update_for_experience(self, user_id: str, experience_gained: int) -> DispatchResult:
        return await self.queue_update(experience_event(user_id, experience_gained))

    async def update_for_rating(self, user_id: str, new_rating: float, old_rating: float) -> DispatchResult:
        return await self.queue_update(rating_event(user_id, new_rating, old_rating))
