"""
In-process cache for computed leaderboard pages.

Pattern: Cache-Aside with per-algorithm TTL
- Read path checks the cache, falls back to the leaderboard engine on miss
- TTL comes from config.cache_policy (1-15 min depending on algorithm)
- Score-affecting events invalidate whole categories synchronously

Storage is a cachetools.TLRUCache: every page carries its own expiry
(ttu returns entry.expires_at) and the injected clock is the cache timer,
so expired pages are never served and expire() does the eviction sweep.

Stale-write protection:
    A reader that misses, awaits the engine and then writes back could
    overwrite an invalidation that happened during the await. Each category
    carries a version counter that invalidation bumps; the reader snapshots
    version(category) before the call and put() rejects the write if the
    counter moved in the meantime.

The store is not thread-safe. All mutations happen between awaits on a
single event loop.
"""
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from cachetools import TLRUCache

from charterboard.config.cache_policy import DEFAULT_ALGORITHM, get_ttl_seconds
from charterboard.utils.logger import logger


Clock = Callable[[], datetime]
CacheVersion = Tuple[int, int]

DEFAULT_MAX_ENTRIES = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CacheKeys:
    """
    Centralized cache key definitions.

    Pattern: lb:{category}:{algorithm}:{timeframe}:{limit}
    Examples:
        lb:composite:composite:all_time:50
        lb:activity:activity:weekly:10
    """

    @staticmethod
    def leaderboard(category: str, algorithm: str, timeframe: str, limit: int) -> str:
        """Computed leaderboard page"""
        return f"lb:{category}:{algorithm}:{timeframe}:{limit}"


@dataclass
class CacheEntry:
    key: str
    data: List[Dict[str, Any]]
    generated_at: datetime
    expires_at: datetime
    category: str
    algorithm: str
    metadata: Dict[str, Any] = field(default_factory=dict)


def _entry_expiry(key: str, entry: CacheEntry, now: datetime) -> datetime:
    return entry.expires_at


class _PageStore(TLRUCache):
    """TLRUCache that counts the pages it dropped for expiry."""

    def __init__(self, maxsize: int, timer: Clock):
        self.expired_total = 0
        super().__init__(maxsize, ttu=_entry_expiry, timer=timer)

    def expire(self, time=None):
        expired = super().expire(time)
        self.expired_total += len(expired)
        return expired


class LeaderboardCache:
    """
    Keyed store of computed leaderboard pages.

    Usage:
        cache = LeaderboardCache()
        key = CacheKeys.leaderboard("composite", "composite", "weekly", 10)

        version = cache.version("composite")
        cache.put(key, rows, "composite", "composite", {}, version=version)
        entry = cache.get(key)

        cache.invalidate_categories({"activity"})  # also drops composite
    """

    def __init__(self, clock: Optional[Clock] = None, maxsize: int = DEFAULT_MAX_ENTRIES):
        self._clock = clock or utc_now
        self._pages = _PageStore(maxsize, timer=self._clock)
        self._global_version = 0
        self._category_versions: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._pages)

    def __contains__(self, key: str) -> bool:
        return key in self._pages

    def keys(self) -> List[str]:
        return list(self._pages)

    # ─────────────────────────────────────────────────────────────────
    # Core Operations
    # ─────────────────────────────────────────────────────────────────

    def get(self, key: str) -> Optional[CacheEntry]:
        """Get a live entry. Returns None on miss or once expires_at is reached."""
        return self._pages.get(key)

    def put(
        self,
        key: str,
        data: List[Dict[str, Any]],
        algorithm: str,
        category: str,
        metadata: Optional[Dict[str, Any]] = None,
        version: Optional[CacheVersion] = None,
    ) -> Optional[CacheEntry]:
        """
        Store a computed page with the algorithm's TTL.

        Args:
            key: Cache key (see CacheKeys.leaderboard)
            data: Ranked entries as returned by the engine
            algorithm: Ranking algorithm, selects the TTL
            category: Leaderboard category, used for invalidation
            metadata: Engine metadata stored alongside the page
            version: Snapshot from version(category) taken before computing.
                     If the category was invalidated since, the write is dropped.

        Returns:
            The stored entry, or None if the write was stale
        """
        if version is not None and version != self.version(category):
            logger.info(f"Discarding stale leaderboard write: {key}")
            return None

        now = self._clock()
        entry = CacheEntry(
            key=key,
            data=list(data),
            generated_at=now,
            expires_at=now + timedelta(seconds=get_ttl_seconds(algorithm)),
            category=category,
            algorithm=algorithm,
            metadata=dict(metadata or {}),
        )
        self._pages[key] = entry
        return entry

    def invalidate(self, predicate: Callable[[str, CacheEntry], bool]) -> int:
        """Remove every entry matching predicate(key, entry). Returns the count."""
        with self._pages.timer:
            doomed = [entry for key, entry in self._pages.items() if predicate(key, entry)]
            for entry in doomed:
                self._pages.pop(entry.key, None)
                self._bump(entry.category)
                logger.info(f"🗑️ Invalidated cache: {entry.key}")

        if doomed:
            logger.info(f"Invalidated {len(doomed)} leaderboard cache entries")
        return len(doomed)

    def invalidate_categories(self, categories: Iterable[str]) -> int:
        """
        Remove entries whose category is affected by an update.

        Composite rankings are derived from every other category, so
        composite entries are always removed as well.
        """
        affected = set(categories)
        affected.add(DEFAULT_ALGORITHM)

        # Bump even categories with nothing cached: a read may be in flight
        for category in affected:
            self._bump(category)

        return self.invalidate(lambda key, entry: entry.category in affected)

    def evict_expired(self) -> int:
        """Remove all entries past expires_at. Returns the count."""
        expired = self._pages.expire()

        if expired:
            logger.info(f"🧹 Cleaned {len(expired)} expired cache entries")
        return len(expired)

    def clear(self) -> int:
        """Drop every entry and invalidate all in-flight writes."""
        count = len(self._pages)
        self._pages.clear()
        self._global_version += 1
        logger.info(f"🗑️ Leaderboard cache cleared ({count} entries)")
        return count

    # ─────────────────────────────────────────────────────────────────
    # Versioning
    # ─────────────────────────────────────────────────────────────────

    def version(self, category: str) -> CacheVersion:
        """Opaque write stamp for a category (see put)."""
        return (self._global_version, self._category_versions.get(category, 0))

    def _bump(self, category: str) -> None:
        self._category_versions[category] = self._category_versions.get(category, 0) + 1

    # ─────────────────────────────────────────────────────────────────
    # Cache Stats (for monitoring)
    # ─────────────────────────────────────────────────────────────────

    def stats(self) -> Dict[str, int]:
        # len() runs the expiry sweep first, so expired_entries is current
        return {
            "total_entries": len(self._pages),
            "max_entries": self._pages.maxsize,
            "expired_entries": self._pages.expired_total,
        }
