"""
Caching module for the real-time leaderboard service.

This module provides:
- Computed leaderboard pages (in-process, 1-15 minute TTL per algorithm)
- Last-known user positions (in-memory or Redis)

Pattern: Cache-Aside with event-driven invalidation
- Pages computed by the engine on miss
- Score-affecting events drop affected categories immediately
- Automatic expiration for staleness protection
"""
from charterboard.cache.memory_cache import (
    CacheEntry,
    CacheKeys,
    LeaderboardCache,
)
from charterboard.cache.position_store import (
    InMemoryPositionStore,
    PositionStore,
    RedisPositionStore,
)

__all__ = [
    "CacheEntry",
    "CacheKeys",
    "LeaderboardCache",
    "InMemoryPositionStore",
    "PositionStore",
    "RedisPositionStore",
]
