"""
Last-known leaderboard positions per (user, category).

Used by the update processor to decide whether a user's rank moved far
enough to notify them. A snapshot is either absent (never computed) or the
most recently computed rank.

Two backends:
- InMemoryPositionStore: process-lifetime dict (default, single instance)
- RedisPositionStore: shared across API instances, survives restarts

Redis layout: one hash per user
    lb:positions:{user_id}  →  {category: rank}
"""
from typing import Dict, Optional, Protocol, Tuple

import redis.asyncio as redis

from charterboard.utils.logger import logger


class PositionKeys:
    """Redis key definitions for position snapshots."""

    @staticmethod
    def user_positions(user_id: str) -> str:
        return f"lb:positions:{user_id}"


class PositionStore(Protocol):
    async def get(self, user_id: str, category: str) -> Optional[int]:
        ...

    async def set(self, user_id: str, category: str, position: int) -> None:
        ...


class InMemoryPositionStore:
    """Position snapshots kept in a plain dict."""

    def __init__(self):
        self._positions: Dict[Tuple[str, str], int] = {}

    async def get(self, user_id: str, category: str) -> Optional[int]:
        return self._positions.get((user_id, category))

    async def set(self, user_id: str, category: str, position: int) -> None:
        self._positions[(user_id, category)] = position
        logger.debug(f"📊 Position updated: User {user_id} in {category} -> Position {position}")

    def __len__(self) -> int:
        return len(self._positions)


class RedisPositionStore:
    """
    Async Redis-backed position snapshots.

    Usage:
        store = RedisPositionStore(settings.redis_url)
        await store.connect()

        await store.set("user_1", "composite", 12)
        rank = await store.get("user_1", "composite")

    If Redis is unreachable, reads return None (treated as "never ranked")
    and writes are skipped, so the update processor keeps running.
    """

    def __init__(self, redis_url: str, client: Optional[redis.Redis] = None):
        self._redis_url = redis_url
        self._client: Optional[redis.Redis] = client
        self._connected = client is not None

    async def connect(self) -> None:
        """Establish connection to Redis."""
        if self._connected:
            return

        try:
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True,  # Return strings, not bytes
                socket_connect_timeout=5,
                socket_keepalive=True,
                health_check_interval=30,
            )

            # Test connection
            await self._client.ping()
            self._connected = True
            logger.info("✅ Redis position store connected")

        except Exception as e:
            logger.error(f"❌ Redis connection failed: {e}")
            self._connected = False
            # Don't raise - positions fall back to "unknown"

    async def disconnect(self) -> None:
        """Close Redis connection gracefully."""
        if self._client:
            await self._client.aclose()
            self._connected = False
            logger.info("Redis position store disconnected")

    @property
    def is_connected(self) -> bool:
        return self._connected and self._client is not None

    async def get(self, user_id: str, category: str) -> Optional[int]:
        if not self.is_connected:
            return None

        try:
            value = await self._client.hget(PositionKeys.user_positions(user_id), category)
        except Exception as e:
            logger.warning(f"Position GET error for {user_id}/{category}: {e}")
            return None

        return int(value) if value is not None else None

    async def set(self, user_id: str, category: str, position: int) -> None:
        if not self.is_connected:
            logger.warning(f"Position store unavailable, not saving {user_id}/{category}")
            return

        try:
            await self._client.hset(PositionKeys.user_positions(user_id), category, position)
        except Exception as e:
            logger.warning(f"Position SET error for {user_id}/{category}: {e}")
