"""
HTTP collaborators of the leaderboard service.

- EngineClient: computes leaderboard pages and user positions, triggers
  full recalculation (GET/POST /api/leaderboard/engine)
- NotificationClient: pushes real-time notifications to connected users
  (POST /api/achievements/notifications)

Read-path failures raise EngineError so the caller can surface them.
Dispatches (recalculation, notifications) never raise: they return a
DispatchResult the caller can inspect, retry or log.
"""
from __future__ import annotations

import asyncio
import aiohttp

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from charterboard.config.cache_policy import engine_algorithm_for
from charterboard.config.settings import Settings
from charterboard.utils.logger import logger


class EngineError(Exception):
    """The leaderboard engine could not produce a page."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.status = status


@dataclass
class DispatchResult:
    ok: bool
    status: Optional[int] = None
    sent: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"ok": self.ok, "status": self.status, "sent": self.sent, "error": self.error}


class _HttpClient:
    """Lazily-created aiohttp session shared by one client."""

    def __init__(self, settings: Settings, session: Optional[aiohttp.ClientSession] = None):
        self.settings = settings
        self._session = session
        self._owns_session = session is None

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.settings.http_timeout_seconds)
            )
            self._owns_session = True
        return self._session

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()


class EngineClient(_HttpClient):
    """Client for the leaderboard computation endpoint."""

    async def _get_engine(self, params: Dict[str, str]) -> Dict[str, Any]:
        session = self._get_session()
        try:
            async with session.get(self.settings.engine_url, params=params) as response:
                if response.status >= 400:
                    raise EngineError(
                        f"HTTP {response.status}: {response.reason}", status=response.status
                    )
                payload = await response.json(content_type=None)
        except aiohttp.ClientError as e:
            raise EngineError(f"Leaderboard engine unreachable: {e}") from e
        except asyncio.TimeoutError as e:
            raise EngineError(
                f"Leaderboard engine timed out after {self.settings.http_timeout_seconds}s"
            ) from e
        except ValueError as e:
            raise EngineError(f"Invalid engine response: {e}") from e

        if not isinstance(payload, dict):
            raise EngineError("Invalid engine response: expected a JSON object")
        if not payload.get("success"):
            raise EngineError(payload.get("error") or "Failed to generate leaderboard")
        return payload

    async def fetch_leaderboard(
        self,
        category: str,
        algorithm: str,
        timeframe: str,
        limit: int,
    ) -> Dict[str, Any]:
        """
        Compute a fresh leaderboard page.

        Returns:
            {"leaderboard": [...], "metadata": {...}}

        Raises:
            EngineError: network failure or timeout, non-2xx status, success=false or bad JSON
        """
        payload = await self._get_engine({
            "category": category,
            "algorithm": algorithm,
            "timeframe": timeframe,
            "limit": str(limit),
            "realTime": "true",
        })

        leaderboard: List[Dict[str, Any]] = payload.get("leaderboard") or []
        metadata: Dict[str, Any] = payload.get("metadata") or {}
        return {"leaderboard": leaderboard, "metadata": metadata}

    async def fetch_user_position(self, user_id: str, category: str) -> Optional[int]:
        """
        Current rank of a user within a category, or None if unranked.

        Uses the engine's focus-user mode, which reports the user's absolute
        position in metadata.focusUserPosition.
        """
        payload = await self._get_engine({
            "category": category,
            "algorithm": engine_algorithm_for(category),
            "timeframe": "all_time",
            "limit": "1",
            "focusUserId": user_id,
            "realTime": "true",
        })

        position = (payload.get("metadata") or {}).get("focusUserPosition")
        return int(position) if position is not None else None

    async def trigger_recalculation(self) -> DispatchResult:
        """Ask the engine to recalculate all rankings."""
        session = self._get_session()
        try:
            async with session.post(
                self.settings.engine_url, json={"action": "recalculate"}
            ) as response:
                if response.status >= 400:
                    return DispatchResult(ok=False, status=response.status,
                                          error=f"HTTP {response.status}: {response.reason}")
                return DispatchResult(ok=True, status=response.status)
        except Exception as e:
            logger.error(f"❌ Error triggering recalculation: {e}")
            return DispatchResult(ok=False, error=str(e))


class NotificationClient(_HttpClient):
    """Client for the real-time notification endpoint."""

    async def send(self, user_id: str, notification_type: str, data: Dict[str, Any]) -> DispatchResult:
        """
        Push one notification.

        Args:
            user_id: Recipient
            notification_type: "leaderboard_update" or "position_change"
            data: Notification body

        Returns:
            DispatchResult; sent is the number of live connections reached
            when the endpoint reports it.
        """
        session = self._get_session()
        body = {"userId": user_id, "type": notification_type, "data": data}

        try:
            async with session.post(self.settings.notifications_url, json=body) as response:
                if response.status >= 400:
                    return DispatchResult(ok=False, status=response.status,
                                          error=f"HTTP {response.status}: {response.reason}")
                try:
                    result = await response.json(content_type=None)
                except ValueError:
                    result = None

                sent = result.get("sent") if isinstance(result, dict) else None
                return DispatchResult(ok=True, status=response.status, sent=sent)

        except Exception as e:
            logger.error(f"❌ Error sending {notification_type} notification for {user_id}: {e}")
            return DispatchResult(ok=False, error=str(e))
