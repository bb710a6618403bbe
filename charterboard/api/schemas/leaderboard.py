from pydantic import BaseModel, Field
from typing import Any, Optional

from charterboard.services.events import EventType


class LeaderboardResponse(BaseModel):
    from_cache: bool
    leaderboard: list[dict[str, Any]]
    metadata: dict[str, Any]
    generated_at: str
    expires_at: Optional[str] = None


class UpdateEventRequest(BaseModel):
    user_id: str = Field(..., min_length=1)
    event_type: EventType
    payload: dict[str, Any] = Field(default_factory=dict)
    affected_categories: list[str] = Field(..., min_length=1, description="Leaderboard categories moved by this event")


class DispatchResponse(BaseModel):
    ok: bool
    status: Optional[int] = None
    sent: Optional[int] = None
    error: Optional[str] = None


class CacheStatsResponse(BaseModel):
    total_entries: int = Field(..., ge=0)
    max_entries: int = Field(..., ge=1)
    expired_entries: int = Field(..., ge=0)
    queue_size: int = Field(..., ge=0)
    is_processing: bool
    last_full_recalculation: str
    failed_notifications: int = Field(..., ge=0)


class UpdateQueuedResponse(BaseModel):
    queued: bool
    notification: DispatchResponse
    cache_stats: CacheStatsResponse


class CacheClearedResponse(BaseModel):
    cleared: int = Field(..., ge=0)


class RecalculationResponse(BaseModel):
    recalculated: bool
    dispatch: Optional[DispatchResponse] = None
