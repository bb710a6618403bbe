from fastapi import APIRouter, Depends, Query, HTTPException, Request, status

from charterboard.api.schemas.leaderboard import (
    CacheClearedResponse,
    CacheStatsResponse,
    LeaderboardResponse,
    RecalculationResponse,
    UpdateEventRequest,
    UpdateQueuedResponse,
)
from charterboard.clients.engine_client import EngineError
from charterboard.services.events import UpdateEvent
from charterboard.services.realtime_service import LeaderboardRealtimeService
from charterboard.utils.logger import logger

router = APIRouter(prefix="/leaderboard", tags=["leaderboard"])


def get_leaderboard_service(request: Request) -> LeaderboardRealtimeService:
    """FastAPI dependency: the service built in the app lifespan."""
    return request.app.state.leaderboard_service


@router.get("", response_model=LeaderboardResponse)
async def get_leaderboard(
    category: str = Query("composite", min_length=1),
    algorithm: str = Query("composite", min_length=1),
    timeframe: str = Query("all_time", pattern="^(all_time|yearly|monthly|weekly|daily)$"),
    limit: int = Query(50, ge=1, le=100),
    bypass_cache: bool = Query(False, description="Force recomputation"),
    service: LeaderboardRealtimeService = Depends(get_leaderboard_service),
):
    """
    Get a leaderboard page, cached per algorithm TTL.

    Returns:
        Ranked entries, engine metadata and whether the page came from cache
    """
    try:
        return await service.get_leaderboard(category, algorithm, timeframe, limit, bypass_cache)
    except EngineError as e:
        logger.error(f"❌ Leaderboard generation failed for {category}/{algorithm}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to generate leaderboard: {e}"
        )


@router.post("/events", status_code=status.HTTP_202_ACCEPTED, response_model=UpdateQueuedResponse)
async def queue_leaderboard_event(
    body: UpdateEventRequest,
    service: LeaderboardRealtimeService = Depends(get_leaderboard_service),
):
    """
    Queue a score-affecting event.

    Affected caches are invalidated before the response is sent; rank
    changes are processed in the background.
    """
    event = UpdateEvent.create(
        user_id=body.user_id,
        event_type=body.event_type,
        payload=body.payload,
        affected_categories=body.affected_categories,
    )
    result = await service.queue_update(event)

    return {
        "queued": True,
        "notification": result.to_dict(),
        "cache_stats": service.get_cache_stats(),
    }


@router.get("/cache/stats", response_model=CacheStatsResponse)
async def get_cache_stats(service: LeaderboardRealtimeService = Depends(get_leaderboard_service)):
    return service.get_cache_stats()


@router.delete("/cache", response_model=CacheClearedResponse)
async def clear_cache(service: LeaderboardRealtimeService = Depends(get_leaderboard_service)):
    """Drop every cached page (admin/testing)."""
    return {"cleared": service.clear_cache()}


@router.post("/recalculate", response_model=RecalculationResponse)
async def recalculate(service: LeaderboardRealtimeService = Depends(get_leaderboard_service)):
    """Clear the cache and trigger a full engine recalculation now."""
    result = await service.full_recalculation(force=True)
    return {"recalculated": True, "dispatch": result.to_dict()}
