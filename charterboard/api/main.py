from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from charterboard.api.routes import leaderboard
from charterboard.cache.memory_cache import LeaderboardCache
from charterboard.cache.position_store import InMemoryPositionStore, RedisPositionStore
from charterboard.clients.engine_client import EngineClient, NotificationClient
from charterboard.config.settings import settings
from charterboard.services.realtime_service import LeaderboardRealtimeService
from charterboard.tasks.maintenance_tasks import register_maintenance_jobs
from charterboard.tasks.scheduler import PeriodicScheduler
from charterboard.utils.logger import logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup:
        - Build the leaderboard service and its collaborators
        - Connect the Redis position store when REDIS_URL is set
        - Start the maintenance scheduler

    Shutdown:
        - Stop the scheduler and any pending queue drain
        - Close HTTP sessions and the Redis connection
    """

    # ── STARTUP ────────────────────────────────────────────────────────────

    engine = EngineClient(settings)
    notifier = NotificationClient(settings)

    if settings.redis_url:
        positions = RedisPositionStore(settings.redis_url)
        await positions.connect()
    else:
        positions = InMemoryPositionStore()
        logger.info("REDIS_URL not set, keeping leaderboard positions in memory")

    service = LeaderboardRealtimeService(
        cache=LeaderboardCache(maxsize=settings.cache_max_entries),
        engine=engine,
        notifier=notifier,
        positions=positions,
        settings=settings,
    )

    scheduler = PeriodicScheduler()
    register_maintenance_jobs(scheduler, service, settings)
    scheduler.start()

    app.state.leaderboard_service = service
    app.state.scheduler = scheduler
    app.state.position_store = positions

    yield  # ← App runs here, handling requests

    # ── SHUTDOWN ───────────────────────────────────────────────────────────

    await scheduler.stop()
    await service.shutdown()
    await engine.close()
    await notifier.close()

    if isinstance(positions, RedisPositionStore):
        await positions.disconnect()
    logger.info("✅ Leaderboard service shut down")


app = FastAPI(
    title="Charter Leaderboard Service",
    version="1.0.0",
    description="Real-time leaderboard caching and rank-change notifications for the fishing charter marketplace",
    lifespan=lifespan
)

# CORS - allow frontend to call API
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(leaderboard.router, prefix=settings.api_v1_prefix)

@app.get("/")
async def root():
    return {"message": "Charter Leaderboard Service", "status": "running"}

@app.get("/health")
async def health_check():
    """Health check with scheduler and position store status"""
    scheduler = app.state.scheduler
    positions = app.state.position_store

    if isinstance(positions, RedisPositionStore):
        position_store = "redis:connected" if positions.is_connected else "redis:disconnected"
    else:
        position_store = "memory"

    return {
        "status": "healthy",
        "scheduler_running": scheduler.is_running,
        "position_store": position_store,
        "cache": app.state.leaderboard_service.get_cache_stats(),
        "environment": settings.environment,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
