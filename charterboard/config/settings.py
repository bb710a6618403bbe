from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseSettings):
    """Application settings loaded from environment variables (.env file)"""

    # Base URL of the web app hosting the leaderboard engine and notification routes
    nextauth_url: str = "http://localhost:3000"

    # Redis (optional - position snapshots stay in memory when unset)
    redis_url: Optional[str] = None

    # Environment
    environment: str = "development"
    log_level: str = "INFO"

    # Page cache
    cache_max_entries: int = 1000

    # Outbound HTTP
    http_timeout_seconds: float = 10.0

    # Background maintenance intervals
    cache_eviction_interval_seconds: int = 600       # 10 minutes
    full_recalculation_interval_seconds: int = 3600  # 1 hour
    full_recalculation_max_age_seconds: int = 3600   # 1 hour
    queue_watchdog_interval_seconds: int = 30

    # Rank shift that counts as a "significant" position change
    significant_position_change: int = 3

    # Failed notification outbox
    notification_max_attempts: int = 3
    failed_notification_buffer: int = 100

    # API Configuration
    api_v1_prefix: str = "/api/v1"

    # CORS Configuration
    cors_origins: list[str] = ["http://localhost:3000"]

    @property
    def base_url(self) -> str:
        return self.nextauth_url.rstrip("/")

    @property
    def engine_url(self) -> str:
        """Leaderboard computation endpoint (GET compute, POST recalculate)"""
        return f"{self.base_url}/api/leaderboard/engine"

    @property
    def notifications_url(self) -> str:
        """Real-time notification dispatch endpoint"""
        return f"{self.base_url}/api/achievements/notifications"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"  # Ignore extra fields in .env


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance - loads once from .env"""
    return Settings()


settings = get_settings()
