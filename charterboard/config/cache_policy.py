"""
Leaderboard Cache Policy Module

Purpose: Centralized time-to-live definitions for cached leaderboard pages.
Each ranking algorithm gets its own TTL based on how quickly its inputs move.

Pattern: Volatility-based expiry
- Seasonal standings: Very short (competitions are live)
- Activity: Short (trips complete throughout the day)
- Composite / achievements: Medium (mixed inputs)
- Rating / specialized: Long (slow-moving averages)
"""

from dataclasses import dataclass
from typing import Dict

from charterboard.utils.logger import logger


DEFAULT_ALGORITHM = "composite"


@dataclass(frozen=True)
class CacheTTLConfig:
    """
    TTL rule for one ranking algorithm.

    Attributes:
        seconds (int): How long a computed page stays valid
        description (str): Human-readable rationale

    Example:
        CacheTTLConfig(
            seconds=120,
            description="Activity rankings"
        )
        → Pages expire 2 minutes after generation
    """
    seconds: int
    description: str


CACHE_TTLS: Dict[str, CacheTTLConfig] = {
    "composite": CacheTTLConfig(
        seconds=5 * 60,
        description="Composite score - touched by nearly every event"
    ),

    "rating": CacheTTLConfig(
        seconds=10 * 60,
        description="Captain/angler rating averages - change slowly"
    ),

    "activity": CacheTTLConfig(
        seconds=2 * 60,
        description="Trips and active days - updates throughout the day"
    ),

    "achievements": CacheTTLConfig(
        seconds=5 * 60,
        description="Achievement and badge counts"
    ),

    "seasonal": CacheTTLConfig(
        seconds=1 * 60,
        description="Live seasonal competitions - must stay near real time"
    ),

    "specialized": CacheTTLConfig(
        seconds=15 * 60,
        description="Niche categories (biggest catch, species, mentoring)"
    ),
}

# Algorithms the leaderboard engine understands
KNOWN_ALGORITHMS = frozenset(CACHE_TTLS)


def get_ttl_seconds(algorithm: str) -> int:
    """
    Get cache TTL in seconds for a ranking algorithm.

    Falls back to the composite TTL for algorithms not in CACHE_TTLS.

    Examples:
        >>> get_ttl_seconds("seasonal")
        60

        >>> get_ttl_seconds("unknown")  # Fallback
        300
    """
    config = CACHE_TTLS.get(algorithm)
    if config is None:
        logger.debug(f"Unknown algorithm '{algorithm}', using {DEFAULT_ALGORITHM} TTL")
        config = CACHE_TTLS[DEFAULT_ALGORITHM]
    return config.seconds


def engine_algorithm_for(category: str) -> str:
    """Map a leaderboard category onto the engine algorithm that ranks it."""
    return category if category in KNOWN_ALGORITHMS else "specialized"
