"""Score-affecting events fed into the leaderboard update queue."""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable


class EventType(str, Enum):
    ACHIEVEMENT_UNLOCKED = "achievement_unlocked"
    BADGE_AWARDED = "badge_awarded"
    TRIP_COMPLETED = "trip_completed"
    RATING_UPDATED = "rating_updated"
    EXPERIENCE_GAINED = "experience_gained"


# Leaderboard categories each kind of event moves
ACHIEVEMENT_CATEGORIES = ("composite", "achievements", "achievement_hunter", "seasonal")
BADGE_CATEGORIES = ("composite", "achievements", "achievement_hunter")
TRIP_CATEGORIES = ("composite", "activity", "trip_expert", "fish_master", "seasonal")
EXPERIENCE_CATEGORIES = ("composite", "seasonal")
RATING_CATEGORIES = ("composite", "rating", "mentor")


@dataclass(frozen=True)
class UpdateEvent:
    user_id: str
    event_type: EventType
    payload: Dict[str, Any] = field(default_factory=dict, hash=False)
    affected_categories: FrozenSet[str] = frozenset()

    @classmethod
    def create(
        cls,
        user_id: str,
        event_type: EventType | str,
        payload: Dict[str, Any] | None = None,
        affected_categories: Iterable[str] = (),
    ) -> "UpdateEvent":
        return cls(
            user_id=user_id,
            event_type=EventType(event_type),
            payload=dict(payload or {}),
            affected_categories=frozenset(affected_categories),
        )


def achievement_event(user_id: str, achievement_type: str) -> UpdateEvent:
    return UpdateEvent.create(
        user_id,
        EventType.ACHIEVEMENT_UNLOCKED,
        {"achievementType": achievement_type},
        ACHIEVEMENT_CATEGORIES,
    )


def badge_event(user_id: str, badge_name: str, rarity: str) -> UpdateEvent:
    return UpdateEvent.create(
        user_id,
        EventType.BADGE_AWARDED,
        {"badgeName": badge_name, "rarity": rarity},
        BADGE_CATEGORIES,
    )


def trip_event(user_id: str, trip_data: Dict[str, Any]) -> UpdateEvent:
    return UpdateEvent.create(user_id, EventType.TRIP_COMPLETED, trip_data, TRIP_CATEGORIES)


def experience_event(user_id: str, experience_gained: int) -> UpdateEvent:
    return UpdateEvent.create(
        user_id,
        EventType.EXPERIENCE_GAINED,
        {"experienceGained": experience_gained},
        EXPERIENCE_CATEGORIES,
    )


def rating_event(user_id: str, new_rating: float, old_rating: float) -> UpdateEvent:
    return UpdateEvent.create(
        user_id,
        EventType.RATING_UPDATED,
        {"newRating": new_rating, "oldRating": old_rating},
        RATING_CATEGORIES,
    )
