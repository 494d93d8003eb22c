"""Traffic-light urgency derived from task age.

Urgency is a pure function of how long ago a task was created. Nothing here is
persisted: a value read from ``tasks.traffic_light`` is a cache that may have
gone stale since its last write, so display paths must call these helpers.
"""

import enum
from datetime import datetime, timezone
from typing import Iterable, List, Optional, TypeVar

from taskgate.core.config import settings


class TrafficLight(str, enum.Enum):
    green = "green"
    yellow = "yellow"
    red = "red"


def traffic_light(age_days: int) -> TrafficLight:
    """Map an age in whole days to its urgency tier.

    0-30 is green, 31-60 yellow, anything older red. A negative age can only
    come from clock skew between writers and is treated as brand new.
    """
    if age_days <= settings.TRAFFIC_LIGHT_GREEN_MAX_DAYS:
        return TrafficLight.green
    if age_days <= settings.TRAFFIC_LIGHT_YELLOW_MAX_DAYS:
        return TrafficLight.yellow
    return TrafficLight.red


def _as_utc(value: datetime) -> datetime:
    # SQLite and MySQL DATETIME columns come back naive; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def age_in_days(created_at: datetime, now: Optional[datetime] = None) -> int:
    """Whole days elapsed since ``created_at`` (floored)."""
    now = _as_utc(now or datetime.now(timezone.utc))
    return (now - _as_utc(created_at)).days


def light_for(created_at: datetime, now: Optional[datetime] = None) -> TrafficLight:
    return traffic_light(age_in_days(created_at, now))


T = TypeVar("T")


def sort_by_urgency(tasks: Iterable[T], now: Optional[datetime] = None) -> List[T]:
    """Oldest (most urgent) first. Items need a ``created_at`` attribute."""
    now = now or datetime.now(timezone.utc)
    return sorted(tasks, key=lambda t: age_in_days(t.created_at, now), reverse=True)
