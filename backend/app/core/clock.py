"""
Clock source for every time-dependent rule (refund tiers, cancellation
guard, sweeper). All instants are timezone-aware and expressed in the
fixed UTC+3 offset the rail operator publishes its timetable in.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from functools import lru_cache

from app.core.config import get_settings


def local_timezone() -> timezone:
    return timezone(timedelta(hours=get_settings().TIMEZONE_OFFSET_HOURS))


def to_local(value: datetime) -> datetime:
    """Attach the local offset to naive values, convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=local_timezone())
    return value.astimezone(local_timezone())


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant, aware, in local time."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc).astimezone(local_timezone())


class FixedClock(Clock):
    """Clock frozen at a given instant. Used by tests and replays."""

    def __init__(self, instant: datetime):
        self._instant = to_local(instant)

    def now(self) -> datetime:
        return self._instant

    def advance(self, delta: timedelta) -> None:
        self._instant = self._instant + delta


@lru_cache()
def get_clock() -> Clock:
    return SystemClock()
