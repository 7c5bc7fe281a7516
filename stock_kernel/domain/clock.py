"""
Injectable time source.

Services never read the wall clock themselves: movements, campaign
snapshots and audit entries all take ``now()`` from the Clock they were
constructed with.  SystemClock is the only implementation that touches
real time.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

DEFAULT_START = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


class Clock(ABC):
    """``now()`` always returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(tz=timezone.utc)


class DeterministicClock(Clock):
    """
    Frozen clock for tests.

    Time only moves when ``advance``, ``tick`` or ``set_time`` is called.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or DEFAULT_START

    def now(self) -> datetime:
        return self._current

    def set_time(self, value: datetime) -> None:
        self._current = value

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move forward one second and return the new time."""
        self.advance()
        return self._current
