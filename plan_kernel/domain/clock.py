"""
Injectable time source.

Services take a ``Clock`` instead of calling ``datetime.now()`` so that
quarantine timestamps and audit entries are reproducible in tests.  Every
clock returns timezone-aware UTC datetimes.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone

# Start of the 2024-25 plan year.
DEFAULT_TEST_TIME = datetime(2024, 7, 1, 9, 0, 0, tzinfo=timezone.utc)


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    """Wall-clock UTC."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """
    Manually driven clock for tests.

    ``now()`` is frozen until ``advance``, ``tick`` or ``set_time`` moves it.
    Naive datetimes are rejected so that stored timestamps always compare.
    """

    def __init__(self, start: datetime | None = None):
        self._current = _require_aware(start or DEFAULT_TEST_TIME)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = _require_aware(moment)

    def advance(self, seconds: float = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def tick(self) -> datetime:
        """Move forward one second and return the new time."""
        self.advance(1)
        return self._current


def _require_aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        raise ValueError(f"Clock times must be timezone-aware, got {moment!r}")
    return moment
