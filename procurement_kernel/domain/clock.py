"""
Injectable time source.

Response deadlines, token expiry, status timestamps and the year in a
document number all come from a ``Clock`` passed to the service, so tests
can pin the date and step through a project week by week.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone


class Clock(ABC):
    @abstractmethod
    def now(self) -> datetime:
        """Current instant as an aware UTC datetime."""


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class DeterministicClock(Clock):
    """A clock that only moves when told to.

    Starts on Monday 2 March 2026, 09:00 UTC unless given a start time.
    """

    def __init__(self, start: datetime | None = None):
        self._current = start or datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._current

    def set_time(self, moment: datetime) -> None:
        self._current = moment

    def advance(self, seconds: int = 1) -> None:
        self._current += timedelta(seconds=seconds)

    def advance_days(self, days: int) -> None:
        self._current += timedelta(days=days)


def as_utc(value: datetime | None) -> datetime | None:
    """Return *value* as aware UTC; naive input is assumed to be UTC.

    SQLite drops the offset on timezone-aware columns, so every timestamp
    read back from the store passes through here before it is compared.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
