"""
Injectable clock.

The ledger and the schedule engine never call ``datetime.now()`` or
``date.today()`` directly; they receive a Clock so that tests can pin time.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Source of the current time. ``now()`` is always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        """Get the current time."""
        ...

    def today(self) -> date:
        """Get the current calendar date."""
        return self.now().date()


class SystemClock(Clock):
    """Production clock backed by the system time."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """
    Test clock with controlled time.

    ``now()`` returns the same value until ``advance()`` or ``set_time()``
    is called.
    """

    def __init__(self, fixed_time: Optional[datetime] = None):
        self._time = fixed_time or datetime(2026, 1, 1, 9, 0, 0, tzinfo=timezone.utc)
        if self._time.tzinfo is None:
            self._time = self._time.replace(tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._time

    def set_time(self, time: datetime) -> None:
        """Set the clock to a specific time."""
        self._time = time if time.tzinfo else time.replace(tzinfo=timezone.utc)

    def set_date(self, day: date) -> None:
        """Move the clock to ``day``, keeping the time of day."""
        self._time = self._time.replace(year=day.year, month=day.month, day=day.day)

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        """Advance the clock."""
        self._time = self._time + timedelta(days=days, seconds=seconds)
