"""
Clock abstraction.

The engine never reads the system date itself; callers pass `today`
from a Clock so date logic stays deterministic under test.
"""

from abc import ABC, abstractmethod
from datetime import date, timedelta


class Clock(ABC):
    """Source of the current calendar date."""

    @abstractmethod
    def today(self) -> date:
        pass


class SystemClock(Clock):
    """Clock backed by the local system date."""

    def today(self) -> date:
        return date.today()


class FixedClock(Clock):
    """Clock frozen at a given date, for tests and replays."""

    def __init__(self, current: date):
        self._current = current

    def today(self) -> date:
        return self._current

    def set(self, current: date) -> None:
        self._current = current

    def advance(self, days: int) -> date:
        self._current = self._current + timedelta(days=days)
        return self._current
