"""
Clock abstraction.

Services never call ``date.today()`` directly; they ask a Clock. The
application carries one in ``app.extensions['clock']`` and tests swap in a
FixedClock so day-boundary checks are deterministic.
"""

from abc import ABC, abstractmethod
from datetime import date, datetime, timedelta, timezone

from flask import current_app, has_app_context


class Clock(ABC):

    @abstractmethod
    def now(self) -> datetime:
        """Current time, timezone-aware (UTC)."""
        ...

    def today(self) -> date:
        """Current day boundary used for end-date checks."""
        return self.now().date()


class SystemClock(Clock):

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to a given instant until moved with advance()/set_time()."""

    def __init__(self, fixed_time: datetime | None = None):
        self._fixed_time = fixed_time or datetime(2025, 1, 1, 9, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._fixed_time

    def set_time(self, value: datetime) -> None:
        self._fixed_time = value

    def advance(self, days: int = 0, seconds: int = 0) -> None:
        self._fixed_time += timedelta(days=days, seconds=seconds)


def get_clock(clock: Clock | None = None) -> Clock:
    """Return the explicit clock, else the app's clock, else the system clock."""
    if clock is not None:
        return clock
    if has_app_context():
        app_clock = current_app.extensions.get('clock')
        if app_clock is not None:
            return app_clock
    return SystemClock()
