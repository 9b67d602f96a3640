"""
Business Calendar
=================

Working-time arithmetic for TAT deadlines.

A calendar is a set of working weekdays plus a daily working window in a
given timezone. The default (Monday-Friday, 00:00-24:00, UTC) counts whole
weekdays and skips weekends.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta, timezone
from typing import FrozenSet, Iterator, Tuple
from zoneinfo import ZoneInfo

from ticketflow.core.clock import ensure_utc
from ticketflow.core.exceptions import ConfigurationException

_ONE_DAY = timedelta(days=1)


@dataclass(frozen=True)
class BusinessCalendar:
    """
    Immutable working calendar.

    Attributes:
        working_days: ISO weekday numbers that count (Monday=0 ... Sunday=6)
        day_start_hour: start of the working window (0-23)
        day_end_hour: end of the working window (1-24, exclusive)
        timezone_name: IANA name the window is expressed in
    """
    working_days: FrozenSet[int] = field(default_factory=lambda: frozenset({0, 1, 2, 3, 4}))
    day_start_hour: int = 0
    day_end_hour: int = 24
    timezone_name: str = "UTC"

    def __post_init__(self):
        if not self.working_days:
            raise ConfigurationException("Business calendar needs at least one working day")
        if any(d < 0 or d > 6 for d in self.working_days):
            raise ConfigurationException(
                "working_days must be weekday numbers 0-6",
                {"working_days": sorted(self.working_days)}
            )
        if not 0 <= self.day_start_hour < self.day_end_hour <= 24:
            raise ConfigurationException(
                "Business day window must satisfy 0 <= start < end <= 24",
                {"start": self.day_start_hour, "end": self.day_end_hour}
            )

    @property
    def tz(self) -> ZoneInfo:
        return ZoneInfo(self.timezone_name)

    # ------------------------------------------------------------------
    # Working windows
    # ------------------------------------------------------------------

    def _window(self, day: date) -> Tuple[datetime, datetime]:
        """UTC bounds of the working window on a local calendar day."""
        tz = self.tz
        start = datetime.combine(day, time(self.day_start_hour), tzinfo=tz)
        if self.day_end_hour == 24:
            end = datetime.combine(day + _ONE_DAY, time(0), tzinfo=tz)
        else:
            end = datetime.combine(day, time(self.day_end_hour), tzinfo=tz)
        return start.astimezone(timezone.utc), end.astimezone(timezone.utc)

    def _windows_forward(self, moment: datetime) -> Iterator[Tuple[datetime, datetime]]:
        """Working windows ending after ``moment``, in order."""
        day = moment.astimezone(self.tz).date() - _ONE_DAY
        while True:
            if day.weekday() in self.working_days:
                start, end = self._window(day)
                if end > moment:
                    yield start, end
            day += _ONE_DAY

    def _windows_backward(self, moment: datetime) -> Iterator[Tuple[datetime, datetime]]:
        """Working windows starting before ``moment``, latest first."""
        day = moment.astimezone(self.tz).date() + _ONE_DAY
        while True:
            if day.weekday() in self.working_days:
                start, end = self._window(day)
                if start < moment:
                    yield start, end
            day -= _ONE_DAY

    def is_business_time(self, moment: datetime) -> bool:
        """True when ``moment`` falls inside a working window."""
        moment = ensure_utc(moment)
        start, end = next(self._windows_forward(moment))
        return start <= moment < end

    # ------------------------------------------------------------------
    # Arithmetic
    # ------------------------------------------------------------------

    def add_business_hours(self, start: datetime, hours: float) -> datetime:
        """
        Advance ``start`` by ``hours`` of working time.

        Zero returns ``start`` unchanged. Negative values walk backwards,
        which yields a deadline in the past. The result is monotonic in
        ``hours``.
        """
        if hours == 0:
            return start

        current = ensure_utc(start)
        remaining = timedelta(hours=abs(hours))

        if hours > 0:
            for win_start, win_end in self._windows_forward(current):
                if current < win_start:
                    current = win_start
                available = win_end - current
                if remaining <= available:
                    return current + remaining
                remaining -= available
                current = win_end
        else:
            for win_start, win_end in self._windows_backward(current):
                if current > win_end:
                    current = win_end
                available = current - win_start
                if remaining <= available:
                    return current - remaining
                remaining -= available
                current = win_start

        raise ConfigurationException("Business calendar has no working windows")  # pragma: no cover

    def business_hours_between(self, start: datetime, end: datetime) -> float:
        """
        Working hours between two instants.

        Negative when ``end`` is before ``start``.
        """
        start, end = ensure_utc(start), ensure_utc(end)
        if end == start:
            return 0.0
        if end < start:
            return -self.business_hours_between(end, start)

        total = timedelta(0)
        for win_start, win_end in self._windows_forward(start):
            if win_start >= end:
                break
            overlap = min(win_end, end) - max(win_start, start)
            if overlap > timedelta(0):
                total += overlap
        return total.total_seconds() / 3600


def default_calendar() -> BusinessCalendar:
    """Monday-Friday, whole days, UTC."""
    return BusinessCalendar()
