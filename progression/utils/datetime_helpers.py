"""
Clock and calendar-day utilities

Streaks and heatmaps are counted in calendar days of the *user's* timezone,
not UTC, so a completion logged at 23:30 local time lands on the right day.

RULES:
- Store and compare instants as timezone-aware datetimes in UTC (use to_utc())
- Derive day identifiers only through Clock.calendar_day()
- Never mix naive and aware datetimes
"""

import logging
from datetime import datetime, date, timedelta
from typing import Iterator, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from progression.config import DEFAULT_TIMEZONE

logger = logging.getLogger(__name__)


def resolve_timezone(tz: Union[str, ZoneInfo, None]) -> ZoneInfo:
    """
    Resolve a timezone name, falling back to DEFAULT_TIMEZONE

    Args:
        tz: IANA timezone name, ZoneInfo, or None

    Returns:
        ZoneInfo object
    """
    if isinstance(tz, ZoneInfo):
        return tz

    tz_str = tz or DEFAULT_TIMEZONE
    try:
        return ZoneInfo(tz_str)
    except (ZoneInfoNotFoundError, ValueError) as e:
        logger.error(f"Invalid timezone '{tz_str}': {e}")
        return ZoneInfo("UTC")


def now_utc() -> datetime:
    """Current datetime in UTC (timezone-aware)"""
    return datetime.now(ZoneInfo("UTC"))


def to_utc(dt: datetime, tz: Union[str, ZoneInfo, None] = None) -> datetime:
    """
    Convert datetime to UTC

    Naive datetimes are interpreted in `tz` (or DEFAULT_TIMEZONE).
    """
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=resolve_timezone(tz))
        logger.debug(f"Interpreted naive datetime in {dt.tzinfo}: {dt}")

    return dt.astimezone(ZoneInfo("UTC"))


def days_between(start: date, end: date) -> int:
    """Whole calendar days from start to end (negative if end is earlier)"""
    return (end - start).days


def iter_days(start: date, end: date) -> Iterator[date]:
    """Yield every calendar day from start to end inclusive"""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


class SystemClock:
    """
    Wall clock bound to one user's timezone.

    Args:
        timezone: IANA timezone name used for calendar day boundaries
    """

    def __init__(self, timezone: Union[str, ZoneInfo, None] = None):
        self.timezone = resolve_timezone(timezone)

    def now(self) -> datetime:
        return now_utc()

    def calendar_day(self, moment: Optional[datetime] = None) -> date:
        """
        Calendar day of `moment` in this clock's timezone

        Args:
            moment: Instant to convert (defaults to now). Naive values are UTC.

        Returns:
            Local date
        """
        if moment is None:
            moment = self.now()
        if moment.tzinfo is None:
            moment = moment.replace(tzinfo=ZoneInfo("UTC"))
        return moment.astimezone(self.timezone).date()

    def today(self) -> date:
        return self.calendar_day(self.now())

    def for_timezone(self, timezone: Union[str, ZoneInfo, None]) -> "SystemClock":
        """
        The same clock with calendar days taken in another timezone

        Returns self when timezone is empty.
        """
        if not timezone:
            return self
        return ZonedClock(self, timezone)


class FixedClock(SystemClock):
    """Deterministic clock for tests and replays"""

    def __init__(self, moment: datetime, timezone: Union[str, ZoneInfo, None] = None):
        super().__init__(timezone)
        self._moment = to_utc(moment, self.timezone)

    def now(self) -> datetime:
        return self._moment

    def advance(self, **delta) -> None:
        """Move the clock forward, e.g. clock.advance(days=1)"""
        self._moment = self._moment + timedelta(**delta)

    def set(self, moment: datetime) -> None:
        self._moment = to_utc(moment, self.timezone)


class ZonedClock(SystemClock):
    """Another clock's instants, read in a user's own timezone"""

    def __init__(self, base: SystemClock, timezone: Union[str, ZoneInfo, None]):
        super().__init__(timezone)
        self.base = base

    def now(self) -> datetime:
        return self.base.now()

    def for_timezone(self, timezone: Union[str, ZoneInfo, None]) -> SystemClock:
        return self.base.for_timezone(timezone)
