"""Unit tests for Datetime Helpers (progression/utils/datetime_helpers.py)"""
import pytest
from datetime import datetime, date, timezone, timedelta
from zoneinfo import ZoneInfo

from progression.utils.datetime_helpers import (
    FixedClock,
    SystemClock,
    days_between,
    iter_days,
    now_utc,
    resolve_timezone,
    to_utc,
)


# ============================================================================
# UTC Time Tests
# ============================================================================

def test_now_utc_returns_aware_utc_time():
    """Test that now_utc returns UTC datetime"""
    result = now_utc()

    assert result.utcoffset() == timedelta(0)
    assert isinstance(result, datetime)


def test_now_utc_is_current():
    """Test that now_utc returns current time"""
    before = datetime.now(timezone.utc)
    result = now_utc()
    after = datetime.now(timezone.utc)

    assert before <= result <= after


# ============================================================================
# Timezone Conversion Tests
# ============================================================================

def test_resolve_timezone_by_name():
    assert resolve_timezone("Europe/Oslo") == ZoneInfo("Europe/Oslo")


def test_resolve_timezone_invalid_falls_back_to_utc():
    """Invalid names never raise"""
    assert resolve_timezone("Mars/Olympus_Mons") == ZoneInfo("UTC")


def test_to_utc_naive_interpreted_in_timezone():
    """Naive 09:00 in New York is 14:00 UTC in winter"""
    result = to_utc(datetime(2024, 1, 15, 9, 0), "America/New_York")

    assert result.hour == 14
    assert result.utcoffset() == timedelta(0)


def test_to_utc_aware_is_converted():
    oslo = datetime(2024, 6, 1, 12, 0, tzinfo=ZoneInfo("Europe/Oslo"))
    assert to_utc(oslo).hour == 10


# ============================================================================
# Calendar Day Tests
# ============================================================================

def test_days_between():
    assert days_between(date(2024, 1, 1), date(2024, 1, 8)) == 7
    assert days_between(date(2024, 1, 8), date(2024, 1, 1)) == -7


def test_iter_days_inclusive():
    days = list(iter_days(date(2024, 2, 27), date(2024, 3, 1)))
    assert days == [date(2024, 2, 27), date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]


def test_iter_days_empty_when_reversed():
    assert list(iter_days(date(2024, 3, 2), date(2024, 3, 1))) == []


def test_calendar_day_uses_clock_timezone():
    """23:30 local in Tokyo is still the previous day in UTC"""
    moment = datetime(2024, 3, 4, 14, 30, tzinfo=timezone.utc)

    assert SystemClock("Asia/Tokyo").calendar_day(moment) == date(2024, 3, 4)
    assert SystemClock("America/Los_Angeles").calendar_day(moment) == date(2024, 3, 4)
    assert SystemClock("Asia/Tokyo").calendar_day(moment + timedelta(hours=1)) == date(2024, 3, 5)


def test_calendar_day_naive_treated_as_utc():
    clock = SystemClock("UTC")
    assert clock.calendar_day(datetime(2024, 3, 4, 23, 59)) == date(2024, 3, 4)


# ============================================================================
# FixedClock Tests
# ============================================================================

class TestFixedClock:
    """Deterministic clock used by tests and replays"""

    def test_now_and_today(self, fixed_clock, start_moment):
        assert fixed_clock.now() == start_moment
        assert fixed_clock.today() == date(2024, 3, 4)

    def test_advance(self, fixed_clock):
        fixed_clock.advance(days=1, hours=13)
        assert fixed_clock.today() == date(2024, 3, 6)

    def test_set_naive_uses_clock_timezone(self):
        clock = FixedClock(datetime(2024, 1, 1, tzinfo=timezone.utc), "Europe/Oslo")
        clock.set(datetime(2024, 1, 2, 0, 30))

        assert clock.now() == datetime(2024, 1, 1, 23, 30, tzinfo=timezone.utc)
        assert clock.today() == date(2024, 1, 2)

    @pytest.mark.parametrize("tz,expected", [
        ("UTC", date(2024, 3, 4)),
        ("Pacific/Kiritimati", date(2024, 3, 5)),
        ("Pacific/Pago_Pago", date(2024, 3, 4)),
    ])
    def test_today_depends_on_timezone(self, start_moment, tz, expected):
        assert FixedClock(start_moment, tz).today() == expected


class TestForTimezone:
    """Per-user views of one clock"""

    def test_empty_timezone_returns_same_clock(self, fixed_clock):
        assert fixed_clock.for_timezone(None) is fixed_clock
        assert fixed_clock.for_timezone("") is fixed_clock

    def test_view_follows_base_clock(self, fixed_clock):
        tokyo = fixed_clock.for_timezone("Asia/Tokyo")
        assert tokyo.now() == fixed_clock.now()
        assert tokyo.today() == date(2024, 3, 4)

        fixed_clock.advance(hours=13)

        assert tokyo.today() == date(2024, 3, 5)
        assert fixed_clock.today() == date(2024, 3, 5)

    def test_views_do_not_nest(self, fixed_clock):
        oslo = fixed_clock.for_timezone("Asia/Tokyo").for_timezone("Europe/Oslo")
        assert oslo.base is fixed_clock
        assert oslo.timezone == ZoneInfo("Europe/Oslo")
