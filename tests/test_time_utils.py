"""Tests for time utilities."""

from datetime import date, datetime, timedelta
from zoneinfo import ZoneInfo

from touchbase.utils.time_utils import (
    days_between,
    ensure_utc,
    format_relative_time,
    from_iso,
    from_utc,
    local_datetime_utc,
    local_today,
    to_iso,
    to_utc,
)


def test_to_utc():
    """Test timezone conversion to UTC."""
    # Create a datetime in EDT (March is DST)
    dt = datetime(2026, 3, 15, 14, 30, tzinfo=ZoneInfo("America/New_York"))
    utc_dt = to_utc(dt, "America/New_York")

    assert utc_dt.tzinfo == ZoneInfo("UTC")
    # EDT is UTC-4, so 14:30 EDT = 18:30 UTC
    assert utc_dt.hour == 18


def test_from_utc():
    """Test timezone conversion from UTC."""
    dt = datetime(2026, 3, 15, 19, 30, tzinfo=ZoneInfo("UTC"))
    edt_dt = from_utc(dt, "America/New_York")

    assert edt_dt.tzinfo == ZoneInfo("America/New_York")
    assert edt_dt.hour == 15  # 19:30 UTC = 15:30 EDT


def test_ensure_utc_treats_naive_as_utc():
    naive = datetime(2024, 1, 1, 8, 0)

    assert ensure_utc(naive) == datetime(2024, 1, 1, 8, 0, tzinfo=ZoneInfo("UTC"))


def test_local_today_crosses_midnight():
    """01:00 UTC is still the previous day in New York."""
    now = datetime(2024, 3, 20, 1, 0, tzinfo=ZoneInfo("UTC"))

    assert local_today(now, "America/New_York") == date(2024, 3, 19)
    assert local_today(now, "UTC") == date(2024, 3, 20)


def test_local_datetime_utc():
    dt = local_datetime_utc(date(2024, 7, 4), 9, "Europe/Berlin")

    # CEST is UTC+2
    assert dt == datetime(2024, 7, 4, 7, 0, tzinfo=ZoneInfo("UTC"))


def test_days_between():
    start = datetime(2024, 3, 1, 0, 0, tzinfo=ZoneInfo("UTC"))

    assert days_between(start, start + timedelta(days=2, hours=12)) == 2.5
    assert days_between(start, start - timedelta(days=1)) == -1


def test_iso_text_sorts_like_time():
    """Stored timestamps compare correctly as plain strings."""
    earlier = datetime(2024, 3, 1, 9, 0, tzinfo=ZoneInfo("UTC"))
    later = datetime(2024, 3, 1, 9, 0, 0, 500, tzinfo=ZoneInfo("UTC"))
    # Same instant expressed in another zone
    same_as_earlier = datetime(2024, 3, 1, 4, 0, tzinfo=ZoneInfo("America/New_York"))

    assert to_iso(earlier) < to_iso(later)
    assert to_iso(same_as_earlier) == to_iso(earlier)
    assert from_iso(to_iso(later)) == later
    assert from_iso(None) is None


def test_format_relative_time():
    """Test relative time formatting."""
    now = datetime(2026, 3, 15, 12, 0, tzinfo=ZoneInfo("UTC"))

    # Future
    future_5min = datetime(2026, 3, 15, 12, 5, tzinfo=ZoneInfo("UTC"))
    assert format_relative_time(future_5min, now) == "in 5 minutes"

    tomorrow = now + timedelta(days=1, hours=2)
    assert format_relative_time(tomorrow, now) == "tomorrow"

    in_three_days = now + timedelta(days=3)
    assert format_relative_time(in_three_days, now) == "in 3 days"

    # Overdue
    overdue_2h = datetime(2026, 3, 15, 10, 0, tzinfo=ZoneInfo("UTC"))
    assert format_relative_time(overdue_2h, now) == "2 hours overdue"

    overdue_1d = now - timedelta(days=1, hours=3)
    assert format_relative_time(overdue_1d, now) == "1 day overdue"
