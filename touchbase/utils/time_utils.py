"""Time and timezone utilities."""

from datetime import date, datetime, time
from zoneinfo import ZoneInfo

UTC = ZoneInfo("UTC")

SECONDS_PER_DAY = 86400


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Normalize a datetime to aware UTC. Naive values are taken as UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_utc(dt: datetime, tz: str) -> datetime:
    """Convert a datetime in the given timezone to UTC."""
    if dt.tzinfo is None:
        # Assume it's in the given timezone
        dt = dt.replace(tzinfo=ZoneInfo(tz))
    return dt.astimezone(UTC)


def from_utc(dt: datetime, tz: str) -> datetime:
    """Convert a UTC datetime to the given timezone."""
    return ensure_utc(dt).astimezone(ZoneInfo(tz))


def local_today(now: datetime, tz: str) -> date:
    """The calendar date it is in ``tz`` at instant ``now``."""
    return from_utc(now, tz).date()


def local_datetime_utc(day: date, hour: int, tz: str) -> datetime:
    """The UTC instant of ``hour``:00 local time on ``day`` in ``tz``."""
    return to_utc(datetime.combine(day, time(hour=hour)), tz)


def days_between(start: datetime, end: datetime) -> float:
    """Fractional days from start to end (negative if end is earlier)."""
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / SECONDS_PER_DAY


def to_iso(dt: datetime) -> str:
    """Serialize as UTC ISO-8601 with fixed precision so text order is time order."""
    return ensure_utc(dt).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    """Parse a stored timestamp back to aware UTC."""
    if not value:
        return None
    return ensure_utc(datetime.fromisoformat(value))


def format_relative_time(dt: datetime, now: datetime | None = None) -> str:
    """Format a datetime relative to now.

    Examples:
        "in 5 minutes"
        "in 2 hours"
        "tomorrow"
        "2 days overdue"
    """
    if now is None:
        now = utcnow()

    delta = ensure_utc(dt) - ensure_utc(now)
    total_seconds = delta.total_seconds()

    if total_seconds < 0:
        abs_seconds = abs(total_seconds)
        if abs_seconds < 3600:
            minutes = int(abs_seconds / 60)
            return f"{minutes} minute{'s' if minutes != 1 else ''} overdue"
        elif abs_seconds < SECONDS_PER_DAY:
            hours = int(abs_seconds / 3600)
            return f"{hours} hour{'s' if hours != 1 else ''} overdue"
        else:
            days = int(abs_seconds / SECONDS_PER_DAY)
            return f"{days} day{'s' if days != 1 else ''} overdue"
    else:
        if total_seconds < 3600:
            minutes = int(total_seconds / 60)
            return f"in {minutes} minute{'s' if minutes != 1 else ''}"
        elif total_seconds < SECONDS_PER_DAY:
            hours = int(total_seconds / 3600)
            return f"in {hours} hour{'s' if hours != 1 else ''}"
        elif total_seconds < 2 * SECONDS_PER_DAY:
            return "tomorrow"
        else:
            days = int(total_seconds / SECONDS_PER_DAY)
            return f"in {days} days"
