"""Birthday (MM-DD) parsing and validation."""

from datetime import date

from touchbase.engine.errors import InvalidBirthdayError
from touchbase.parser.patterns import (
    BIRTHDAY_INPUT_PATTERNS,
    BIRTHDAY_PATTERN,
    DAY_MONTH_PATTERN,
    DAYS_IN_MONTH,
    MONTH_DAY_PATTERN,
    MONTH_NAMES,
)


def _is_real_month_day(month: int, day: int) -> bool:
    return 1 <= month <= 12 and 1 <= day <= DAYS_IN_MONTH[month - 1]


def parse_birthday(value: str) -> tuple[int, int]:
    """Split a stored MM-DD birthday into (month, day).

    Raises:
        InvalidBirthdayError: if the value is not a real month/day.
    """
    match = BIRTHDAY_PATTERN.match(value or "")
    if not match:
        raise InvalidBirthdayError(f"Birthday must be MM-DD, got {value!r}")

    month, day = int(match.group(1)), int(match.group(2))
    if not _is_real_month_day(month, day):
        raise InvalidBirthdayError(f"No such month/day: {value!r}")
    return month, day


def validate_birthday(value: str) -> bool:
    """Check a birthday is in canonical MM-DD form."""
    try:
        parse_birthday(value)
    except InvalidBirthdayError:
        return False
    return True


def format_month_day(month: int, day: int) -> str:
    return f"{month:02d}-{day:02d}"


def parse_birthday_input(text: str) -> str | None:
    """Normalize free-form birthday input to MM-DD.

    Accepts "3-15", "03/15", "March 15", "Mar 15th", "15 March".

    Returns:
        The MM-DD string, or None if not recognized.
    """
    cleaned = " ".join(text.strip().lower().split())

    for pattern in BIRTHDAY_INPUT_PATTERNS:
        match = pattern.match(cleaned)
        if match:
            month, day = int(match.group(1)), int(match.group(2))
            if _is_real_month_day(month, day):
                return format_month_day(month, day)
            return None

    match = MONTH_DAY_PATTERN.match(cleaned)
    if match:
        month_name, day_text = match.group(1), match.group(2)
    else:
        match = DAY_MONTH_PATTERN.match(cleaned)
        if not match:
            return None
        day_text, month_name = match.group(1), match.group(2)

    month = MONTH_NAMES.get(month_name)
    day = int(day_text)
    if month is None or not _is_real_month_day(month, day):
        return None
    return format_month_day(month, day)


def format_birthday(value: str) -> str:
    """Render MM-DD for display, e.g. "March 15". Invalid values pass through."""
    try:
        month, day = parse_birthday(value)
    except InvalidBirthdayError:
        return value
    # 2000 is a leap year, so Feb 29 renders
    return f"{date(2000, month, day):%B} {day}"
