"""Constants and default values."""

from dataclasses import dataclass


@dataclass
class FrequencyOption:
    """A selectable communication cadence."""

    value: str
    label: str
    days: int  # fixed day count, not calendar months
    display_text: str  # used inside reminder messages


FREQUENCY_OPTIONS = [
    FrequencyOption("weekly", "Weekly", 7, "weekly"),
    FrequencyOption("monthly", "Monthly", 30, "monthly"),
    FrequencyOption("quarterly", "Quarterly", 90, "quarterly"),
    FrequencyOption("biannually", "Bi-annually", 180, "bi-annual"),
    FrequencyOption("annually", "Annually", 365, "annual"),
]

FREQUENCY_DAYS = {option.value: option.days for option in FREQUENCY_OPTIONS}

REMINDER_TYPES = ("communication", "birthday_week", "birthday_day")
REMINDER_STATUSES = ("pending", "sent", "dismissed")
TERMINAL_STATUSES = ("sent", "dismissed")

# A never-contacted contact is due "now"; a check-in reminder sent or
# dismissed this recently counts as handled
RECENT_DISMISSAL_DAYS = 2

# Reminder message bounds
MIN_MESSAGE_LENGTH = 1
MAX_MESSAGE_LENGTH = 200

# Birthday week reminder lead time
BIRTHDAY_WEEK_LEAD_DAYS = 7

# Priority thresholds on days_overdue / cadence_days
PRIORITY_THRESHOLDS = [
    ("urgent", 2.0),
    ("high", 1.0),
    ("medium", 0.5),
]

# Defaults
DEFAULT_TIMEZONE = "UTC"
DEFAULT_BIRTHDAY_REMINDER_HOUR = 9
DEFAULT_LOOKAHEAD_DAYS = 7
DEFAULT_UPCOMING_DAYS = 7
DEFAULT_CLEANUP_AFTER_DAYS = 30
