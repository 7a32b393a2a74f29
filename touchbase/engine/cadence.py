"""Cadence calculator - pure due-date math for contacts and birthdays.

Every consumer that needs next-due or overdue figures calls into this
module; nothing else does day arithmetic on contacts.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Iterable, Literal

from dateutil.relativedelta import relativedelta

from touchbase.db.models import Contact
from touchbase.engine.errors import (
    InvalidBirthdayError,
    InvalidCadenceError,
    MissingLastContactError,
)
from touchbase.parser.birthday import parse_birthday
from touchbase.utils.constants import (
    BIRTHDAY_WEEK_LEAD_DAYS,
    FREQUENCY_DAYS,
    FREQUENCY_OPTIONS,
    PRIORITY_THRESHOLDS,
)
from touchbase.utils.time_utils import days_between, ensure_utc, utcnow

logger = logging.getLogger(__name__)

Priority = Literal["low", "medium", "high", "urgent"]


@dataclass(frozen=True)
class BirthdayOccurrences:
    """Next birthday date and the date a week before it."""

    this_occurrence: date
    week_before: date


@dataclass
class UpcomingBirthday:
    contact: Contact
    birthday_date: date
    days_until: int


def cadence_days(frequency: str) -> int:
    """Day count for a cadence.

    Raises:
        InvalidCadenceError: for anything outside the five supported values.
    """
    try:
        return FREQUENCY_DAYS[frequency]
    except (KeyError, TypeError):
        raise InvalidCadenceError(frequency) from None


def frequency_display_text(frequency: str) -> str:
    """Wording used for a cadence inside messages ("bi-annual", ...)."""
    for option in FREQUENCY_OPTIONS:
        if option.value == frequency:
            return option.display_text
    raise InvalidCadenceError(frequency)


def next_reminder_date(
    frequency: str, last_contacted_at: datetime | None, now: datetime | None = None
) -> datetime:
    """When the next check-in is due.

    Never contacted means due now. Otherwise it's last contact plus the
    cadence's fixed day count ("monthly" is exactly 30 days).
    """
    days = cadence_days(frequency)
    if last_contacted_at is None:
        return ensure_utc(now or utcnow())
    return ensure_utc(last_contacted_at) + timedelta(days=days)


def days_overdue(
    frequency: str, last_contacted_at: datetime | None, now: datetime | None = None
) -> int:
    """Whole days since last contact minus the cadence.

    Negative while not yet due, zero on the due day, positive when overdue.

    Raises:
        MissingLastContactError: if last_contacted_at is None. Callers
            must check presence first (a never-contacted contact is simply
            due, see needs_communication_reminder).
    """
    days = cadence_days(frequency)
    if last_contacted_at is None:
        raise MissingLastContactError("days_overdue() requires last_contacted_at")

    elapsed = days_between(last_contacted_at, now or utcnow())
    return math.floor(elapsed) - days


def days_until_next_reminder(
    frequency: str, last_contacted_at: datetime | None, now: datetime | None = None
) -> int:
    """Days (rounded up) until the next check-in; negative when overdue."""
    now = now or utcnow()
    return math.ceil(days_between(now, next_reminder_date(frequency, last_contacted_at, now)))


def needs_communication_reminder(contact: Contact, now: datetime | None = None) -> bool:
    """True if the contact has a cadence, isn't paused, and is due."""
    if not contact.communication_frequency or contact.reminders_paused:
        return False

    now = ensure_utc(now or utcnow())
    due = next_reminder_date(contact.communication_frequency, contact.last_contacted_at, now)
    return due <= now


def reminder_priority(
    frequency: str, last_contacted_at: datetime | None, now: datetime | None = None
) -> Priority:
    """Bucket how overdue a contact is relative to its cadence."""
    days = cadence_days(frequency)
    if last_contacted_at is None:
        return "urgent"

    overdue = days_overdue(frequency, last_contacted_at, now)
    if overdue <= 0:
        return "low"

    ratio = overdue / days
    for priority, threshold in PRIORITY_THRESHOLDS:
        if ratio >= threshold:
            return priority  # type: ignore
    return "low"


def birthday_in_year(month: int, day: int, year: int) -> date:
    """Birthday's date in a given year.

    relativedelta clamps the day to the month's length, so Feb 29 lands
    on Feb 28 in non-leap years.
    """
    return date(year, 1, 1) + relativedelta(month=month, day=day)


def birthday_occurrences(birthday: str, reference: date | None = None) -> BirthdayOccurrences:
    """Next occurrence of an MM-DD birthday on or after the reference date.

    If this year's date has already passed, rolls to next year. The
    birthday itself counts as not yet passed.
    """
    month, day = parse_birthday(birthday)
    if reference is None:
        reference = utcnow().date()
    elif isinstance(reference, datetime):
        reference = reference.date()

    occurrence = birthday_in_year(month, day, reference.year)
    if occurrence < reference:
        occurrence = birthday_in_year(month, day, reference.year + 1)

    return BirthdayOccurrences(
        this_occurrence=occurrence,
        week_before=occurrence - timedelta(days=BIRTHDAY_WEEK_LEAD_DAYS),
    )


def upcoming_birthdays(
    contacts: Iterable[Contact], today: date, within_days: int = 30
) -> list[UpcomingBirthday]:
    """Contacts whose next birthday falls within the window, soonest first."""
    results = []
    for contact in contacts:
        if not contact.birthday:
            continue
        try:
            occurrences = birthday_occurrences(contact.birthday, today)
        except InvalidBirthdayError as e:
            logger.warning(f"Skipping contact {contact.id} with bad birthday: {e}")
            continue

        days_until = (occurrences.this_occurrence - today).days
        if days_until <= within_days:
            results.append(UpcomingBirthday(contact, occurrences.this_occurrence, days_until))

    return sorted(results, key=lambda b: (b.days_until, b.contact.first_name))


def urgency_key(scheduled_for: datetime, now: datetime | None = None) -> tuple:
    """Sort key for "most urgent first" lists.

    Overdue items (a positive whole number of days past due) come first,
    most overdue first; everything else follows, soonest due first.
    """
    scheduled_for = ensure_utc(scheduled_for)
    overdue_days = math.floor(days_between(scheduled_for, now or utcnow()))
    if overdue_days > 0:
        return (0, -overdue_days, scheduled_for)
    return (1, 0, scheduled_for)
