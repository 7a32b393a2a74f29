"""Reminder message text."""

from datetime import date

from touchbase.db.models import Contact
from touchbase.engine.cadence import frequency_display_text
from touchbase.engine.errors import InvalidMessageError
from touchbase.utils.constants import BIRTHDAY_WEEK_LEAD_DAYS, MAX_MESSAGE_LENGTH


def validate_message(message: str) -> str:
    """Trim a message and enforce the 1-200 character bound.

    Raises:
        InvalidMessageError: if empty after trimming or too long.
    """
    message = (message or "").strip()
    if not message:
        raise InvalidMessageError("Message is required and cannot be empty")
    if len(message) > MAX_MESSAGE_LENGTH:
        raise InvalidMessageError(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")
    return message


def fit_message(message: str) -> str:
    """Trim and shorten generated text so it always passes validate_message."""
    message = message.strip()
    if len(message) > MAX_MESSAGE_LENGTH:
        message = message[: MAX_MESSAGE_LENGTH - 1].rstrip() + "…"
    return validate_message(message)


def communication_message(contact: Contact, days_overdue: int | None = None) -> str:
    """Check-in nudge for a contact's cadence."""
    name = contact.first_name
    if not contact.communication_frequency:
        return fit_message(f"Reminder to contact {name}")

    frequency_text = frequency_display_text(contact.communication_frequency)
    if days_overdue and days_overdue > 0:
        return fit_message(
            f"Time to reach out to {name}! It's been {days_overdue} "
            f"day{'s' if days_overdue != 1 else ''} past your {frequency_text} reminder."
        )
    return fit_message(f"Time for your {frequency_text} check-in with {name}!")


def birthday_week_message(contact: Contact, occurrence: date) -> str:
    return fit_message(
        f"{contact.first_name}'s birthday is coming up in {BIRTHDAY_WEEK_LEAD_DAYS} days "
        f"({occurrence:%B} {occurrence.day})!"
    )


def birthday_day_message(contact: Contact) -> str:
    return fit_message(f"Today is {contact.first_name}'s birthday! 🎉")
