"""Exception types raised by the reminder engine and repository."""

from dataclasses import dataclass


class TouchbaseError(Exception):
    """Base class for all touchbase errors."""


class NotFoundError(TouchbaseError, LookupError):
    """A contact or reminder id does not exist."""

    def __init__(self, kind: str, record_id: int):
        super().__init__(f"{kind} {record_id} not found")
        self.kind = kind
        self.id = record_id


class InvalidCadenceError(TouchbaseError, ValueError):
    """A communication frequency outside the supported set."""

    def __init__(self, frequency: object):
        super().__init__(f"Unknown communication frequency: {frequency!r}")
        self.frequency = frequency


class InvalidBirthdayError(TouchbaseError, ValueError):
    """A birthday that is not a real MM-DD month/day."""


class MissingLastContactError(TouchbaseError, ValueError):
    """days_overdue() needs a last contact timestamp; callers must check first."""


class InvalidTransitionError(TouchbaseError):
    """A reminder status change the lifecycle does not allow."""


class InvalidMessageError(TouchbaseError, ValueError):
    """Reminder message empty or longer than the 200 character limit."""


class DuplicateReminderError(TouchbaseError):
    """A second pending reminder for the same (contact, type) was rejected."""

    def __init__(self, contact_id: int, reminder_type: str):
        super().__init__(
            f"Contact {contact_id} already has a pending {reminder_type} reminder"
        )
        self.contact_id = contact_id
        self.reminder_type = reminder_type


@dataclass
class ReconciliationFailure:
    """One contact's failure during a batch sweep."""

    contact_id: int | None
    operation: str  # "create", "purge" or "plan"
    error: str
