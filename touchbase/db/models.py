"""Data models."""

from dataclasses import dataclass
from datetime import datetime
from typing import Literal

CommunicationFrequency = Literal["weekly", "monthly", "quarterly", "biannually", "annually"]
ReminderType = Literal["communication", "birthday_week", "birthday_day"]
ReminderStatus = Literal["pending", "sent", "dismissed"]


@dataclass
class Contact:
    """A person we want to stay in touch with."""

    first_name: str
    last_name: str | None = None
    birthday: str | None = None  # MM-DD, no year
    communication_frequency: str | None = None
    last_contacted_at: datetime | None = None  # UTC
    reminders_paused: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None
    id: int | None = None

    @property
    def display_name(self) -> str:
        if self.last_name:
            return f"{self.first_name} {self.last_name}"
        return self.first_name


@dataclass
class Reminder:
    """A scheduled nudge about a contact."""

    contact_id: int
    type: ReminderType
    scheduled_for: datetime  # UTC
    message: str
    status: ReminderStatus = "pending"
    created_at: datetime | None = None
    sent_at: datetime | None = None  # set only on transition to sent
    id: int | None = None

    @property
    def is_active(self) -> bool:
        return self.status == "pending"


@dataclass
class ReminderWithContact:
    """Reminder joined with its owning contact."""

    contact: Contact
    reminder: Reminder
