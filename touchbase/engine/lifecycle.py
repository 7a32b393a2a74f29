"""Reminder lifecycle - dismiss, mark sent, mark contacted, set a birthday.

Status machine: pending -> sent | dismissed. A sent reminder may still be
dismissed. Dismissing an already-dismissed reminder is a no-op success.
"""

import logging
from datetime import datetime

from touchbase.db.models import Contact, Reminder
from touchbase.db.repository import Repository
from touchbase.engine.cadence import next_reminder_date
from touchbase.engine.errors import InvalidBirthdayError, InvalidTransitionError, NotFoundError
from touchbase.engine.reconciler import Reconciler
from touchbase.parser.birthday import parse_birthday_input
from touchbase.utils.time_utils import ensure_utc, utcnow

logger = logging.getLogger(__name__)


async def _get_reminder_or_raise(repo: Repository, reminder_id: int) -> Reminder:
    reminder = await repo.get_reminder(reminder_id)
    if reminder is None:
        raise NotFoundError("Reminder", reminder_id)
    return reminder


async def dismiss(repo: Repository, reminder_id: int) -> Reminder:
    """Dismiss a pending or sent reminder.

    Raises:
        NotFoundError: no reminder with that id.
    """
    reminder = await _get_reminder_or_raise(repo, reminder_id)

    if reminder.status == "dismissed":
        logger.debug(f"Reminder {reminder_id} already dismissed")
        return reminder

    dismissed = await repo.update_reminder_status(reminder_id, "dismissed")
    logger.info(f"Dismissed {reminder.type} reminder {reminder_id} (contact {reminder.contact_id})")
    return dismissed


async def mark_sent(repo: Repository, reminder_id: int, now: datetime | None = None) -> Reminder:
    """Record that a reminder was delivered.

    Raises:
        NotFoundError: no reminder with that id.
        InvalidTransitionError: the reminder was already dismissed.
    """
    reminder = await _get_reminder_or_raise(repo, reminder_id)

    if reminder.status == "sent":
        return reminder
    if reminder.status == "dismissed":
        raise InvalidTransitionError(f"Reminder {reminder_id} is dismissed and can't be sent")

    return await repo.update_reminder_status(
        reminder_id, "sent", sent_at=ensure_utc(now or utcnow())
    )


async def mark_contacted(
    reconciler: Reconciler,
    contact_id: int,
    contacted_at: datetime | None = None,
    now: datetime | None = None,
) -> Reminder | None:
    """Record a check-in and schedule the next one.

    Sets last_contacted_at, dismisses the outstanding communication
    reminder, and schedules the next occurrence immediately. A reminder
    already due at the next check-in is kept, so logging the same
    check-in twice leaves it in place. The steps run under the contact's
    lock but are not one store transaction: if the store fails partway,
    the next sweep recomputes the due date from last_contacted_at and
    replaces any mismatching reminder.

    Returns:
        The pending communication reminder for the next check-in, or None
        if the contact has no cadence or is paused.

    Raises:
        NotFoundError: no contact with that id.
    """
    repo = reconciler.repo
    now = ensure_utc(now or utcnow())
    contacted_at = ensure_utc(contacted_at or now)

    async with reconciler.contact_lock(contact_id):
        contact = await repo.get_contact(contact_id)
        if contact is None:
            raise NotFoundError("Contact", contact_id)

        contact = await repo.update_last_contacted(contact_id, contacted_at)

        next_due = None
        if contact.communication_frequency and not contact.reminders_paused:
            next_due = next_reminder_date(contact.communication_frequency, contacted_at, now)

        outstanding = await repo.list_reminders(
            contact_id=contact_id, status="pending", types=["communication"]
        )
        dismissed = 0
        for reminder in outstanding:
            if reminder.scheduled_for == next_due:
                continue
            await repo.update_reminder_status(reminder.id, "dismissed")  # type: ignore
            dismissed += 1

        await reconciler.reconcile_contact(contact, now, schedule_ahead=True)
        scheduled = await repo.list_reminders(
            contact_id=contact_id, status="pending", types=["communication"]
        )

    logger.info(f"Contact {contact_id} marked contacted; dismissed {dismissed} reminder(s)")
    return scheduled[0] if scheduled else None


async def set_birthday(
    reconciler: Reconciler, contact_id: int, text: str | None, now: datetime | None = None
) -> Contact:
    """Set a contact's birthday from free-form input and reschedule.

    Empty text clears the birthday, which purges its pending reminders.

    Raises:
        InvalidBirthdayError: the text isn't a recognisable month and day.
        NotFoundError: no contact with that id.
    """
    birthday = None
    if text and text.strip():
        birthday = parse_birthday_input(text)
        if birthday is None:
            raise InvalidBirthdayError(f"Couldn't read a birthday from {text!r}")

    async with reconciler.contact_lock(contact_id):
        contact = await reconciler.repo.set_birthday(contact_id, birthday)
        await reconciler.reconcile_contact(contact, now)

    logger.info(f"Contact {contact_id} birthday set to {birthday}")
    return contact
