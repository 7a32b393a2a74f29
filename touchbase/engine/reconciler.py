"""Reminder reconciler - keeps persisted reminders in line with what's owed.

The planning half is pure: given contacts and their reminders it decides
what to create, what is already satisfied and what is stale. A sent or
dismissed reminder satisfies its own occurrence. The Reconciler class
applies a plan through the repository.

Invariant: after a sweep, every active contact that is owed an unhandled
occurrence of a given type has exactly one pending reminder of that type.
Within one process a per-contact lock serialises read-decide-write; across
processes the partial unique index on (contact_id, type) WHERE
status = 'pending' rejects the loser of a race with DuplicateReminderError.
"""

import asyncio
import logging
from collections import Counter, defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import AsyncIterator, Iterable, List

from touchbase.db.models import Contact, Reminder, ReminderWithContact
from touchbase.db.repository import Repository
from touchbase.engine.cadence import (
    birthday_occurrences,
    days_overdue,
    next_reminder_date,
    urgency_key,
)
from touchbase.engine.errors import DuplicateReminderError, ReconciliationFailure
from touchbase.engine.messages import (
    birthday_day_message,
    birthday_week_message,
    communication_message,
    validate_message,
)
from touchbase.utils.constants import (
    DEFAULT_BIRTHDAY_REMINDER_HOUR,
    DEFAULT_CLEANUP_AFTER_DAYS,
    DEFAULT_LOOKAHEAD_DAYS,
    DEFAULT_TIMEZONE,
    DEFAULT_UPCOMING_DAYS,
    FREQUENCY_DAYS,
    RECENT_DISMISSAL_DAYS,
    REMINDER_TYPES,
    TERMINAL_STATUSES,
)
from touchbase.utils.time_utils import UTC, ensure_utc, local_datetime_utc, local_today, utcnow

logger = logging.getLogger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass
class ReminderSettings:
    """Knobs for where reminders land in time."""

    timezone: str = DEFAULT_TIMEZONE
    birthday_hour: int = DEFAULT_BIRTHDAY_REMINDER_HOUR
    # Batch sweeps create communication reminders due within this many days.
    # None means no horizon.
    lookahead_days: int | None = DEFAULT_LOOKAHEAD_DAYS


@dataclass
class ContactPlan:
    """Delta for a single contact."""

    contact_id: int | None
    to_create: List[Reminder] = field(default_factory=list)
    satisfied: List[Reminder] = field(default_factory=list)
    stale: List[Reminder] = field(default_factory=list)

    @property
    def is_noop(self) -> bool:
        return not self.to_create and not self.stale


@dataclass
class ReconciliationPlan:
    """Delta for the whole contact set."""

    contacts: dict[int, ContactPlan] = field(default_factory=dict)
    orphans: List[Reminder] = field(default_factory=list)  # contact no longer exists
    failures: List[ReconciliationFailure] = field(default_factory=list)

    @property
    def to_create(self) -> List[Reminder]:
        return [r for plan in self.contacts.values() for r in plan.to_create]

    @property
    def satisfied(self) -> List[Reminder]:
        return [r for plan in self.contacts.values() for r in plan.satisfied]

    @property
    def stale(self) -> List[Reminder]:
        return self.orphans + [r for plan in self.contacts.values() for r in plan.stale]


@dataclass
class GenerationResult:
    created: int = 0
    skipped: int = 0
    purged: int = 0
    contacts: int = 0
    errors: List[ReconciliationFailure] = field(default_factory=list)


@dataclass
class RefreshResult:
    deleted: int = 0
    created: int = 0
    contacts: int = 0
    errors: List[ReconciliationFailure] = field(default_factory=list)


@dataclass
class ReminderStats:
    pending: int = 0
    overdue: int = 0
    scheduled: int = 0
    by_type: dict[str, int] = field(default_factory=dict)
    by_frequency: dict[str, int] = field(default_factory=dict)


# Planning (pure)


def _expected_communication(
    contact: Contact, now: datetime, settings: ReminderSettings, schedule_ahead: bool
) -> tuple[datetime | None, Reminder | None]:
    """Return (expected due date, reminder to create if none matches).

    Expected date None means any pending reminder is acceptable: a
    never-contacted contact is due "now", which moves every call.
    """
    frequency = contact.communication_frequency
    due = next_reminder_date(frequency, contact.last_contacted_at, now)  # type: ignore

    if not schedule_ahead and settings.lookahead_days is not None:
        if due > now + timedelta(days=settings.lookahead_days):
            return due, None

    overdue = None
    if contact.last_contacted_at is not None:
        overdue = days_overdue(frequency, contact.last_contacted_at, now)  # type: ignore

    reminder = Reminder(
        contact_id=contact.id,  # type: ignore
        type="communication",
        scheduled_for=due,
        message=communication_message(contact, overdue),
    )
    expected = due if contact.last_contacted_at is not None else None
    return expected, reminder


def _expected_birthdays(
    contact: Contact, now: datetime, settings: ReminderSettings
) -> dict[str, Reminder]:
    today = local_today(now, settings.timezone)
    occurrences = birthday_occurrences(contact.birthday, today)  # type: ignore

    return {
        "birthday_week": Reminder(
            contact_id=contact.id,  # type: ignore
            type="birthday_week",
            scheduled_for=local_datetime_utc(
                occurrences.week_before, settings.birthday_hour, settings.timezone
            ),
            message=birthday_week_message(contact, occurrences.this_occurrence),
        ),
        "birthday_day": Reminder(
            contact_id=contact.id,  # type: ignore
            type="birthday_day",
            scheduled_for=local_datetime_utc(
                occurrences.this_occurrence, settings.birthday_hour, settings.timezone
            ),
            message=birthday_day_message(contact),
        ),
    }


def _oldest_first(reminder: Reminder) -> tuple:
    return (reminder.created_at is None, reminder.created_at or _EPOCH, reminder.id or 0)


def _handled_occurrence(
    history: Iterable[Reminder], expected: datetime | None, now: datetime
) -> Reminder | None:
    """Find a sent or dismissed reminder that already covers this occurrence."""
    for reminder in history:
        if expected is not None:
            if reminder.scheduled_for == expected:
                return reminder
        elif abs(reminder.scheduled_for - now) <= timedelta(days=RECENT_DISMISSAL_DAYS):
            return reminder
    return None


def plan_contact(
    contact: Contact,
    reminders: Iterable[Reminder],
    now: datetime | None = None,
    settings: ReminderSettings | None = None,
    schedule_ahead: bool = False,
) -> ContactPlan:
    """Work out the delta for one contact.

    Args:
        contact: The contact being reconciled.
        reminders: That contact's reminders. Pending ones are matched
            against what is owed. A sent or dismissed one covers its own
            occurrence, which is then not scheduled again.
        now: Reference instant (UTC).
        settings: Timezone, birthday hour and lookahead horizon.
        schedule_ahead: Ignore the lookahead horizon for the communication
            reminder (used right after marking a contact as contacted).

    Raises:
        InvalidCadenceError, InvalidBirthdayError: bad contact data.
    """
    now = ensure_utc(now or utcnow())
    settings = settings or ReminderSettings()
    plan = ContactPlan(contact_id=contact.id)

    pending: dict[str, list[Reminder]] = defaultdict(list)
    history: dict[str, list[Reminder]] = defaultdict(list)
    for reminder in reminders:
        if reminder.is_active:
            pending[reminder.type].append(reminder)
        elif reminder.status in TERMINAL_STATUSES:
            history[reminder.type].append(reminder)

    # type -> (expected date or None for "any", reminder to create or None)
    wanted: dict[str, tuple[datetime | None, Reminder | None]] = {}
    if not contact.reminders_paused:
        if contact.communication_frequency:
            wanted["communication"] = _expected_communication(
                contact, now, settings, schedule_ahead
            )
        if contact.birthday:
            for reminder_type, reminder in _expected_birthdays(contact, now, settings).items():
                wanted[reminder_type] = (reminder.scheduled_for, reminder)

    for reminder_type in REMINDER_TYPES:
        existing = sorted(pending.get(reminder_type, []), key=_oldest_first)

        if reminder_type not in wanted:
            plan.stale.extend(existing)
            continue

        expected, candidate = wanted[reminder_type]
        keeper = None
        for reminder in existing:
            if keeper is None and (expected is None or reminder.scheduled_for == expected):
                keeper = reminder
            else:
                plan.stale.append(reminder)

        if keeper is None:
            keeper = _handled_occurrence(history.get(reminder_type, []), expected, now)

        if keeper is not None:
            plan.satisfied.append(keeper)
        elif candidate is not None:
            plan.to_create.append(candidate)

    return plan


def plan_reconciliation(
    contacts: Iterable[Contact],
    reminders: Iterable[Reminder],
    now: datetime | None = None,
    settings: ReminderSettings | None = None,
) -> ReconciliationPlan:
    """Compute the delta for every contact against every stored reminder.

    A contact whose data can't be planned (bad cadence or birthday) is
    left out of ``contacts`` and recorded in ``failures``; the rest of the
    set is still planned.
    """
    now = ensure_utc(now or utcnow())
    settings = settings or ReminderSettings()

    by_contact: dict[int, list[Reminder]] = defaultdict(list)
    for reminder in reminders:
        by_contact[reminder.contact_id].append(reminder)

    plan = ReconciliationPlan()
    known_ids = set()
    for contact in contacts:
        known_ids.add(contact.id)
        try:
            plan.contacts[contact.id] = plan_contact(  # type: ignore
                contact, by_contact.get(contact.id, []), now, settings  # type: ignore
            )
        except ValueError as e:
            plan.failures.append(ReconciliationFailure(contact.id, "plan", str(e)))

    for contact_id, contact_reminders in by_contact.items():
        if contact_id not in known_ids:
            plan.orphans.extend(r for r in contact_reminders if r.is_active)

    return plan


# Applying


class Reconciler:
    """Applies reconciliation plans through the repository."""

    def __init__(self, repo: Repository, settings: ReminderSettings | None = None):
        self.repo = repo
        self.settings = settings or ReminderSettings()
        self._locks: dict[int, asyncio.Lock] = {}
        self._lock_users: Counter[int] = Counter()

    @asynccontextmanager
    async def contact_lock(self, contact_id: int) -> AsyncIterator[None]:
        """Serialise read-decide-write for one contact.

        A contact's lock is dropped once nobody holds or waits on it.
        """
        lock = self._locks.get(contact_id)
        if lock is None:
            lock = self._locks[contact_id] = asyncio.Lock()
        self._lock_users[contact_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._lock_users[contact_id] -= 1
            if not self._lock_users[contact_id]:
                del self._lock_users[contact_id]
                del self._locks[contact_id]

    async def _apply(
        self, plan: ContactPlan, result: GenerationResult | None = None
    ) -> List[Reminder]:
        """Purge stale reminders, then create missing ones. Caller holds the lock.

        Each successful write is counted in ``result`` as it happens.
        """
        for reminder in plan.stale:
            if not await self.repo.delete_reminder(reminder.id, pending_only=True):  # type: ignore
                logger.debug(f"Stale reminder {reminder.id} is no longer pending; kept")
                continue
            if result is not None:
                result.purged += 1
            logger.debug(
                f"Purged stale {reminder.type} reminder {reminder.id} "
                f"for contact {reminder.contact_id}"
            )

        created = []
        for reminder in plan.to_create:
            reminder.message = validate_message(reminder.message)
            try:
                created.append(await self.repo.create_reminder(reminder))
            except DuplicateReminderError as e:
                logger.warning(f"{e}; treating as already scheduled")
                continue
            if result is not None:
                result.created += 1
        return created

    async def reconcile_contact(
        self, contact: Contact, now: datetime | None = None, schedule_ahead: bool = False
    ) -> List[Reminder]:
        """Re-read one contact's reminders and apply its delta.

        The caller must hold contact_lock(contact.id).

        Returns:
            The reminders created.
        """
        reminders = await self.repo.list_reminders(contact_id=contact.id)
        plan = plan_contact(contact, reminders, now, self.settings, schedule_ahead)
        return await self._apply(plan)

    async def generate_reminder_for_contact(
        self, contact: Contact, now: datetime | None = None, schedule_ahead: bool = True
    ) -> Reminder | None:
        """Bring one contact up to date right away instead of waiting for a sweep.

        Returns:
            The new communication reminder if one was created, else the
            first other reminder created, else None.
        """
        async with self.contact_lock(contact.id):  # type: ignore
            created = await self.reconcile_contact(contact, now, schedule_ahead)

        for reminder in created:
            if reminder.type == "communication":
                return reminder
        return created[0] if created else None

    async def _sweep_contact(
        self, contact_id: int, now: datetime, result: GenerationResult
    ) -> None:
        """Re-read, re-plan and apply one contact under its lock."""
        operation = "plan"
        try:
            async with self.contact_lock(contact_id):
                contact = await self.repo.get_contact(contact_id)
                if contact is None:
                    result.skipped += 1
                    return
                reminders = await self.repo.list_reminders(contact_id=contact_id)
                plan = plan_contact(contact, reminders, now, self.settings)

                operation = "apply"
                created = await self._apply(plan, result)
        except Exception as e:
            logger.error(f"Failed to {operation} reminders for contact {contact_id}: {e}")
            result.errors.append(ReconciliationFailure(contact_id, operation, str(e)))
            result.skipped += 1
            return

        if not created:
            result.skipped += 1

    async def generate_upcoming_reminders(self, now: datetime | None = None) -> GenerationResult:
        """Sweep every contact: purge stale reminders, create missing ones.

        A snapshot of the whole store picks the contacts with work to do;
        each of those is then re-read and re-planned under its own lock.
        One contact's failure is logged and recorded in ``errors``; the
        sweep carries on with the rest.
        """
        now = ensure_utc(now or utcnow())
        result = GenerationResult()

        contacts = await self.repo.list_contacts()
        snapshot = plan_reconciliation(
            contacts, await self.repo.list_reminders(), now, self.settings
        )
        result.contacts = len(contacts)

        for reminder in snapshot.orphans:
            try:
                if await self.repo.delete_reminder(reminder.id, pending_only=True):  # type: ignore
                    result.purged += 1
            except Exception as e:
                logger.error(f"Failed to purge orphaned reminder {reminder.id}: {e}")
                result.errors.append(ReconciliationFailure(reminder.contact_id, "purge", str(e)))

        to_visit = [
            contact_id
            for contact_id, contact_plan in snapshot.contacts.items()
            if not contact_plan.is_noop
        ]
        to_visit.extend(failure.contact_id for failure in snapshot.failures)
        result.skipped += len(contacts) - len(to_visit)

        for contact_id in to_visit:
            await self._sweep_contact(contact_id, now, result)

        logger.info(
            f"Reminder sweep: {result.created} created, {result.skipped} skipped, "
            f"{result.purged} purged, {len(result.errors)} errors "
            f"({result.contacts} contacts)"
        )
        return result


    async def refresh_all_reminders(self, now: datetime | None = None) -> RefreshResult:
        """Administrative repair: delete every pending reminder, then regenerate.

        Not atomic. If interrupted between the delete and the sweep, some
        contacts are left without reminders until this is run again.
        """
        deleted = await self.repo.delete_reminders(status="pending")
        logger.warning(f"Refresh: deleted {deleted} pending reminders")

        generated = await self.generate_upcoming_reminders(now)
        return RefreshResult(
            deleted=deleted,
            created=generated.created,
            contacts=generated.contacts,
            errors=generated.errors,
        )

    async def get_upcoming_reminders(
        self, within_days: int = DEFAULT_UPCOMING_DAYS, now: datetime | None = None
    ) -> List[ReminderWithContact]:
        """Pending reminders due in [now, now + within_days], soonest first."""
        now = ensure_utc(now or utcnow())
        return await self.repo.list_pending_with_contacts(now, now + timedelta(days=within_days))

    async def get_due_reminders(self, now: datetime | None = None) -> List[ReminderWithContact]:
        """Pending reminders already due, oldest first."""
        now = ensure_utc(now or utcnow())
        return await self.repo.list_pending_with_contacts(end=now)

    async def get_agenda(
        self, within_days: int = DEFAULT_UPCOMING_DAYS, now: datetime | None = None
    ) -> List[ReminderWithContact]:
        """Due and upcoming reminders, most urgent first."""
        now = ensure_utc(now or utcnow())
        items = await self.repo.list_pending_with_contacts(end=now + timedelta(days=within_days))
        return sorted(items, key=lambda item: urgency_key(item.reminder.scheduled_for, now))

    async def cleanup_old_reminders(
        self, days_old: int = DEFAULT_CLEANUP_AFTER_DAYS, now: datetime | None = None
    ) -> int:
        """Delete sent/dismissed reminders scheduled more than days_old ago."""
        cutoff = ensure_utc(now or utcnow()) - timedelta(days=days_old)
        deleted = await self.repo.delete_reminders(status=TERMINAL_STATUSES, older_than=cutoff)
        logger.info(f"Cleanup: deleted {deleted} reminders older than {days_old} days")
        return deleted

    async def get_reminder_stats(self, now: datetime | None = None) -> ReminderStats:
        """Counts of pending reminders by due state, type and cadence."""
        now = ensure_utc(now or utcnow())
        items = await self.repo.list_pending_with_contacts()

        stats = ReminderStats(
            by_type={reminder_type: 0 for reminder_type in REMINDER_TYPES},
            by_frequency={frequency: 0 for frequency in FREQUENCY_DAYS},
        )
        for item in items:
            reminder = item.reminder
            stats.pending += 1
            if reminder.scheduled_for < now:
                stats.overdue += 1
            stats.by_type[reminder.type] = stats.by_type.get(reminder.type, 0) + 1

            frequency = item.contact.communication_frequency
            if reminder.type == "communication" and frequency in stats.by_frequency:
                stats.by_frequency[frequency] += 1

        stats.scheduled = stats.pending - stats.overdue
        return stats

