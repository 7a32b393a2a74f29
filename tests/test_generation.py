"""Tests for reminder generation against a real SQLite database."""

import asyncio
import sqlite3
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from touchbase.db.models import Contact, Reminder
from touchbase.engine.errors import DuplicateReminderError
from touchbase.engine.lifecycle import dismiss, mark_contacted
from touchbase.engine.reconciler import Reconciler, plan_contact

UTC = ZoneInfo("UTC")
NOW = datetime(2024, 3, 20, 12, 0, tzinfo=UTC)


def test_generation_is_idempotent(with_repo):
    """A second sweep with no state change creates nothing."""

    async def scenario(repo):
        await repo.create_contact(Contact(first_name="Ana", communication_frequency="monthly"))
        await repo.create_contact(Contact(first_name="Ben", birthday="07-04"))
        await repo.create_contact(Contact(first_name="Cy"))
        reconciler = Reconciler(repo)

        first = await reconciler.generate_upcoming_reminders(NOW)
        second = await reconciler.generate_upcoming_reminders(NOW)
        pending = await repo.count_reminders(status="pending")
        return first, second, pending

    first, second, pending = with_repo(scenario)

    assert first.created == 3
    assert first.contacts == 3
    assert first.errors == []
    assert second.created == 0
    assert second.purged == 0
    assert second.skipped == 3
    assert pending == 3


def test_paused_contact_gets_no_reminders(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly", birthday="03-25")
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)
        before = await repo.count_reminders(status="pending")

        await repo.set_reminders_paused(contact.id, True)
        result = await reconciler.generate_upcoming_reminders(NOW)
        after = await repo.count_reminders(status="pending")
        return before, result, after

    before, result, after = with_repo(scenario)

    assert before == 3
    assert result.purged == 3
    assert result.created == 0
    assert after == 0


def test_refresh_rebuilds_pending(with_repo):
    async def scenario(repo):
        await repo.create_contact(Contact(first_name="Ana", communication_frequency="weekly"))
        await repo.create_contact(Contact(first_name="Ben", birthday="12-01"))
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)

        result = await reconciler.refresh_all_reminders(NOW)
        pending = await repo.count_reminders(status="pending")
        return result, pending

    result, pending = with_repo(scenario)

    assert result.deleted == 3
    assert result.created == 3
    assert result.contacts == 2
    assert pending == 3


def test_refresh_keeps_terminal_reminders(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        await repo.create_reminder(
            Reminder(
                contact_id=contact.id,
                type="communication",
                scheduled_for=NOW - timedelta(days=20),
                message="Time for your weekly check-in with Ana!",
                status="sent",
                sent_at=NOW - timedelta(days=20),
            )
        )
        reconciler = Reconciler(repo)

        await reconciler.refresh_all_reminders(NOW)
        return await repo.list_reminders(contact_id=contact.id)

    reminders = with_repo(scenario)

    assert [r.status for r in reminders] == ["sent", "pending"]


def test_dismissed_reminders_stay_dismissed(with_repo):
    """A later sweep doesn't bring back an occurrence the user dismissed."""

    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(
                first_name="Ana",
                communication_frequency="weekly",
                last_contacted_at=NOW - timedelta(days=10),
                birthday="03-25",
            )
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)
        for reminder in await repo.list_reminders(status="pending"):
            await dismiss(repo, reminder.id)

        result = await reconciler.generate_upcoming_reminders(NOW + timedelta(hours=1))
        refreshed = await reconciler.refresh_all_reminders(NOW + timedelta(hours=2))
        reminders = await repo.list_reminders(contact_id=contact.id)
        return result, refreshed, reminders

    result, refreshed, reminders = with_repo(scenario)

    assert result.created == 0
    assert refreshed.created == 0
    assert len(reminders) == 3
    assert {r.status for r in reminders} == {"dismissed"}


def test_sweep_rereads_contact_under_lock(with_repo):
    """A pause landing between the sweep's snapshot and its writes wins."""

    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        reconciler = Reconciler(repo)
        list_contacts = repo.list_contacts

        async def list_then_pause(*args, **kwargs):
            contacts = await list_contacts(*args, **kwargs)
            async with reconciler.contact_lock(contact.id):
                paused = await repo.set_reminders_paused(contact.id, True)
                await reconciler.reconcile_contact(paused, NOW)
            return contacts

        repo.list_contacts = list_then_pause
        result = await reconciler.generate_upcoming_reminders(NOW)
        refreshed = await repo.get_contact(contact.id)
        pending = await repo.count_reminders(status="pending")
        return result, refreshed, pending

    result, refreshed, pending = with_repo(scenario)

    assert refreshed.reminders_paused
    assert pending == 0
    assert result.created == 0
    assert result.errors == []


def test_failed_write_still_reports_purges(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(
                first_name="Ana",
                communication_frequency="weekly",
                last_contacted_at=NOW - timedelta(days=10),
            )
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)
        await repo.update_last_contacted(contact.id, NOW - timedelta(days=1))

        async def failing_create(reminder):
            raise sqlite3.OperationalError("disk I/O error")

        repo.create_reminder = failing_create
        result = await reconciler.generate_upcoming_reminders(NOW)
        pending = await repo.count_reminders(status="pending")
        return contact, result, pending

    contact, result, pending = with_repo(scenario)

    assert result.purged == 1
    assert result.created == 0
    assert [(e.contact_id, e.operation) for e in result.errors] == [(contact.id, "apply")]
    assert pending == 0


def test_purge_spares_reminders_no_longer_pending(with_repo):
    """A stale decision never erases a reminder that was sent or dismissed since."""

    async def scenario(repo):
        contact = await repo.create_contact(Contact(first_name="Ana"))
        reminder = await repo.create_reminder(
            Reminder(
                contact_id=contact.id, type="communication", scheduled_for=NOW, message="Call Ana"
            )
        )
        stale_plan = plan_contact(contact, [reminder], NOW)
        await dismiss(repo, reminder.id)

        reconciler = Reconciler(repo)
        async with reconciler.contact_lock(contact.id):
            await reconciler._apply(stale_plan)
        return stale_plan, await repo.get_reminder(reminder.id)

    stale_plan, kept = with_repo(scenario)

    assert [r.id for r in stale_plan.stale] == [kept.id]
    assert kept.status == "dismissed"


def test_upcoming_due_and_agenda(with_repo):
    async def scenario(repo):
        # Birthday week reminder on 03-18 (due), birthday on 03-25 (upcoming)
        await repo.create_contact(Contact(first_name="Ana", birthday="03-25"))
        # Weekly contact due in two days
        await repo.create_contact(
            Contact(
                first_name="Ben",
                communication_frequency="weekly",
                last_contacted_at=NOW - timedelta(days=5),
            )
        )
        # Quarterly contact not due for a long while
        await repo.create_contact(
            Contact(
                first_name="Cy",
                communication_frequency="quarterly",
                last_contacted_at=NOW - timedelta(days=1),
            )
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)

        upcoming = await reconciler.get_upcoming_reminders(7, NOW)
        due = await reconciler.get_due_reminders(NOW)
        agenda = await reconciler.get_agenda(7, NOW)
        return upcoming, due, agenda

    upcoming, due, agenda = with_repo(scenario)

    assert [(i.contact.first_name, i.reminder.type) for i in upcoming] == [
        ("Ben", "communication"),
        ("Ana", "birthday_day"),
    ]
    assert upcoming[0].reminder.scheduled_for == NOW + timedelta(days=2)
    assert [(i.contact.first_name, i.reminder.type) for i in due] == [("Ana", "birthday_week")]
    assert [(i.contact.first_name, i.reminder.type) for i in agenda] == [
        ("Ana", "birthday_week"),
        ("Ben", "communication"),
        ("Ana", "birthday_day"),
    ]


def test_sweep_replaces_reminder_after_out_of_band_contact(with_repo):
    """If last contact changes without mark_contacted, the next sweep repairs it."""

    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(
                first_name="Ana",
                communication_frequency="weekly",
                last_contacted_at=NOW - timedelta(days=10),
            )
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)

        await repo.update_last_contacted(contact.id, NOW - timedelta(days=1))
        result = await reconciler.generate_upcoming_reminders(NOW)
        pending = await repo.list_reminders(contact_id=contact.id, status="pending")
        return result, pending

    result, pending = with_repo(scenario)

    assert result.purged == 1
    assert result.created == 1
    assert len(pending) == 1
    assert pending[0].scheduled_for == NOW + timedelta(days=6)


def test_one_bad_contact_does_not_abort_sweep(with_repo):
    async def scenario(repo):
        await repo.create_contact(Contact(first_name="Ana", communication_frequency="weekly"))
        bad = await repo.create_contact(Contact(first_name="Ben", birthday="13-45"))
        await repo.create_contact(Contact(first_name="Cy", birthday="01-01"))
        reconciler = Reconciler(repo)

        result = await reconciler.generate_upcoming_reminders(NOW)
        return bad, result

    bad, result = with_repo(scenario)

    assert result.created == 3
    assert [e.contact_id for e in result.errors] == [bad.id]


def test_deleting_contact_cascades_reminders(with_repo):
    """Reminders never outlive their contact in the store."""

    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)

        await repo.delete_contact(contact.id)
        return await repo.count_reminders()

    assert with_repo(scenario) == 0


def test_store_rejects_second_pending_reminder(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(Contact(first_name="Ana"))
        reminder = Reminder(
            contact_id=contact.id, type="communication", scheduled_for=NOW, message="Call Ana"
        )
        await repo.create_reminder(reminder)

        with pytest.raises(DuplicateReminderError):
            await repo.create_reminder(reminder)

        # A dismissed one doesn't count
        await repo.create_reminder(
            Reminder(
                contact_id=contact.id,
                type="communication",
                scheduled_for=NOW,
                message="Call Ana",
                status="dismissed",
            )
        )
        return await repo.count_reminders(types=["communication"])

    assert with_repo(scenario) == 2


def test_concurrent_generation_leaves_one_reminder(with_repo):
    """Racing requests for the same contact never produce duplicates."""

    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        shared = Reconciler(repo)
        separate = Reconciler(repo)

        await asyncio.gather(
            shared.generate_reminder_for_contact(contact, NOW),
            shared.generate_reminder_for_contact(contact, NOW),
            separate.generate_reminder_for_contact(contact, NOW),
        )
        return await repo.count_reminders(status="pending")

    assert with_repo(scenario) == 1


def test_contact_locks_are_released(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        reconciler = Reconciler(repo)

        await asyncio.gather(
            reconciler.generate_reminder_for_contact(contact, NOW),
            mark_contacted(reconciler, contact.id, now=NOW),
            reconciler.generate_upcoming_reminders(NOW),
        )
        return dict(reconciler._locks), await repo.count_reminders(status="pending")

    locks, pending = with_repo(scenario)

    assert locks == {}
    assert pending == 1


def test_cleanup_old_reminders(with_repo):
    async def scenario(repo):
        contact = await repo.create_contact(
            Contact(first_name="Ana", communication_frequency="weekly")
        )
        old = await repo.create_reminder(
            Reminder(
                contact_id=contact.id,
                type="communication",
                scheduled_for=NOW - timedelta(days=60),
                message="Old",
                status="sent",
                sent_at=NOW - timedelta(days=60),
            )
        )
        recent = await repo.create_reminder(
            Reminder(
                contact_id=contact.id,
                type="communication",
                scheduled_for=NOW - timedelta(days=5),
                message="Recent",
                status="dismissed",
            )
        )
        pending = await repo.create_reminder(
            Reminder(
                contact_id=contact.id,
                type="communication",
                scheduled_for=NOW - timedelta(days=90),
                message="Still pending",
            )
        )
        reconciler = Reconciler(repo)

        deleted = await reconciler.cleanup_old_reminders(30, NOW)
        remaining = [r.id for r in await repo.list_reminders()]
        return deleted, remaining, old, recent, pending

    deleted, remaining, old, recent, pending = with_repo(scenario)

    assert deleted == 1
    assert old.id not in remaining
    assert sorted(remaining) == sorted([recent.id, pending.id])


def test_reminder_stats(with_repo):
    async def scenario(repo):
        await repo.create_contact(Contact(first_name="Ana", communication_frequency="weekly"))
        await repo.create_contact(
            Contact(first_name="Ben", communication_frequency="monthly", birthday="03-25")
        )
        reconciler = Reconciler(repo)
        await reconciler.generate_upcoming_reminders(NOW)
        return await reconciler.get_reminder_stats(NOW + timedelta(hours=1))

    stats = with_repo(scenario)

    # Two communication reminders due at NOW, birthday week on 03-18 is past
    assert stats.pending == 4
    assert stats.overdue == 3
    assert stats.scheduled == 1
    assert stats.by_type == {"communication": 2, "birthday_week": 1, "birthday_day": 1}
    assert stats.by_frequency["weekly"] == 1
    assert stats.by_frequency["monthly"] == 1
    assert stats.by_frequency["annually"] == 0
