"""Message text formatters."""

from datetime import datetime
from html import escape

from touchbase.db.models import Contact, ReminderWithContact
from touchbase.engine.cadence import UpcomingBirthday, days_until_next_reminder, reminder_priority
from touchbase.engine.reconciler import GenerationResult, RefreshResult, ReminderStats
from touchbase.parser.birthday import format_birthday
from touchbase.utils.time_utils import format_relative_time, from_utc, utcnow

TYPE_EMOJI = {
    "communication": "💬",
    "birthday_week": "🎁",
    "birthday_day": "🎂",
}

PRIORITY_EMOJI = {
    "low": "🟢",
    "medium": "🟡",
    "high": "🟠",
    "urgent": "🔴",
}


def format_reminder(item: ReminderWithContact, tz: str, now: datetime | None = None) -> str:
    """Format one reminder with its contact."""
    reminder = item.reminder
    emoji = TYPE_EMOJI.get(reminder.type, "🔔")
    local = from_utc(reminder.scheduled_for, tz)
    relative = format_relative_time(reminder.scheduled_for, now or utcnow())

    return (
        f"{emoji} <b>{escape(item.contact.display_name)}</b> (ID: {reminder.id})\n"
        f"   {escape(reminder.message)}\n"
        f"   {local.strftime('%b %d')} ({relative})"
    )


def format_reminder_list(
    items: list[ReminderWithContact], title: str, tz: str, now: datetime | None = None
) -> str:
    """Format a list of reminders under a heading."""
    if not items:
        return f"<b>{title}</b>\n\nNothing here. 🎉"

    lines = [f"<b>{title} ({len(items)})</b>\n"]
    lines.extend(format_reminder(item, tz, now) for item in items)
    return "\n\n".join(lines)


def format_generation_result(result: GenerationResult) -> str:
    lines = [
        "<b>Reminder sweep complete</b>",
        f"✓ Created: {result.created}",
        f"↷ Skipped: {result.skipped}",
        f"🗑 Purged: {result.purged}",
        f"👥 Contacts: {result.contacts}",
    ]
    lines.extend(_format_errors(result.errors))
    return "\n".join(lines)


def format_refresh_result(result: RefreshResult) -> str:
    lines = [
        "<b>Reminders rebuilt</b>",
        f"🗑 Deleted: {result.deleted}",
        f"✓ Created: {result.created}",
        f"👥 Contacts: {result.contacts}",
    ]
    lines.extend(_format_errors(result.errors))
    return "\n".join(lines)


def _format_errors(errors: list) -> list[str]:
    if not errors:
        return []
    lines = [f"\n⚠️ <b>{len(errors)} contact(s) failed:</b>"]
    for failure in errors[:10]:
        lines.append(
            f"• Contact {failure.contact_id} ({failure.operation}): {escape(failure.error)}"
        )
    if len(errors) > 10:
        lines.append(f"…and {len(errors) - 10} more")
    return lines


def format_birthdays(birthdays: list[UpcomingBirthday], within_days: int) -> str:
    if not birthdays:
        return f"No birthdays in the next {within_days} days."

    lines = [f"<b>🎂 Birthdays (next {within_days} days)</b>\n"]
    for birthday in birthdays:
        when = "today!" if birthday.days_until == 0 else f"in {birthday.days_until} days"
        lines.append(
            f"• <b>{escape(birthday.contact.display_name)}</b> - "
            f"{birthday.birthday_date:%b} {birthday.birthday_date.day} ({when})"
        )
    return "\n".join(lines)


def format_stats_message(stats: ReminderStats) -> str:
    """Format reminder statistics into a readable message."""
    lines = ["<b>📊 Reminder Statistics</b>\n"]

    lines.append(f"Pending: {stats.pending}")
    lines.append(f"💥 Overdue: {stats.overdue}")
    lines.append(f"📅 Scheduled: {stats.scheduled}\n")

    lines.append("<b>By type</b>")
    for reminder_type, count in stats.by_type.items():
        lines.append(f"{TYPE_EMOJI.get(reminder_type, '🔔')} {reminder_type}: {count}")

    lines.append("\n<b>Check-ins by cadence</b>")
    for frequency, count in stats.by_frequency.items():
        lines.append(f"• {frequency}: {count}")

    return "\n".join(lines)


def format_help_message() -> str:
    """Format the help message."""
    return """
<b>Touchbase Commands 👋</b>

<b>Reminders:</b>
/agenda [days] - Overdue and upcoming, most urgent first
/upcoming [days] - Due in the next N days (default 7)
/dismiss &lt;id&gt; - Dismiss a reminder
/contacted &lt;contact_id&gt; - Log a check-in and schedule the next one
/birthdays [days] - Upcoming birthdays (default 30)

<b>Contacts:</b>
/contact &lt;contact_id&gt; - Cadence, priority and birthday
/pause &lt;contact_id&gt; - Stop reminders for a contact
/resume &lt;contact_id&gt; - Resume reminders for a contact
/birthday &lt;contact_id&gt; &lt;date&gt; - Set a birthday ("clear" removes it)

<b>Maintenance:</b>
/sweep - Generate missing reminders now
/refresh - Rebuild all pending reminders from scratch
/cleanup [days] - Delete old sent/dismissed reminders
/stats - Reminder statistics
""".strip()


def format_contact_status(contact: Contact, tz: str, now: datetime | None = None) -> str:
    """Format a contact's cadence and birthday status."""
    now = now or utcnow()
    lines = [f"<b>👤 {escape(contact.display_name)}</b> (ID: {contact.id})\n"]

    if contact.communication_frequency:
        frequency = contact.communication_frequency
        lines.append(f"Cadence: {frequency}")
        if contact.last_contacted_at:
            last = from_utc(contact.last_contacted_at, tz)
            lines.append(f"Last contacted: {last.strftime('%b %d, %Y')}")
        else:
            lines.append("Last contacted: never")

        days = days_until_next_reminder(frequency, contact.last_contacted_at, now)
        if days > 0:
            lines.append(f"Next check-in: in {days} day{'s' if days != 1 else ''}")
        else:
            lines.append("Next check-in: due now")
        priority = reminder_priority(frequency, contact.last_contacted_at, now)
        lines.append(f"Priority: {PRIORITY_EMOJI[priority]} {priority}")
    else:
        lines.append("Cadence: none")

    if contact.birthday:
        lines.append(f"Birthday: {format_birthday(contact.birthday)}")

    if contact.reminders_paused:
        lines.append("\n⏸ Reminders paused")

    return "\n".join(lines)
