"""Command handlers."""

import logging
from functools import wraps
from html import escape

from telegram import Update
from telegram.ext import ContextTypes

from touchbase.bot.formatters import (
    format_birthdays,
    format_contact_status,
    format_generation_result,
    format_help_message,
    format_refresh_result,
    format_reminder_list,
    format_stats_message,
)
from touchbase.config import Config
from touchbase.db.repository import Repository
from touchbase.engine.cadence import upcoming_birthdays
from touchbase.engine.errors import InvalidBirthdayError, NotFoundError
from touchbase.engine.lifecycle import dismiss, mark_contacted, set_birthday
from touchbase.engine.reconciler import Reconciler
from touchbase.parser.birthday import format_birthday
from touchbase.utils.constants import DEFAULT_UPCOMING_DAYS
from touchbase.utils.time_utils import format_relative_time, local_today, utcnow

logger = logging.getLogger(__name__)


def restricted(handler):
    """Ignore updates from users outside ALLOWED_USER_IDS (when set)."""

    @wraps(handler)
    async def wrapper(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
        if not update.effective_user or not update.message:
            return
        if Config.ALLOWED_USER_IDS and update.effective_user.id not in Config.ALLOWED_USER_IDS:
            logger.warning(f"Ignoring command from unauthorized user {update.effective_user.id}")
            return
        await handler(update, context)

    return wrapper


def _int_arg(context: ContextTypes.DEFAULT_TYPE, default: int | None = None) -> int | None:
    """First command argument as an int, default if absent. Raises ValueError."""
    if not context.args:
        return default
    return int(context.args[0])


async def start_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /start command."""
    if not update.message:
        return
    await update.message.reply_html(
        "<b>Welcome to Touchbase!</b> 👋\n\n"
        "I keep track of who you should check in with and whose birthday is coming up.\n\n"
        + format_help_message()
    )


async def help_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /help command."""
    if not update.message:
        return
    await update.message.reply_html(format_help_message())


@restricted
async def upcoming_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /upcoming [days] - pending reminders due in the window."""
    try:
        days = _int_arg(context, DEFAULT_UPCOMING_DAYS)
    except ValueError:
        await update.message.reply_text("Usage: /upcoming [days]")
        return

    reconciler: Reconciler = context.bot_data["reconciler"]
    items = await reconciler.get_upcoming_reminders(days)  # type: ignore
    await update.message.reply_html(
        format_reminder_list(items, f"Upcoming (next {days} days)", Config.TIMEZONE)
    )


@restricted
async def agenda_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /agenda [days] - overdue first, then soonest."""
    try:
        days = _int_arg(context, DEFAULT_UPCOMING_DAYS)
    except ValueError:
        await update.message.reply_text("Usage: /agenda [days]")
        return

    reconciler: Reconciler = context.bot_data["reconciler"]
    items = await reconciler.get_agenda(days)  # type: ignore
    await update.message.reply_html(format_reminder_list(items, "Agenda", Config.TIMEZONE))


@restricted
async def dismiss_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /dismiss <reminder_id>."""
    if not context.args or len(context.args) != 1:
        await update.message.reply_text("Usage: /dismiss <reminder_id>")
        return

    try:
        reminder_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("Invalid reminder ID. Must be a number.")
        return

    repo: Repository = context.bot_data["repo"]
    try:
        reminder = await dismiss(repo, reminder_id)
    except NotFoundError:
        await update.message.reply_text("Reminder not found.")
        return

    await update.message.reply_html(f"✓ Dismissed: {escape(reminder.message)}")


@restricted
async def contacted_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /contacted <contact_id>."""
    if not context.args or len(context.args) != 1:
        await update.message.reply_text("Usage: /contacted <contact_id>")
        return

    try:
        contact_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("Invalid contact ID. Must be a number.")
        return

    reconciler: Reconciler = context.bot_data["reconciler"]
    try:
        next_reminder = await mark_contacted(reconciler, contact_id)
    except NotFoundError as e:
        await update.message.reply_text(str(e))
        return

    if next_reminder is None:
        await update.message.reply_text("✓ Logged. No further check-ins scheduled.")
        return

    when = format_relative_time(next_reminder.scheduled_for)
    await update.message.reply_text(f"✓ Logged. Next check-in {when}.")


@restricted
async def sweep_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /sweep - run reminder generation now."""
    reconciler: Reconciler = context.bot_data["reconciler"]
    result = await reconciler.generate_upcoming_reminders()
    await update.message.reply_html(format_generation_result(result))


@restricted
async def refresh_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /refresh - delete all pending reminders and regenerate."""
    reconciler: Reconciler = context.bot_data["reconciler"]
    result = await reconciler.refresh_all_reminders()
    await update.message.reply_html(format_refresh_result(result))


@restricted
async def birthdays_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /birthdays [days]."""
    try:
        days = _int_arg(context, 30)
    except ValueError:
        await update.message.reply_text("Usage: /birthdays [days]")
        return

    repo: Repository = context.bot_data["repo"]
    contacts = await repo.list_contacts()
    today = local_today(utcnow(), Config.TIMEZONE)
    await update.message.reply_html(
        format_birthdays(upcoming_birthdays(contacts, today, days), days)  # type: ignore
    )


@restricted
async def stats_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /stats."""
    reconciler: Reconciler = context.bot_data["reconciler"]
    stats = await reconciler.get_reminder_stats()
    await update.message.reply_html(format_stats_message(stats))


@restricted
async def cleanup_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /cleanup [days]."""
    try:
        days = _int_arg(context, Config.CLEANUP_AFTER_DAYS)
    except ValueError:
        await update.message.reply_text("Usage: /cleanup [days]")
        return

    reconciler: Reconciler = context.bot_data["reconciler"]
    deleted = await reconciler.cleanup_old_reminders(days)  # type: ignore
    await update.message.reply_text(f"🗑 Deleted {deleted} old reminder(s).")


async def _contact_id_arg(
    update: Update, context: ContextTypes.DEFAULT_TYPE, usage: str
) -> int | None:
    """Parse the single <contact_id> argument, replying with usage on failure."""
    if not context.args or len(context.args) != 1:
        await update.message.reply_text(f"Usage: {usage}")
        return None
    try:
        return int(context.args[0])
    except ValueError:
        await update.message.reply_text("Invalid contact ID. Must be a number.")
        return None


@restricted
async def contact_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /contact <contact_id> - cadence and birthday status."""
    contact_id = await _contact_id_arg(update, context, "/contact <contact_id>")
    if contact_id is None:
        return

    repo: Repository = context.bot_data["repo"]
    contact = await repo.get_contact(contact_id)
    if contact is None:
        await update.message.reply_text("Contact not found.")
        return

    await update.message.reply_html(format_contact_status(contact, Config.TIMEZONE))


async def _set_paused(update: Update, context: ContextTypes.DEFAULT_TYPE, paused: bool) -> None:
    command = "/pause" if paused else "/resume"
    contact_id = await _contact_id_arg(update, context, f"{command} <contact_id>")
    if contact_id is None:
        return

    reconciler: Reconciler = context.bot_data["reconciler"]
    try:
        async with reconciler.contact_lock(contact_id):
            contact = await reconciler.repo.set_reminders_paused(contact_id, paused)
            # Purges (pause) or schedules (resume) this contact's reminders now
            await reconciler.reconcile_contact(contact)
    except NotFoundError:
        await update.message.reply_text("Contact not found.")
        return

    name = escape(contact.display_name)
    if paused:
        await update.message.reply_html(f"⏸ Reminders paused for <b>{name}</b>.")
    else:
        await update.message.reply_html(f"▶️ Reminders resumed for <b>{name}</b>.")


@restricted
async def pause_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /pause <contact_id>."""
    await _set_paused(update, context, paused=True)


@restricted
async def resume_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /resume <contact_id>."""
    await _set_paused(update, context, paused=False)


@restricted
async def birthday_command(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    """Handle /birthday <contact_id> <date|clear> - set or clear a birthday."""
    if not context.args or len(context.args) < 2:
        await update.message.reply_text(
            "Usage: /birthday <contact_id> <date>\n"
            "e.g. /birthday 4 March 15, or /birthday 4 clear"
        )
        return

    try:
        contact_id = int(context.args[0])
    except ValueError:
        await update.message.reply_text("Invalid contact ID. Must be a number.")
        return

    text = " ".join(context.args[1:])
    if text.lower() == "clear":
        text = ""

    reconciler: Reconciler = context.bot_data["reconciler"]
    try:
        contact = await set_birthday(reconciler, contact_id, text)
    except NotFoundError:
        await update.message.reply_text("Contact not found.")
        return
    except InvalidBirthdayError:
        await update.message.reply_text(
            "Couldn't read that date. Try 3-15, 03/15, March 15 or 15 March."
        )
        return

    name = escape(contact.display_name)
    if contact.birthday:
        await update.message.reply_html(
            f"🎂 Birthday for <b>{name}</b> set to {format_birthday(contact.birthday)}."
        )
    else:
        await update.message.reply_html(f"Birthday cleared for <b>{name}</b>.")
