"""Main entry point for the Touchbase bot."""

import logging
import sys

from telegram.ext import Application, CommandHandler, ContextTypes

from touchbase.bot.handlers import (
    agenda_command,
    birthday_command,
    birthdays_command,
    cleanup_command,
    contact_command,
    contacted_command,
    dismiss_command,
    help_command,
    pause_command,
    refresh_command,
    resume_command,
    start_command,
    stats_command,
    sweep_command,
    upcoming_command,
)
from touchbase.config import Config
from touchbase.db.migrations import run_migrations
from touchbase.db.repository import Repository
from touchbase.engine.reconciler import Reconciler
from touchbase.utils.error_handler import error_handler

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, Config.LOG_LEVEL.upper(), logging.INFO),
    stream=sys.stdout,
)

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL = 24 * 60 * 60


async def sweep_job(context: "ContextTypes.DEFAULT_TYPE") -> None:
    """Job callback for the periodic reminder sweep."""
    reconciler: Reconciler = context.bot_data["reconciler"]
    try:
        await reconciler.generate_upcoming_reminders()
    except Exception as e:
        logger.error(f"Reminder sweep failed: {e}")


async def cleanup_job(context: "ContextTypes.DEFAULT_TYPE") -> None:
    """Job callback for purging old sent/dismissed reminders."""
    reconciler: Reconciler = context.bot_data["reconciler"]
    try:
        await reconciler.cleanup_old_reminders(Config.CLEANUP_AFTER_DAYS)
    except Exception as e:
        logger.error(f"Reminder cleanup failed: {e}")


async def post_init(application: Application) -> None:
    """Initialize bot resources after application is created."""
    await run_migrations(Config.DATABASE_PATH)

    repo = Repository(Config.DATABASE_PATH)
    await repo.connect()
    application.bot_data["repo"] = repo
    application.bot_data["reconciler"] = Reconciler(repo, Config.reminder_settings())

    job_queue = application.job_queue
    if job_queue:
        if Config.SWEEP_INTERVAL > 0:
            job_queue.run_repeating(
                sweep_job,
                interval=Config.SWEEP_INTERVAL,
                first=10,  # Start after 10 seconds
                name="reminder_sweep",
            )
            logger.info(f"Reminder sweep scheduled (interval: {Config.SWEEP_INTERVAL}s)")

        job_queue.run_repeating(
            cleanup_job, interval=CLEANUP_INTERVAL, first=60, name="reminder_cleanup"
        )
    else:
        logger.warning("Job queue unavailable; reminders only update via /sweep")

    logger.info("Touchbase initialized successfully")


async def post_shutdown(application: Application) -> None:
    """Cleanup resources on shutdown."""
    repo: Repository = application.bot_data.get("repo")
    if repo:
        await repo.close()

    logger.info("Touchbase shut down")


def main() -> None:
    """Start the bot."""
    try:
        Config.validate()
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(1)

    application = (
        Application.builder()
        .token(Config.TELEGRAM_BOT_TOKEN)
        .post_init(post_init)
        .post_shutdown(post_shutdown)
        .build()
    )

    # Commands
    application.add_handler(CommandHandler("start", start_command))
    application.add_handler(CommandHandler("help", help_command))
    application.add_handler(CommandHandler("upcoming", upcoming_command))
    application.add_handler(CommandHandler("agenda", agenda_command))
    application.add_handler(CommandHandler("dismiss", dismiss_command))
    application.add_handler(CommandHandler("contacted", contacted_command))
    application.add_handler(CommandHandler("birthdays", birthdays_command))
    application.add_handler(CommandHandler("contact", contact_command))
    application.add_handler(CommandHandler("pause", pause_command))
    application.add_handler(CommandHandler("resume", resume_command))
    application.add_handler(CommandHandler("birthday", birthday_command))

    # Maintenance commands
    application.add_handler(CommandHandler("sweep", sweep_command))
    application.add_handler(CommandHandler("refresh", refresh_command))
    application.add_handler(CommandHandler("cleanup", cleanup_command))
    application.add_handler(CommandHandler("stats", stats_command))

    # Error handler
    application.add_error_handler(error_handler)

    logger.info("Starting Touchbase bot...")
    application.run_polling(allowed_updates=["message"])


if __name__ == "__main__":
    main()
