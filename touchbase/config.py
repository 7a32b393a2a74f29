"""Configuration management from environment variables."""

import os
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from dotenv import load_dotenv

from touchbase.engine.reconciler import ReminderSettings
from touchbase.utils.constants import (
    DEFAULT_BIRTHDAY_REMINDER_HOUR,
    DEFAULT_CLEANUP_AFTER_DAYS,
    DEFAULT_LOOKAHEAD_DAYS,
    DEFAULT_TIMEZONE,
)

# Load .env file if it exists
load_dotenv()


def _int_list(value: str) -> set[int]:
    return {int(part) for part in value.split(",") if part.strip()}


class Config:
    """Application configuration loaded from environment variables."""

    # Telegram
    TELEGRAM_BOT_TOKEN: str = os.getenv("TELEGRAM_BOT_TOKEN", "")
    ALLOWED_USER_IDS: set[int] = _int_list(os.getenv("ALLOWED_USER_IDS", ""))

    # Database
    DATABASE_PATH: Path = Path(os.getenv("DATABASE_PATH", "./data/touchbase.db"))

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Scheduling
    TIMEZONE: str = os.getenv("TIMEZONE", DEFAULT_TIMEZONE)
    BIRTHDAY_REMINDER_HOUR: int = int(
        os.getenv("BIRTHDAY_REMINDER_HOUR", str(DEFAULT_BIRTHDAY_REMINDER_HOUR))
    )
    REMINDER_LOOKAHEAD_DAYS: int = int(
        os.getenv("REMINDER_LOOKAHEAD_DAYS", str(DEFAULT_LOOKAHEAD_DAYS))
    )

    # Jobs
    SWEEP_INTERVAL: int = int(os.getenv("SWEEP_INTERVAL", "3600"))
    CLEANUP_AFTER_DAYS: int = int(os.getenv("CLEANUP_AFTER_DAYS", str(DEFAULT_CLEANUP_AFTER_DAYS)))

    @classmethod
    def validate(cls) -> None:
        """Validate required configuration."""
        if not cls.TELEGRAM_BOT_TOKEN:
            raise ValueError("TELEGRAM_BOT_TOKEN environment variable is required")

        try:
            ZoneInfo(cls.TIMEZONE)
        except (ZoneInfoNotFoundError, ValueError):
            raise ValueError(f"Unknown TIMEZONE: {cls.TIMEZONE}") from None

        if not 0 <= cls.BIRTHDAY_REMINDER_HOUR <= 23:
            raise ValueError("BIRTHDAY_REMINDER_HOUR must be between 0 and 23")

        if cls.REMINDER_LOOKAHEAD_DAYS < 0:
            raise ValueError("REMINDER_LOOKAHEAD_DAYS cannot be negative")

        # Ensure database directory exists
        cls.DATABASE_PATH.parent.mkdir(parents=True, exist_ok=True)

    @classmethod
    def reminder_settings(cls) -> ReminderSettings:
        """Scheduling settings for the reconciler."""
        return ReminderSettings(
            timezone=cls.TIMEZONE,
            birthday_hour=cls.BIRTHDAY_REMINDER_HOUR,
            lookahead_days=cls.REMINDER_LOOKAHEAD_DAYS,
        )
