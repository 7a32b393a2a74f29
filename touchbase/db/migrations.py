"""Database migration runner."""

import logging
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).parent / "schema.sql"

# Keeps the earliest-created pending reminder per (contact, type)
DEDUPE_PENDING_SQL = """
DELETE FROM reminders
WHERE status = 'pending'
  AND id NOT IN (
      SELECT id FROM (
          SELECT id, ROW_NUMBER() OVER (
              PARTITION BY contact_id, type ORDER BY created_at, id
          ) AS rn
          FROM reminders
          WHERE status = 'pending'
      )
      WHERE rn = 1
  )
"""

ONE_PENDING_INDEX_SQL = """
CREATE UNIQUE INDEX IF NOT EXISTS idx_reminders_one_pending
    ON reminders (contact_id, type)
    WHERE status = 'pending'
"""


async def init_database(db_path: Path) -> None:
    """Create tables that don't exist yet."""
    async with aiosqlite.connect(db_path) as db:
        with open(SCHEMA_PATH) as f:
            schema_sql = f.read()

        await db.executescript(schema_sql)
        await db.commit()

        logger.info(f"Database initialized at {db_path}")


async def _add_one_pending_index(db: aiosqlite.Connection) -> None:
    """Enforce at most one pending reminder per (contact, type)."""
    cursor = await db.execute(DEDUPE_PENDING_SQL)
    if cursor.rowcount:
        logger.warning(f"Removed {cursor.rowcount} duplicate pending reminders")
    await cursor.close()
    await db.execute(ONE_PENDING_INDEX_SQL)


# Applied in order; position N sets PRAGMA user_version to N
MIGRATIONS = [
    _add_one_pending_index,
]


async def run_migrations(db_path: Path) -> None:
    """Initialize the database and apply pending versioned migrations."""
    await init_database(db_path)

    async with aiosqlite.connect(db_path) as db:
        async with db.execute("PRAGMA user_version") as cursor:
            (version,) = await cursor.fetchone()

        for number, migration in enumerate(MIGRATIONS, start=1):
            if number <= version:
                continue
            await migration(db)
            await db.execute(f"PRAGMA user_version = {number}")
            await db.commit()
            logger.info(f"Applied migration {number}: {migration.__name__}")
