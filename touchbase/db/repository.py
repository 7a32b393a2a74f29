"""Database repository - all SQL queries."""

import asyncio
import logging
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Iterable, List

import aiosqlite

from touchbase.db.models import Contact, Reminder, ReminderWithContact
from touchbase.engine.errors import (
    DuplicateReminderError,
    InvalidBirthdayError,
    NotFoundError,
)
from touchbase.parser.birthday import validate_birthday
from touchbase.utils.time_utils import from_iso, to_iso, utcnow

logger = logging.getLogger(__name__)


class Repository:
    """Database access layer for contacts and reminders."""

    def __init__(self, db_path: Path):
        self.db_path = db_path
        self._db: aiosqlite.Connection | None = None
        # Writes share one connection; a rollback must not discard another
        # coroutine's uncommitted statement.
        self._write_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open database connection."""
        self._db = await aiosqlite.connect(self.db_path)
        self._db.row_factory = aiosqlite.Row
        await self._db.execute("PRAGMA foreign_keys = ON")
        logger.info(f"Connected to database at {self.db_path}")

    async def close(self) -> None:
        """Close database connection."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Database connection closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection."""
        if self._db is None:
            raise RuntimeError("Database not connected")
        return self._db

    async def _write(
        self, query: str, params: tuple | list = ()
    ) -> tuple[aiosqlite.Row | None, int]:
        """Run one write statement and commit it.

        Returns:
            (first returned row or None, affected row count)
        """
        async with self._write_lock:
            try:
                async with self.db.execute(query, params) as cursor:
                    row = await cursor.fetchone()
                    rowcount = cursor.rowcount
                await self.db.commit()
            except sqlite3.Error:
                await self.db.rollback()
                raise
        return row, rowcount

    # Contact operations

    async def create_contact(self, contact: Contact) -> Contact:
        """Insert a new contact."""
        now = to_iso(utcnow())
        row, _ = await self._write(
            """
            INSERT INTO contacts (
                first_name, last_name, birthday, communication_frequency,
                last_contacted_at, reminders_paused, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            RETURNING *
            """,
            (
                contact.first_name,
                contact.last_name,
                contact.birthday,
                contact.communication_frequency,
                to_iso(contact.last_contacted_at) if contact.last_contacted_at else None,
                1 if contact.reminders_paused else 0,
                now,
                now,
            ),
        )
        return self._row_to_contact(row)  # type: ignore

    async def get_contact(self, contact_id: int) -> Contact | None:
        """Get a contact by ID."""
        async with self.db.execute(
            "SELECT * FROM contacts WHERE id = ?", (contact_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_contact(row)
            return None

    async def list_contacts(self, active_only: bool = False) -> List[Contact]:
        """List contacts, optionally only those with reminders enabled."""
        query = "SELECT * FROM contacts"
        if active_only:
            query += " WHERE reminders_paused = 0"
        query += " ORDER BY first_name, id"

        async with self.db.execute(query) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_contact(row) for row in rows]

    async def update_last_contacted(self, contact_id: int, contacted_at: datetime) -> Contact:
        """Set a contact's last_contacted_at."""
        row, _ = await self._write(
            """
            UPDATE contacts SET last_contacted_at = ?, updated_at = ?
            WHERE id = ?
            RETURNING *
            """,
            (to_iso(contacted_at), to_iso(utcnow()), contact_id),
        )
        if row is None:
            raise NotFoundError("Contact", contact_id)
        return self._row_to_contact(row)

    async def set_reminders_paused(self, contact_id: int, paused: bool) -> Contact:
        """Pause or resume reminders for a contact."""
        row, _ = await self._write(
            """
            UPDATE contacts SET reminders_paused = ?, updated_at = ?
            WHERE id = ?
            RETURNING *
            """,
            (1 if paused else 0, to_iso(utcnow()), contact_id),
        )
        if row is None:
            raise NotFoundError("Contact", contact_id)
        return self._row_to_contact(row)

    async def set_birthday(self, contact_id: int, birthday: str | None) -> Contact:
        """Set (or clear, with None) a contact's MM-DD birthday."""
        if birthday is not None and not validate_birthday(birthday):
            raise InvalidBirthdayError(f"Birthday must be a real MM-DD date, got {birthday!r}")

        row, _ = await self._write(
            """
            UPDATE contacts SET birthday = ?, updated_at = ?
            WHERE id = ?
            RETURNING *
            """,
            (birthday, to_iso(utcnow()), contact_id),
        )
        if row is None:
            raise NotFoundError("Contact", contact_id)
        return self._row_to_contact(row)

    async def delete_contact(self, contact_id: int) -> None:
        """Delete a contact (its reminders cascade)."""
        await self._write("DELETE FROM contacts WHERE id = ?", (contact_id,))

    # Reminder operations

    async def create_reminder(self, reminder: Reminder) -> Reminder:
        """Create a new reminder.

        Raises:
            DuplicateReminderError: the contact already has a pending
                reminder of this type.
        """
        try:
            row, _ = await self._write(
                """
                INSERT INTO reminders (
                    contact_id, type, scheduled_for, status, message, created_at, sent_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
                RETURNING *
                """,
                (
                    reminder.contact_id,
                    reminder.type,
                    to_iso(reminder.scheduled_for),
                    reminder.status,
                    reminder.message,
                    to_iso(reminder.created_at or utcnow()),
                    to_iso(reminder.sent_at) if reminder.sent_at else None,
                ),
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" in str(e):
                raise DuplicateReminderError(reminder.contact_id, reminder.type) from e
            raise
        return self._row_to_reminder(row)  # type: ignore

    async def get_reminder(self, reminder_id: int) -> Reminder | None:
        """Get a reminder by ID."""
        async with self.db.execute(
            "SELECT * FROM reminders WHERE id = ?", (reminder_id,)
        ) as cursor:
            row = await cursor.fetchone()
            if row:
                return self._row_to_reminder(row)
            return None

    async def list_reminders(
        self,
        contact_id: int | None = None,
        status: str | Iterable[str] | None = None,
        types: Iterable[str] | None = None,
        scheduled_from: datetime | None = None,
        scheduled_to: datetime | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> List[Reminder]:
        """List reminders matching every given filter, soonest first."""
        where, params = self._reminder_filters(
            contact_id=contact_id,
            status=status,
            types=types,
            scheduled_from=scheduled_from,
            scheduled_to=scheduled_to,
        )
        query = f"SELECT * FROM reminders{where} ORDER BY scheduled_for, id"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [self._row_to_reminder(row) for row in rows]

    async def list_pending_with_contacts(
        self, start: datetime | None = None, end: datetime | None = None
    ) -> List[ReminderWithContact]:
        """Pending reminders scheduled in [start, end], joined with their contact."""
        query = """
            SELECT r.*,
                   c.first_name AS c_first_name,
                   c.last_name AS c_last_name,
                   c.birthday AS c_birthday,
                   c.communication_frequency AS c_communication_frequency,
                   c.last_contacted_at AS c_last_contacted_at,
                   c.reminders_paused AS c_reminders_paused,
                   c.created_at AS c_created_at,
                   c.updated_at AS c_updated_at
            FROM reminders r
            JOIN contacts c ON c.id = r.contact_id
            WHERE r.status = 'pending'
        """
        params: list = []
        if start is not None:
            query += " AND r.scheduled_for >= ?"
            params.append(to_iso(start))
        if end is not None:
            query += " AND r.scheduled_for <= ?"
            params.append(to_iso(end))
        query += " ORDER BY r.scheduled_for, r.id"

        async with self.db.execute(query, params) as cursor:
            rows = await cursor.fetchall()
            return [
                ReminderWithContact(
                    contact=Contact(
                        id=row["contact_id"],
                        first_name=row["c_first_name"],
                        last_name=row["c_last_name"],
                        birthday=row["c_birthday"],
                        communication_frequency=row["c_communication_frequency"],
                        last_contacted_at=from_iso(row["c_last_contacted_at"]),
                        reminders_paused=bool(row["c_reminders_paused"]),
                        created_at=from_iso(row["c_created_at"]),
                        updated_at=from_iso(row["c_updated_at"]),
                    ),
                    reminder=self._row_to_reminder(row),
                )
                for row in rows
            ]

    async def update_reminder_status(
        self, reminder_id: int, status: str, sent_at: datetime | None = None
    ) -> Reminder:
        """Change a reminder's status (and sent_at when given)."""
        if sent_at is not None:
            query = "UPDATE reminders SET status = ?, sent_at = ? WHERE id = ? RETURNING *"
            params: tuple = (status, to_iso(sent_at), reminder_id)
        else:
            query = "UPDATE reminders SET status = ? WHERE id = ? RETURNING *"
            params = (status, reminder_id)

        row, _ = await self._write(query, params)
        if row is None:
            raise NotFoundError("Reminder", reminder_id)
        return self._row_to_reminder(row)

    async def delete_reminder(self, reminder_id: int, pending_only: bool = False) -> bool:
        """Delete a reminder. Returns whether a row was deleted.

        With pending_only, a reminder that has since been sent or dismissed
        is left alone.
        """
        query = "DELETE FROM reminders WHERE id = ?"
        if pending_only:
            query += " AND status = 'pending'"
        _, deleted = await self._write(query, (reminder_id,))
        return deleted > 0

    async def delete_reminders(
        self,
        status: str | Iterable[str] | None = None,
        types: Iterable[str] | None = None,
        older_than: datetime | None = None,
    ) -> int:
        """Delete reminders matching the filters. Returns the number deleted."""
        where, params = self._reminder_filters(
            status=status, types=types, scheduled_before=older_than
        )
        _, deleted = await self._write(f"DELETE FROM reminders{where}", params)
        return deleted

    async def count_reminders(
        self, status: str | None = None, types: Iterable[str] | None = None
    ) -> int:
        """Count reminders matching the filters."""
        where, params = self._reminder_filters(status=status, types=types)
        async with self.db.execute(f"SELECT COUNT(*) FROM reminders{where}", params) as cursor:
            row = await cursor.fetchone()
            return row[0]

    # Helper methods

    @staticmethod
    def _reminder_filters(
        contact_id: int | None = None,
        status: str | Iterable[str] | None = None,
        types: Iterable[str] | None = None,
        scheduled_from: datetime | None = None,
        scheduled_to: datetime | None = None,
        scheduled_before: datetime | None = None,
    ) -> tuple[str, list]:
        """Build a WHERE clause from optional reminder filters."""
        clauses = []
        params: list = []

        if contact_id is not None:
            clauses.append("contact_id = ?")
            params.append(contact_id)
        if status is not None:
            statuses = [status] if isinstance(status, str) else list(status)
            clauses.append(f"status IN ({', '.join('?' for _ in statuses)})")
            params.extend(statuses)
        if types is not None:
            type_list = list(types)
            clauses.append(f"type IN ({', '.join('?' for _ in type_list)})")
            params.extend(type_list)
        if scheduled_from is not None:
            clauses.append("scheduled_for >= ?")
            params.append(to_iso(scheduled_from))
        if scheduled_to is not None:
            clauses.append("scheduled_for <= ?")
            params.append(to_iso(scheduled_to))
        if scheduled_before is not None:
            clauses.append("scheduled_for < ?")
            params.append(to_iso(scheduled_before))

        if not clauses:
            return "", params
        return " WHERE " + " AND ".join(clauses), params

    def _row_to_contact(self, row: aiosqlite.Row) -> Contact:
        """Convert a database row to a Contact object."""
        return Contact(
            id=row["id"],
            first_name=row["first_name"],
            last_name=row["last_name"],
            birthday=row["birthday"],
            communication_frequency=row["communication_frequency"],
            last_contacted_at=from_iso(row["last_contacted_at"]),
            reminders_paused=bool(row["reminders_paused"]),
            created_at=from_iso(row["created_at"]),
            updated_at=from_iso(row["updated_at"]),
        )

    def _row_to_reminder(self, row: aiosqlite.Row) -> Reminder:
        """Convert a database row to a Reminder object."""
        return Reminder(
            id=row["id"],
            contact_id=row["contact_id"],
            type=row["type"],
            scheduled_for=from_iso(row["scheduled_for"]),  # type: ignore
            status=row["status"],
            message=row["message"],
            created_at=from_iso(row["created_at"]),
            sent_at=from_iso(row["sent_at"]),
        )
