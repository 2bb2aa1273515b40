"""
Repository pattern for data access.

Key/value settings store. The quota ledger reads and upserts a single row
here; nothing in this package deletes settings.
"""

import logging
from datetime import datetime
from typing import Optional

from .db import DEFAULT_DB_PATH, get_connection
from .models import SettingRecord

logger = logging.getLogger(__name__)


def initialize_schema(db_path: str = DEFAULT_DB_PATH) -> None:
    """Create the settings table if it doesn't exist.

    Args:
        db_path: Path to SQLite database file
    """
    conn = get_connection(db_path)
    try:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS settings (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                organisation_id INTEGER NOT NULL,
                created_at TEXT,
                updated_at TEXT
            )
        """)
        conn.commit()
    finally:
        conn.close()


class SettingsRepository:
    """Repository for reading and writing settings rows.

    Each call opens its own connection so the repository can be shared
    between requests without holding database state.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    def get_setting(self, key: str) -> Optional[SettingRecord]:
        """Fetch a setting by key.

        Args:
            key: Setting key

        Returns:
            The stored record, or None if the key has never been written
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                """
                SELECT key, value, organisation_id, created_at, updated_at
                FROM settings
                WHERE key = ?
                LIMIT 1
                """,
                (key,)
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return SettingRecord(
                key=row[0],
                value=row[1],
                organisation_id=row[2],
                created_at=_parse_timestamp(row[3]),
                updated_at=_parse_timestamp(row[4])
            )
        finally:
            conn.close()

    def upsert_setting(
        self,
        key: str,
        value: str,
        organisation_id: int,
        now: Optional[datetime] = None
    ) -> None:
        """Insert a setting or update its value and timestamp.

        The creation timestamp and owning organisation are fixed on first
        write; later writes only change ``value`` and ``updated_at``.

        Args:
            key: Setting key
            value: Text value to store
            organisation_id: Owning organisation, used only on first write
            now: Timestamp to record (defaults to the current time)
        """
        timestamp = (now or datetime.now()).isoformat()
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                """
                INSERT INTO settings (key, value, organisation_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, value, organisation_id, timestamp, timestamp)
            )
            conn.commit()
        finally:
            conn.close()


def _parse_timestamp(value) -> Optional[datetime]:
    # Rows written elsewhere may not use ISO 8601 timestamps
    if not value:
        return None
    try:
        return datetime.fromisoformat(str(value))
    except ValueError:
        logger.warning("Ignoring unparseable settings timestamp %r", value)
        return None
