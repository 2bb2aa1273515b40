"""
Unit tests for storage layer.

Tests schema creation and settings upsert/retrieval.
"""

import os
import tempfile
from datetime import datetime

from cube_ai_gateway.storage.db import get_connection
from cube_ai_gateway.storage.repository import SettingsRepository, initialize_schema


class TestStorageSchema:
    """Test database schema creation and structure."""

    def test_schema_creation(self):
        """Verify table is created correctly."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)

            conn = get_connection(db_path)
            try:
                cursor = conn.execute("""
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='settings'
                """)
                tables = cursor.fetchall()
                assert len(tables) == 1

                cursor = conn.execute("PRAGMA table_info(settings)")
                column_names = [col[1] for col in cursor.fetchall()]
                assert column_names == [
                    'key', 'value', 'organisation_id', 'created_at', 'updated_at'
                ]
            finally:
                conn.close()

    def test_schema_creation_is_idempotent(self):
        """Initializing twice keeps existing rows."""
        with tempfile.TemporaryDirectory() as temp_dir:
            db_path = os.path.join(temp_dir, "test.db")
            initialize_schema(db_path)
            SettingsRepository(db_path).upsert_setting("k", "v", organisation_id=1)

            initialize_schema(db_path)

            assert SettingsRepository(db_path).get_setting("k").value == "v"


class TestSettingsRepository:
    """Test reading and upserting settings."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = SettingsRepository(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_missing_setting_returns_none(self):
        assert self.repository.get_setting("gemini-ai-calls") is None

    def test_insert_then_read(self):
        """First write stores value, owner and both timestamps."""
        now = datetime(2024, 3, 1, 9, 30)
        self.repository.upsert_setting("gemini-ai-calls", "1", organisation_id=7, now=now)

        record = self.repository.get_setting("gemini-ai-calls")
        assert record.key == "gemini-ai-calls"
        assert record.value == "1"
        assert record.organisation_id == 7
        assert record.created_at == now
        assert record.updated_at == now

    def test_update_changes_value_and_updated_at_only(self):
        """Later writes keep creation time and owner."""
        created = datetime(2024, 3, 1, 9, 30)
        updated = datetime(2024, 3, 1, 17, 0)
        self.repository.upsert_setting("gemini-ai-calls", "1", organisation_id=7, now=created)
        self.repository.upsert_setting("gemini-ai-calls", "2", organisation_id=99, now=updated)

        record = self.repository.get_setting("gemini-ai-calls")
        assert record.value == "2"
        assert record.organisation_id == 7
        assert record.created_at == created
        assert record.updated_at == updated

    def test_foreign_timestamps_do_not_block_reads(self):
        """Rows with non-ISO timestamps still return their value."""
        conn = get_connection(self.db_path)
        try:
            conn.execute(
                "INSERT INTO settings (key, value, organisation_id, created_at, updated_at) "
                "VALUES (?, ?, ?, ?, ?)",
                ("gemini-ai-calls", "4", 1, "Tue Mar 5 09:30:00 2024", "5 March 2024")
            )
            conn.commit()
        finally:
            conn.close()

        record = self.repository.get_setting("gemini-ai-calls")

        assert record.value == "4"
        assert record.created_at is None
        assert record.updated_at is None

    def test_keys_are_independent(self):
        self.repository.upsert_setting("a", "1", organisation_id=1)
        self.repository.upsert_setting("b", "5", organisation_id=1)

        assert self.repository.get_setting("a").value == "1"
        assert self.repository.get_setting("b").value == "5"

        conn = get_connection(self.db_path)
        try:
            count = conn.execute("SELECT COUNT(*) FROM settings").fetchone()[0]
        finally:
            conn.close()
        assert count == 2
