"""
Database connection management.

Provides the SQLite connection backing the settings store and the
analytics tables whose indexes are inspected during plan analysis.
"""

import sqlite3
from pathlib import Path

DEFAULT_DB_PATH = "cube_ai_gateway.db"


def get_connection(db_path: str = DEFAULT_DB_PATH) -> sqlite3.Connection:
    """Open a SQLite connection with foreign keys enabled.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection; callers are responsible for closing it
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path))
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
