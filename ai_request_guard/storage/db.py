"""
Database connection management.

Provides SQLite connection for the request log.
"""

import sqlite3
from pathlib import Path


def get_connection(db_path: str = "ai_request_guard.db") -> sqlite3.Connection:
    """Create and return a SQLite database connection.

    A busy timeout lets concurrent appends from several workers wait for
    the write lock instead of failing immediately.

    Args:
        db_path: Path to SQLite database file

    Returns:
        SQLite connection
    """
    path = Path(db_path)
    conn = sqlite3.connect(str(path), timeout=5.0)
    conn.execute("PRAGMA foreign_keys = ON")
    return conn
