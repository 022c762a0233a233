"""Schema initialization and connection bootstrap."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from vraagbaak.db.connection import Database
from vraagbaak.errors import PersistenceError


def initialize(conn: sqlite3.Connection) -> None:
    """Initialize the database schema via the migration runner (idempotent)."""
    from vraagbaak.db.migrations import run_migrations

    try:
        run_migrations(conn)
    except sqlite3.Error as exc:
        raise PersistenceError(f"Schema migration failed: {exc}") from exc


def open_database(db_path: Path | str) -> sqlite3.Connection:
    """Open (or create) the database at *db_path* and run migrations."""
    conn = Database(db_path).connect()
    initialize(conn)
    return conn
