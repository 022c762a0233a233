"""Tests for the forward-only migration runner."""

from __future__ import annotations

import sqlite3

import pytest

from vraagbaak.db.connection import Database
from vraagbaak.db.migrations import CURRENT_VERSION, MIGRATIONS, run_migrations, schema_version


def _fresh_conn(tmp_path):
    """Open a new connection without running migrations."""
    db = Database(tmp_path / "test.db")
    return db.connect()


def _table_exists(conn, name: str) -> bool:
    return conn.execute(
        "SELECT name FROM sqlite_master WHERE type='table' AND name=?", (name,)
    ).fetchone() is not None


# --- Bootstrap ---

def test_run_migrations_creates_schema_version(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, "schema_version")
    conn.close()


def test_schema_version_zero_on_fresh_db(tmp_path):
    conn = _fresh_conn(tmp_path)
    assert schema_version(conn) == 0
    run_migrations(conn)
    assert schema_version(conn) == CURRENT_VERSION
    conn.close()


# --- Idempotency ---

def test_run_migrations_idempotent(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    run_migrations(conn)
    count = conn.execute("SELECT COUNT(*) FROM schema_version").fetchone()[0]
    assert count == len(MIGRATIONS)
    conn.close()


# --- Tables created ---

@pytest.mark.parametrize(
    "table", ["resources", "chunks", "corpus_meta", "chat_sessions", "messages"]
)
def test_run_migrations_creates_table(tmp_path, table):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    assert _table_exists(conn, table)
    conn.close()


def test_message_role_is_constrained(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    conn.execute("INSERT INTO chat_sessions (id) VALUES ('s1')")
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(
            "INSERT INTO messages (id, session_id, role, content) "
            "VALUES ('m1', 's1', 'system', 'hi')"
        )
    conn.close()


def test_client_turn_token_unique_per_session(tmp_path):
    conn = _fresh_conn(tmp_path)
    run_migrations(conn)
    conn.execute("INSERT INTO chat_sessions (id) VALUES ('s1')")
    conn.execute("INSERT INTO chat_sessions (id) VALUES ('s2')")
    insert = (
        "INSERT INTO messages (id, session_id, role, content, client_turn_token) "
        "VALUES (?, ?, 'user', 'hi', 'tok')"
    )
    conn.execute(insert, ("m1", "s1"))
    conn.execute(insert, ("m2", "s2"))  # same token, other session: allowed
    with pytest.raises(sqlite3.IntegrityError):
        conn.execute(insert, ("m3", "s1"))
    conn.close()


# --- Incremental application ---

def test_run_migrations_applies_only_pending(tmp_path, monkeypatch):
    """Simulate a DB already at version 1; a hypothetical v2 migration applies."""
    conn = _fresh_conn(tmp_path)

    conn.execute(
        "CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL, "
        "applied_at TEXT NOT NULL DEFAULT (datetime('now')))"
    )
    conn.execute("INSERT INTO schema_version (version) VALUES (1)")
    conn.commit()

    import vraagbaak.db.migrations as mod

    monkeypatch.setattr(
        mod,
        "MIGRATIONS",
        [(1, "SELECT 1;"), (2, "CREATE TABLE IF NOT EXISTS v2_marker (x INTEGER);")],
    )
    run_migrations(conn)
    assert _table_exists(conn, "v2_marker")
    assert not _table_exists(conn, "resources")  # v1 not re-applied
    versions = [
        r[0] for r in conn.execute("SELECT version FROM schema_version ORDER BY version")
    ]
    assert versions == [1, 2]
    conn.close()


# --- initialize() delegates to run_migrations() ---

def test_initialize_delegates_to_run_migrations(tmp_path):
    from vraagbaak.db.schema import initialize

    conn = _fresh_conn(tmp_path)
    initialize(conn)
    assert schema_version(conn) == MIGRATIONS[-1][0]
    conn.close()


def test_open_database_runs_migrations(tmp_path):
    from vraagbaak.db.schema import open_database

    conn = open_database(tmp_path / "x.db")
    assert _table_exists(conn, "messages")
    conn.close()
