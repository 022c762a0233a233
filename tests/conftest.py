"""Shared pytest fixtures."""

from __future__ import annotations

import logging

import pytest
import structlog

from vraagbaak.db.connection import Database
from vraagbaak.db.schema import initialize


@pytest.fixture
def tmp_db(tmp_path):
    """File-based DB in tmp_path with schema initialized, closed after test."""
    db = Database(tmp_path / ".vraagbaak.db")
    conn = db.connect()
    initialize(conn)
    yield conn
    conn.close()


@pytest.fixture(autouse=True)
def _reset_logging():
    """Drop logging config bound to a previous test's captured streams."""
    yield
    structlog.reset_defaults()
    logging.getLogger().handlers.clear()
