"""vraagbaak database layer."""

from vraagbaak.db.connection import Database
from vraagbaak.db.corpus import CorpusStore
from vraagbaak.db.migrations import MIGRATIONS, run_migrations
from vraagbaak.db.schema import initialize, open_database
from vraagbaak.db.sessions import SessionStore

__all__ = [
    "CorpusStore",
    "Database",
    "MIGRATIONS",
    "SessionStore",
    "initialize",
    "open_database",
    "run_migrations",
]
