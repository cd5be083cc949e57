"""folderkb storage layer."""

from folderkb.db.connection import Database
from folderkb.db.migrations import MIGRATIONS, run_migrations
from folderkb.db.models import Scope
from folderkb.db.repository import SqliteRepository
from folderkb.db.schema import initialize
from folderkb.db.store import MemoryStore, RecordKind, ScopedStore

__all__ = [
    "Database",
    "initialize",
    "run_migrations",
    "MIGRATIONS",
    "MemoryStore",
    "RecordKind",
    "Scope",
    "ScopedStore",
    "SqliteRepository",
    "open_sqlite_store",
]


def open_sqlite_store(db_path) -> SqliteRepository:
    """Open (or create) the database at *db_path*, migrate it, and wrap it."""
    conn = Database(db_path).connect()
    initialize(conn)
    return SqliteRepository(conn)
