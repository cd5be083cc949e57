"""SQLite connection layer with the sqlite-vec extension loaded."""

from __future__ import annotations

import sqlite3
from pathlib import Path

import sqlite_vec

from folderkb.errors import StorageError


class Database:
    """Per-project SQLite database with sqlite-vec vector functions.

    Holds only the path; callers own and close the connections it opens.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Store the database path. Each connect() call opens a new connection.

        Args:
            db_path: Path to the SQLite database file (created if missing),
                or ``":memory:"`` for a throwaway database.
        """
        self.db_path = db_path if db_path == ":memory:" else Path(db_path)

    def connect(self) -> sqlite3.Connection:
        """Open a connection, load sqlite-vec, and return the connection.

        The connection may be shared with the ingestion worker threads;
        the repository serialises access with its own lock.

        Raises:
            StorageError: If the file cannot be opened or the extension fails to load.
        """
        try:
            conn = sqlite3.connect(self.db_path, check_same_thread=False)
            conn.row_factory = sqlite3.Row
            conn.enable_load_extension(True)
            sqlite_vec.load(conn)
            conn.enable_load_extension(False)
            conn.execute("PRAGMA foreign_keys = ON")
            if self.db_path != ":memory:":
                conn.execute("PRAGMA journal_mode = WAL")
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database '{self.db_path}': {exc}") from exc
        return conn
