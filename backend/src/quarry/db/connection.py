"""SQLite database connection management."""

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator


class Database:
    """SQLite database wrapper with connection management.

    One connection is shared by the event loop and worker threads, so every
    statement runs under a re-entrant lock. Multi-statement writes go through
    transaction(), which holds the lock until commit so readers never observe
    half of a write.
    """

    def __init__(self, db_path: Path | str):
        """Initialize database connection.

        Args:
            db_path: Database file path, or ":memory:" for a private in-memory database.
        """
        self.db_path = db_path
        if isinstance(db_path, Path):
            db_path.parent.mkdir(parents=True, exist_ok=True)
        # Autocommit mode: transactions are only ever opened explicitly
        self._conn = sqlite3.connect(db_path, check_same_thread=False, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA foreign_keys = ON")
        self._lock = threading.RLock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def execute(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Cursor:
        """Execute SQL statement."""
        with self._lock:
            return self._conn.execute(sql, params)

    def executemany(self, sql: str, params_list: list[tuple[Any, ...]]) -> sqlite3.Cursor:
        """Execute SQL statement for multiple parameter sets."""
        with self._lock:
            return self._conn.executemany(sql, params_list)

    def executescript(self, sql: str) -> sqlite3.Cursor:
        """Execute multiple SQL statements as a script."""
        with self._lock:
            return self._conn.executescript(sql)

    def fetchall(self, sql: str, params: tuple[Any, ...] = ()) -> list[sqlite3.Row]:
        """Execute a query and fetch every row while holding the lock."""
        with self._lock:
            return self._conn.execute(sql, params).fetchall()

    def fetchone(self, sql: str, params: tuple[Any, ...] = ()) -> sqlite3.Row | None:
        """Execute a query and fetch the first row while holding the lock."""
        with self._lock:
            return self._conn.execute(sql, params).fetchone()

    @contextmanager
    def transaction(self) -> Iterator["Database"]:
        """Run a block of statements atomically.

        Commits on success, rolls back and re-raises on any exception.
        """
        with self._lock:
            self._conn.execute("BEGIN IMMEDIATE")
            try:
                yield self
            except BaseException:
                self._conn.rollback()
                raise
            else:
                self._conn.commit()

    def commit(self) -> None:
        """Commit current transaction."""
        with self._lock:
            self._conn.commit()

    def rollback(self) -> None:
        """Rollback current transaction."""
        with self._lock:
            self._conn.rollback()

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if not self._closed:
                self._conn.close()
                self._closed = True
