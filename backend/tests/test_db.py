"""Database connection tests."""

import sqlite3
import threading
from pathlib import Path

import pytest

from quarry.db.connection import Database


def test_database_connects(tmp_path: Path):
    """Database connects and creates file, including missing parent directories."""
    db_path = tmp_path / "nested" / "quarry.db"
    db = Database(db_path)

    assert db_path.exists()
    db.close()
    assert db.closed


def test_close_is_idempotent(temp_db):
    temp_db.close()
    temp_db.close()

    assert temp_db.closed


class TestTransaction:
    """Tests for Database.transaction."""

    @pytest.fixture
    def db(self, temp_db):
        temp_db.execute("CREATE TABLE items (id TEXT PRIMARY KEY)")
        return temp_db

    def test_commits_on_success(self, db):
        with db.transaction():
            db.execute("INSERT INTO items VALUES ('a')")
            db.execute("INSERT INTO items VALUES ('b')")

        assert db.fetchone("SELECT COUNT(*) FROM items")[0] == 2

    def test_rolls_back_on_error(self, db):
        with pytest.raises(sqlite3.IntegrityError):
            with db.transaction():
                db.execute("INSERT INTO items VALUES ('a')")
                db.execute("INSERT INTO items VALUES ('a')")

        assert db.fetchone("SELECT COUNT(*) FROM items")[0] == 0

    def test_readers_wait_for_commit(self, db):
        """A reader on another thread never sees half of a transaction."""
        seen = []
        inside = threading.Event()

        def reader():
            inside.wait(5)
            seen.append(db.fetchone("SELECT COUNT(*) FROM items")[0])

        thread = threading.Thread(target=reader)
        thread.start()
        with db.transaction():
            db.execute("INSERT INTO items VALUES ('a')")
            inside.set()
            # Give the reader a chance to run while the transaction is open
            thread.join(0.05)
            db.execute("INSERT INTO items VALUES ('b')")
        thread.join(5)

        assert seen == [2]
