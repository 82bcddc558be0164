"""Per-content-type index partitions in SQLite."""

from __future__ import annotations

from typing import Iterable, Optional

from quarry.db.connection import Database
from quarry.db.migrations import (
    create_partition,
    entries_indexes_sql,
    entries_table,
    fts_table,
)
from quarry.index.normalize import format_timestamp
from quarry.models import IndexEntry

SHADOW_SUFFIX = "__shadow"


class IndexStore:
    """Reads and writes index entries.

    Each content type owns an entries_<type> table holding the normalized
    fields and, when FTS5 is available, an fts_<type> table whose rowid is the
    entry's entry_id. Writes to both always happen in one transaction.
    """

    def __init__(self, db: Database, content_types: Iterable[str], with_fts: bool) -> None:
        self._db = db
        self._content_types = tuple(content_types)
        self._with_fts = with_fts

    @property
    def db(self) -> Database:
        return self._db

    @property
    def with_fts(self) -> bool:
        return self._with_fts

    @property
    def content_types(self) -> tuple[str, ...]:
        return self._content_types

    def _check_type(self, content_type: str) -> None:
        # Table names are built from content types; only registered ones get through
        if content_type not in self._content_types:
            raise KeyError(f"Unknown content type: {content_type}")

    def get(self, content_type: str, item_id: str) -> Optional[IndexEntry]:
        """Get the indexed entry for an item, or None if absent."""
        self._check_type(content_type)
        row = self._db.fetchone(
            f"SELECT * FROM {entries_table(content_type)} WHERE item_id = ?", (item_id,)
        )
        return IndexEntry.from_row(row, content_type) if row else None

    def count(self, content_type: str) -> int:
        self._check_type(content_type)
        row = self._db.fetchone(f"SELECT COUNT(*) FROM {entries_table(content_type)}")
        return int(row[0]) if row else 0

    def entries(self, content_type: str, workspace_id: Optional[str] = None) -> list[IndexEntry]:
        """Every entry of a content type, optionally restricted to one workspace."""
        self._check_type(content_type)
        sql = f"SELECT * FROM {entries_table(content_type)}"
        params: tuple[str, ...] = ()
        if workspace_id is not None:
            sql += " WHERE workspace_id = ?"
            params = (workspace_id,)
        rows = self._db.fetchall(sql + " ORDER BY item_id", params)
        return [IndexEntry.from_row(row, content_type) for row in rows]

    def upsert(self, entry: IndexEntry) -> None:
        """Replace every derivative of an item atomically."""
        self._check_type(entry.content_type)
        with self._db.transaction():
            self._delete_rows(entry.content_type, entry.item_id, suffix="")
            self._insert_rows(entry, suffix="")

    def delete(self, content_type: str, item_id: str) -> bool:
        """Remove an item from the index.

        Returns:
            True if an entry was removed, False if it was already absent.
        """
        self._check_type(content_type)
        with self._db.transaction():
            return self._delete_rows(content_type, item_id, suffix="")

    def _delete_rows(self, content_type: str, item_id: str, suffix: str) -> bool:
        table = entries_table(content_type) + suffix
        row = self._db.fetchone(f"SELECT entry_id FROM {table} WHERE item_id = ?", (item_id,))
        if row is None:
            return False
        if self._with_fts:
            self._db.execute(
                f"DELETE FROM {fts_table(content_type) + suffix} WHERE rowid = ?",
                (row["entry_id"],),
            )
        self._db.execute(f"DELETE FROM {table} WHERE entry_id = ?", (row["entry_id"],))
        return True

    def _insert_rows(self, entry: IndexEntry, suffix: str) -> None:
        table = entries_table(entry.content_type) + suffix
        cursor = self._db.execute(
            f"""
            INSERT INTO {table}
            (item_id, owner_id, workspace_id, title, body, tags, tokens,
             visibility, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                entry.item_id,
                entry.owner_id,
                entry.workspace_id,
                entry.title,
                entry.body,
                entry.tags,
                entry.tokens,
                entry.visibility,
                format_timestamp(entry.created_at),
                format_timestamp(entry.updated_at),
            ),
        )
        if self._with_fts:
            self._db.execute(
                f"INSERT INTO {fts_table(entry.content_type) + suffix}"
                " (rowid, title, body, tags) VALUES (?, ?, ?, ?)",
                (cursor.lastrowid, entry.title, entry.body, entry.tags),
            )

    # =========================================================================
    # Rebuild (copy-then-swap)
    # =========================================================================

    def create_shadow(self, content_type: str) -> None:
        """Create empty shadow tables for a rebuild, discarding any leftovers."""
        self._check_type(content_type)
        with self._db.transaction():
            self._drop_tables(content_type, SHADOW_SUFFIX)
            create_partition(self._db, content_type, self._with_fts, suffix=SHADOW_SUFFIX)

    def write_shadow(self, entries: list[IndexEntry]) -> None:
        """Insert a batch of entries into the shadow tables."""
        if not entries:
            return
        with self._db.transaction():
            for entry in entries:
                self._check_type(entry.content_type)
                self._delete_rows(entry.content_type, entry.item_id, suffix=SHADOW_SUFFIX)
                self._insert_rows(entry, suffix=SHADOW_SUFFIX)

    def swap_shadow(self, content_type: str) -> None:
        """Replace the live partition with the shadow in a single transaction.

        Readers see either the old partition or the new one, never a mix.
        """
        self._check_type(content_type)
        live_entries = entries_table(content_type)
        live_fts = fts_table(content_type)
        with self._db.transaction():
            self._drop_tables(content_type, "")
            self._db.execute(
                f"ALTER TABLE {live_entries + SHADOW_SUFFIX} RENAME TO {live_entries}"
            )
            if self._with_fts:
                self._db.execute(f"ALTER TABLE {live_fts + SHADOW_SUFFIX} RENAME TO {live_fts}")
            for sql in entries_indexes_sql(live_entries):
                self._db.execute(sql)

    def drop_shadow(self, content_type: str) -> None:
        """Discard shadow tables after a failed rebuild."""
        self._check_type(content_type)
        with self._db.transaction():
            self._drop_tables(content_type, SHADOW_SUFFIX)

    def _drop_tables(self, content_type: str, suffix: str) -> None:
        self._db.execute(f"DROP TABLE IF EXISTS {entries_table(content_type) + suffix}")
        self._db.execute(f"DROP TABLE IF EXISTS {fts_table(content_type) + suffix}")
