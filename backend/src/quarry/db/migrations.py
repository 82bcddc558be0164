"""Database migrations and schema management for Quarry."""

import logging
import sqlite3
from typing import Iterable

from quarry.constants import DEFAULT_CONTENT_TYPES
from quarry.db.connection import Database

logger = logging.getLogger(__name__)

# Schema version for tracking migrations
SCHEMA_VERSION = 1

SCHEMA_SQL = """
-- Schema version tracking
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL DEFAULT (datetime('now'))
);

-- Search analytics
-- One row per completed search; a click may be attached once afterwards
CREATE TABLE IF NOT EXISTS search_analytics (
    id TEXT PRIMARY KEY,  -- searchId handed back to the caller
    query TEXT NOT NULL,
    user_id TEXT,
    results_count INTEGER NOT NULL DEFAULT 0,
    response_time_ms INTEGER NOT NULL DEFAULT 0,
    filters TEXT,  -- JSON
    content_types TEXT,  -- JSON array
    clicked_result_id TEXT,
    clicked_result_type TEXT,
    session_id TEXT,
    created_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_search_analytics_query ON search_analytics(query);
CREATE INDEX IF NOT EXISTS idx_search_analytics_user_id ON search_analytics(user_id);
CREATE INDEX IF NOT EXISTS idx_search_analytics_created_at ON search_analytics(created_at);
"""


def entries_table(content_type: str) -> str:
    """Name of the normalized-entry table for a content type."""
    return f"entries_{content_type}"


def fts_table(content_type: str) -> str:
    """Name of the FTS5 table for a content type."""
    return f"fts_{content_type}"


def entries_table_sql(table: str) -> str:
    """DDL for a normalized-entry table.

    entry_id doubles as the rowid of the matching FTS5 row.
    """
    return f"""
        CREATE TABLE IF NOT EXISTS {table} (
            entry_id INTEGER PRIMARY KEY,
            item_id TEXT NOT NULL UNIQUE,
            owner_id TEXT,
            workspace_id TEXT,
            title TEXT NOT NULL DEFAULT '',
            body TEXT NOT NULL DEFAULT '',
            tags TEXT NOT NULL DEFAULT '',
            tokens TEXT NOT NULL DEFAULT '',
            visibility TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """


def entries_indexes_sql(table: str) -> list[str]:
    """Secondary indexes backing the filter columns of an entry table."""
    return [
        f"CREATE INDEX IF NOT EXISTS idx_{table}_workspace ON {table}(workspace_id)",
        f"CREATE INDEX IF NOT EXISTS idx_{table}_owner ON {table}(owner_id)",
        f"CREATE INDEX IF NOT EXISTS idx_{table}_created ON {table}(created_at)",
    ]


def fts_table_sql(table: str) -> str:
    """DDL for an FTS5 table mirroring the searchable columns."""
    return f"""
        CREATE VIRTUAL TABLE IF NOT EXISTS {table} USING fts5(
            title,
            body,
            tags,
            tokenize='unicode61 remove_diacritics 2'
        )
    """


def fts5_available(db: Database) -> bool:
    """Check whether the linked SQLite library was built with FTS5."""
    try:
        db.execute("CREATE VIRTUAL TABLE IF NOT EXISTS temp.fts5_probe USING fts5(x)")
        db.execute("DROP TABLE IF EXISTS temp.fts5_probe")
        return True
    except sqlite3.OperationalError:
        return False


def create_partition(db: Database, content_type: str, with_fts: bool, suffix: str = "") -> None:
    """Create the entry (and optionally FTS) tables for one content type.

    Args:
        db: Database connection.
        content_type: Registered content type.
        with_fts: Whether to create the FTS5 table as well.
        suffix: Appended to the table names (rebuild shadows). Shadow tables are
            created without secondary indexes; those are added after the swap.
    """
    table = entries_table(content_type) + suffix
    db.execute(entries_table_sql(table))
    if not suffix:
        for sql in entries_indexes_sql(table):
            db.execute(sql)
    if with_fts:
        db.execute(fts_table_sql(fts_table(content_type) + suffix))


def run_migrations(
    db: Database, content_types: Iterable[str] = DEFAULT_CONTENT_TYPES
) -> bool:
    """Run database migrations to set up or upgrade schema.

    Args:
        db: Database connection to run migrations on.
        content_types: Content types to create index partitions for.

    Returns:
        True if FTS5 tables were created (native search is possible).
    """
    try:
        result = db.fetchone("SELECT version FROM schema_version ORDER BY version DESC LIMIT 1")
        current_version = result[0] if result else 0
    except sqlite3.OperationalError:
        # Table doesn't exist yet
        current_version = 0

    db.executescript(SCHEMA_SQL)

    with_fts = fts5_available(db)
    if not with_fts:
        logger.warning("SQLite FTS5 is not available; all content types use LIKE matching")

    for content_type in content_types:
        create_partition(db, content_type, with_fts)

    if current_version < SCHEMA_VERSION:
        db.execute(
            "INSERT OR REPLACE INTO schema_version (version) VALUES (?)",
            (SCHEMA_VERSION,),
        )
    return with_fts
