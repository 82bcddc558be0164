"""Persistence of search events in the search_analytics table."""

import json
import sqlite3
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence

from quarry.db.connection import Database
from quarry.errors import PersistenceFailure
from quarry.index.normalize import format_timestamp
from quarry.models import ClickEvent, SearchEvent


@dataclass(frozen=True)
class QueryStats:
    """Aggregate over persisted events for one query."""

    query: str
    count: int
    last_searched: datetime


class AnalyticsStore:
    """Writes and reads persisted search events.

    Events are written once. A click is attached with a conditional UPDATE
    that only succeeds while no click is recorded, so replaying a batch never
    overwrites the first click.
    """

    def __init__(self, db: Database):
        self._db = db

    def append_batch(
        self, events: Sequence[SearchEvent], clicks: Sequence[ClickEvent] = ()
    ) -> None:
        """Persist events, then clicks, in one transaction.

        Safe to retry after a failure: events already written are skipped.

        Raises:
            PersistenceFailure: If the batch could not be written.
        """
        if not events and not clicks:
            return
        try:
            with self._db.transaction():
                if events:
                    self._db.executemany(
                        """
                        INSERT OR IGNORE INTO search_analytics (
                            id, query, user_id, results_count, response_time_ms,
                            filters, content_types, session_id, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [
                            (
                                e.id,
                                e.query,
                                e.user_id,
                                e.results_count,
                                e.response_time_ms,
                                json.dumps(e.filters),
                                json.dumps(e.content_types),
                                e.session_id,
                                format_timestamp(e.created_at),
                            )
                            for e in events
                        ],
                    )
                for click in clicks:
                    self._db.execute(
                        """
                        UPDATE search_analytics
                        SET clicked_result_id = ?, clicked_result_type = ?
                        WHERE id = ? AND clicked_result_id IS NULL
                        """,
                        (click.result_id, click.result_type, click.search_id),
                    )
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Failed to persist analytics batch: {e}") from e

    def get(self, search_id: str) -> Optional[SearchEvent]:
        row = self._db.fetchone("SELECT * FROM search_analytics WHERE id = ?", (search_id,))
        if row is None:
            return None
        return SearchEvent(
            id=row["id"],
            query=row["query"],
            user_id=row["user_id"],
            results_count=row["results_count"],
            response_time_ms=row["response_time_ms"],
            created_at=datetime.fromisoformat(row["created_at"]),
            filters=json.loads(row["filters"] or "{}"),
            content_types=json.loads(row["content_types"] or "[]"),
            session_id=row["session_id"],
            clicked_result_id=row["clicked_result_id"],
            clicked_result_type=row["clicked_result_type"],
        )

    def count(self) -> int:
        row = self._db.fetchone("SELECT COUNT(*) FROM search_analytics")
        return int(row[0]) if row else 0

    def query_frequencies(self) -> list[tuple[str, int]]:
        """How often each distinct query was searched, for seeding suggestions."""
        rows = self._db.fetchall(
            "SELECT query, COUNT(*) AS frequency FROM search_analytics GROUP BY query"
        )
        return [(row["query"], int(row["frequency"])) for row in rows]

    def popular_queries(self, since: Optional[datetime], limit: int) -> list[QueryStats]:
        """Most searched queries created at or after since (None = all time)."""
        where, params = self._window(since)
        rows = self._db.fetchall(
            f"""
            SELECT query, COUNT(*) AS frequency, MAX(created_at) AS last_searched
            FROM search_analytics
            {where}
            GROUP BY query
            ORDER BY frequency DESC, query
            LIMIT ?
            """,
            (*params, limit),
        )
        return [
            QueryStats(
                query=row["query"],
                count=int(row["frequency"]),
                last_searched=datetime.fromisoformat(row["last_searched"]),
            )
            for row in rows
        ]

    def totals(self, since: Optional[datetime]) -> tuple[int, float]:
        """(search count, average response time in ms) within the window."""
        where, params = self._window(since)
        row = self._db.fetchone(
            f"SELECT COUNT(*), AVG(response_time_ms) FROM search_analytics {where}",
            params,
        )
        if row is None:
            return 0, 0.0
        return int(row[0]), float(row[1] or 0.0)

    def zero_result_queries(self, since: Optional[datetime], limit: int) -> list[QueryStats]:
        """Most recent distinct queries that returned nothing."""
        where, params = self._window(since)
        where = f"{where} AND results_count = 0" if where else "WHERE results_count = 0"
        rows = self._db.fetchall(
            f"""
            SELECT query, COUNT(*) AS frequency, MAX(created_at) AS last_searched
            FROM search_analytics
            {where}
            GROUP BY query
            ORDER BY last_searched DESC, query
            LIMIT ?
            """,
            (*params, limit),
        )
        return [
            QueryStats(
                query=row["query"],
                count=int(row["frequency"]),
                last_searched=datetime.fromisoformat(row["last_searched"]),
            )
            for row in rows
        ]

    @staticmethod
    def _window(since: Optional[datetime]) -> tuple[str, tuple[str, ...]]:
        if since is None:
            return "", ()
        return "WHERE created_at >= ?", (format_timestamp(since),)
