"""Matching strategies: native FTS5 and LIKE fallback.

Both strategies return the same PerTypeResult shape and apply the same
filters inside their SQL, so the scorer never needs to know which one ran.
"""

from __future__ import annotations

import re
from typing import Any

from quarry.config import SearchConfig
from quarry.constants import (
    CONTENT_TYPE_FIELDS,
    HIGHLIGHT_CLOSE,
    HIGHLIGHT_OPEN,
    SNIPPET_ELLIPSIS,
)
from quarry.db.connection import Database
from quarry.db.migrations import entries_table, fts_table
from quarry.index.normalize import format_timestamp
from quarry.models import Candidate, IndexEntry, PerTypeResult, SearchQuery
from quarry.search.highlight import make_snippet, mark_terms

# bm25 column weights for (title, body, tags)
BM25_WEIGHTS = (3.0, 2.0, 1.0)

_WORD_CHAR = re.compile(r"[^\W_]")


class SearchStrategy:
    """Base class for per-type matching strategies."""

    name = "base"

    def __init__(self, db: Database, config: SearchConfig) -> None:
        self._db = db
        self._config = config

    def execute(self, query: SearchQuery, content_type: str) -> PerTypeResult:
        """Run the query against one content type.

        Blocking; the executor calls it from a worker thread.
        """
        raise NotImplementedError

    def _filter_clauses(self, query: SearchQuery, alias: str = "e") -> tuple[str, list[Any]]:
        """SQL conditions for workspace scope, date range and author."""
        clauses: list[str] = []
        params: list[Any] = []
        if query.workspace_id is not None:
            clauses.append(f"{alias}.workspace_id = ?")
            params.append(query.workspace_id)
        date_range = query.filters.date_range
        if date_range is not None:
            if date_range.start is not None:
                clauses.append(f"{alias}.created_at >= ?")
                params.append(format_timestamp(date_range.start))
            if date_range.end is not None:
                clauses.append(f"{alias}.created_at <= ?")
                params.append(format_timestamp(date_range.end))
        if query.filters.author is not None:
            clauses.append(f"{alias}.owner_id = ?")
            params.append(query.filters.author)
        sql = "".join(f" AND {clause}" for clause in clauses)
        return sql, params


def build_match_expression(tokens: tuple[str, ...]) -> str:
    """FTS5 MATCH expression: any of the quoted terms.

    Terms without a single word character would be empty phrases and are left out.
    """
    return " OR ".join(f'"{token}"' for token in tokens if _WORD_CHAR.search(token))


class NativeStrategy(SearchStrategy):
    """Token-indexed matching through SQLite FTS5, ranked by bm25()."""

    name = "native"

    def execute(self, query: SearchQuery, content_type: str) -> PerTypeResult:
        fts = fts_table(content_type)
        entries = entries_table(content_type)
        fields = CONTENT_TYPE_FIELDS[content_type]
        context_tokens = min(self._config.highlight_tokens, 64)

        highlight_cols = ""
        if query.include_highlights:
            highlight_cols = (
                f", highlight({fts}, 0, '{HIGHLIGHT_OPEN}', '{HIGHLIGHT_CLOSE}')"
                " AS title_highlight"
                f", snippet({fts}, 1, '{HIGHLIGHT_OPEN}', '{HIGHLIGHT_CLOSE}',"
                f" '{SNIPPET_ELLIPSIS}', {context_tokens}) AS body_highlight"
            )

        filter_sql, filter_params = self._filter_clauses(query)
        weights = ", ".join(str(w) for w in BM25_WEIGHTS)
        sql = f"""
            SELECT e.*, bm25({fts}, {weights}) AS match_rank{highlight_cols}
            FROM {fts}
            JOIN {entries} e ON e.entry_id = {fts}.rowid
            WHERE {fts} MATCH ?{filter_sql}
            ORDER BY match_rank, e.item_id
            LIMIT ?
        """
        match_expression = build_match_expression(query.tokens)
        if not match_expression:
            return PerTypeResult(content_type=content_type, strategy=self.name)
        params = [match_expression, *filter_params, self._config.per_type_limit]

        candidates = []
        for row in self._db.fetchall(sql, tuple(params)):
            highlights: dict[str, str] = {}
            if query.include_highlights:
                if "title" in fields and HIGHLIGHT_OPEN in (row["title_highlight"] or ""):
                    highlights["title"] = row["title_highlight"]
                if "body" in fields and HIGHLIGHT_OPEN in (row["body_highlight"] or ""):
                    highlights["body"] = row["body_highlight"]
            candidates.append(
                Candidate(
                    entry=IndexEntry.from_row(row, content_type),
                    # bm25() is lower-is-better and negative for matches
                    signal=max(0.0, -float(row["match_rank"])),
                    highlights=highlights,
                )
            )
        return PerTypeResult(content_type=content_type, strategy=self.name, candidates=candidates)


class FallbackStrategy(SearchStrategy):
    """Substring matching with LIKE; the raw signal is the per-field hit count."""

    name = "fallback"

    @staticmethod
    def _like_pattern(term: str) -> str:
        escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    def execute(self, query: SearchQuery, content_type: str) -> PerTypeResult:
        entries = entries_table(content_type)
        fields = CONTENT_TYPE_FIELDS[content_type]

        conditions: list[str] = []
        condition_params: list[str] = []
        for field_name in fields:
            for token in query.tokens:
                conditions.append(f"e.{field_name} LIKE ? ESCAPE '\\'")
                condition_params.append(self._like_pattern(token))

        hits_sql = " + ".join(f"(CASE WHEN {c} THEN 1 ELSE 0 END)" for c in conditions)
        filter_sql, filter_params = self._filter_clauses(query)
        sql = f"""
            SELECT e.*, ({hits_sql}) AS hits
            FROM {entries} e
            WHERE ({" OR ".join(conditions)}){filter_sql}
            ORDER BY hits DESC, e.updated_at DESC, e.item_id
            LIMIT ?
        """
        params = [
            *condition_params,
            *condition_params,
            *filter_params,
            self._config.per_type_limit,
        ]

        candidates = []
        for row in self._db.fetchall(sql, tuple(params)):
            entry = IndexEntry.from_row(row, content_type)
            highlights: dict[str, str] = {}
            if query.include_highlights:
                if entry.title:
                    marked = mark_terms(entry.title, query.tokens)
                    if marked != entry.title:
                        highlights["title"] = marked
                if entry.body:
                    snippet = make_snippet(entry.body, query.tokens, self._config.snippet_max_length)
                    marked = mark_terms(snippet, query.tokens)
                    if marked != snippet:
                        highlights["body"] = marked
            candidates.append(Candidate(entry=entry, signal=float(row["hits"]), highlights=highlights))
        return PerTypeResult(content_type=content_type, strategy=self.name, candidates=candidates)
