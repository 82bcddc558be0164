"""Query sanitization and planning."""

from typing import Optional

from quarry.config import SearchConfig
from quarry.constants import (
    DEFAULT_CONTENT_TYPES,
    DISALLOWED_QUERY_CHARS,
    EMPTY_QUERY_ERROR,
    MIN_TOKEN_LENGTH,
    SORT_OPTIONS,
)
from quarry.errors import InvalidFilters, QueryTooShort
from quarry.index.normalize import as_utc
from quarry.models import DateRange, SearchFilters, SearchQuery
from quarry.schemas import SearchOptions


def sanitize_query(raw: object, max_length: int = 200) -> str:
    """Reduce a raw query to the allowed character set.

    Trims, strips characters other than word characters, whitespace, hyphen,
    dot and at-sign, truncates to max_length, and trims again.
    """
    if not isinstance(raw, str):
        return ""
    cleaned = DISALLOWED_QUERY_CHARS.sub("", raw.strip())
    return cleaned[:max_length].strip()


def tokenize(query: str) -> tuple[str, ...]:
    """Split a sanitized query into lowercase terms.

    Terms shorter than two characters are discarded; repeats are dropped.
    """
    seen: dict[str, None] = {}
    for term in query.lower().split():
        if len(term) >= MIN_TOKEN_LENGTH:
            seen.setdefault(term, None)
    return tuple(seen)


class QueryPlanner:
    """Turns a raw query plus options into an executable SearchQuery."""

    def __init__(self, config: SearchConfig, content_types: tuple[str, ...] = DEFAULT_CONTENT_TYPES):
        self._config = config
        self._content_types = content_types

    def plan(self, raw: object, options: Optional[SearchOptions] = None) -> SearchQuery:
        """Validate and normalize a search request.

        Raises:
            QueryTooShort: If the sanitized query is below min_query_length or
                has no usable terms.
            InvalidFilters: If any option is malformed.
        """
        options = options or SearchOptions()
        sanitized = sanitize_query(raw, self._config.max_query_length)
        tokens = tokenize(sanitized)
        if len(sanitized) < self._config.min_query_length or not tokens:
            raise QueryTooShort(EMPTY_QUERY_ERROR)

        return SearchQuery(
            raw=raw if isinstance(raw, str) else "",
            sanitized=sanitized,
            tokens=tokens,
            content_types=self.resolve_content_types(options.content_types),
            filters=self._resolve_filters(options),
            user_id=options.user_id,
            workspace_id=options.workspace_id,
            limit=self._resolve_limit(options.limit),
            offset=self._resolve_offset(options.offset),
            sort_by=self._resolve_sort(options.sort_by),
            include_highlights=options.include_highlights,
            session_id=options.session_id,
        )

    def resolve_content_types(self, requested: Optional[list[str]]) -> tuple[str, ...]:
        """Map requested content types onto the registry; default is all types."""
        if not requested:
            return self._content_types
        resolved: list[str] = []
        for name in requested:
            name = name.strip()
            if name not in self._content_types:
                raise InvalidFilters(f"Unknown content type: {name!r}")
            if name not in resolved:
                resolved.append(name)
        return tuple(resolved)

    def _resolve_filters(self, options: SearchOptions) -> SearchFilters:
        date_range = None
        requested = options.filters.date_range
        if requested is not None and (requested.start or requested.end):
            start = as_utc(requested.start) if requested.start else None
            end = as_utc(requested.end) if requested.end else None
            if start and end and start > end:
                raise InvalidFilters("Date range start is after its end")
            date_range = DateRange(start=start, end=end)

        author = options.filters.author
        if author is not None:
            author = author.strip()
            if not author:
                raise InvalidFilters("Author filter is empty")

        return SearchFilters(date_range=date_range, author=author)

    def _resolve_limit(self, limit: Optional[int]) -> int:
        if limit is None:
            return self._config.default_limit
        if limit < 1:
            raise InvalidFilters("Limit must be at least 1")
        return min(limit, self._config.max_limit)

    def _resolve_offset(self, offset: int) -> int:
        if offset < 0:
            raise InvalidFilters("Offset must be non-negative")
        return offset

    def _resolve_sort(self, sort_by: str) -> str:
        if sort_by not in SORT_OPTIONS:
            raise InvalidFilters(f"Sort must be one of {', '.join(SORT_OPTIONS)}")
        return sort_by
