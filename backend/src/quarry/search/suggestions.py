"""Autocomplete from past query frequency."""

import threading
from collections import Counter
from typing import Iterable, Optional

from quarry.config import SuggestionsConfig


class SuggestionEngine:
    """Suggests previously searched queries matching a partial query.

    Matches are case-insensitive prefix-or-contains, ordered by frequency
    (highest first), then by length (shortest first), then alphabetically.
    """

    def __init__(self, config: SuggestionsConfig):
        self._config = config
        self._frequencies: Counter[str] = Counter()
        self._lock = threading.Lock()

    def load(self, frequencies: Iterable[tuple[str, int]]) -> None:
        """Seed the table from persisted history."""
        with self._lock:
            for query, count in frequencies:
                if query:
                    self._frequencies[query] += count

    def observe(self, query: str) -> None:
        """Count one more occurrence of a recorded query."""
        if not query:
            return
        with self._lock:
            self._frequencies[query] += 1

    def frequency(self, query: str) -> int:
        with self._lock:
            return self._frequencies[query]

    def suggest(self, partial: str, limit: Optional[int] = None) -> list[str]:
        if not self._config.enabled:
            return []
        needle = (partial or "").strip().lower()
        if len(needle) < self._config.min_partial_length:
            return []

        limit = self._config.max_suggestions if limit is None else limit
        limit = max(0, min(limit, self._config.max_suggestions))

        with self._lock:
            matches = [
                (query, count)
                for query, count in self._frequencies.items()
                if needle in query.lower()
            ]
        matches.sort(key=lambda m: (-m[1], len(m[0]), m[0]))
        return [query for query, _ in matches[:limit]]
