"""Snippet and highlight helpers for results without engine highlights."""

import re
from typing import Sequence

from quarry.constants import HIGHLIGHT_CLOSE, HIGHLIGHT_OPEN, SNIPPET_ELLIPSIS


def _terms_pattern(terms: Sequence[str]) -> re.Pattern[str] | None:
    terms = [t for t in terms if t]
    if not terms:
        return None
    # Longest first so overlapping terms mark the longer match
    alternatives = "|".join(re.escape(t) for t in sorted(terms, key=len, reverse=True))
    return re.compile(f"({alternatives})", re.IGNORECASE)


def mark_terms(text: str, terms: Sequence[str]) -> str:
    """Wrap every case-insensitive occurrence of the terms in highlight marks."""
    pattern = _terms_pattern(terms)
    if pattern is None or not text:
        return text
    return pattern.sub(lambda m: f"{HIGHLIGHT_OPEN}{m.group(0)}{HIGHLIGHT_CLOSE}", text)


def make_snippet(content: str, terms: Sequence[str], max_length: int = 200) -> str:
    """Create a snippet around the first query term found in content."""
    if not content:
        return ""
    pattern = _terms_pattern(terms)
    match = pattern.search(content) if pattern else None

    if match is None:
        # No term found, return start of content
        return content[:max_length] + (SNIPPET_ELLIPSIS if len(content) > max_length else "")

    # Keep a quarter of the window before the match
    lead = max_length // 4
    start = max(0, match.start() - lead)
    end = min(len(content), start + max_length)

    snippet = content[start:end]
    if start > 0:
        snippet = SNIPPET_ELLIPSIS + snippet
    if end < len(content):
        snippet = snippet + SNIPPET_ELLIPSIS
    return snippet
