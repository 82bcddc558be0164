"""Relevance scoring and result ordering."""

import re
from datetime import datetime
from typing import Iterable

from quarry.constants import (
    CONTENT_TYPE_WEIGHTS,
    PHRASE_BONUS,
    RECENT_MONTH_BONUS,
    RECENT_MONTH_DAYS,
    RECENT_WEEK_BONUS,
    RECENT_WEEK_DAYS,
    SORT_DATE,
    TERM_MATCH_BONUS,
    TITLE_MATCH_BONUS,
)
from quarry.models import Candidate, IndexEntry, PerTypeResult, RankedResult, SearchQuery


def normalize_signals(result: PerTypeResult) -> None:
    """Scale each candidate's raw signal into [0, 1] within its type batch.

    Dividing by the batch maximum keeps the engine's own ordering, and both
    strategies end up on the same scale.
    """
    peak = max((c.signal for c in result.candidates), default=0.0)
    for candidate in result.candidates:
        candidate.signal_normalized = candidate.signal / peak if peak > 0 else 0.0


class RelevanceScorer:
    """Heuristic relevance score shared by both strategies.

    score = (phrase bonus + term bonuses + title bonuses) * type weight
            + recency bonus
            + native_signal_weight * normalized engine signal

    More occurrences of a query term never lower a score, and with equal
    scores the more recently updated item ranks first.
    """

    def __init__(
        self,
        type_weights: dict[str, float] | None = None,
        native_signal_weight: float = 1.0,
    ) -> None:
        self._type_weights = type_weights or CONTENT_TYPE_WEIGHTS
        self._native_signal_weight = native_signal_weight

    def score(
        self, results: Iterable[PerTypeResult], query: SearchQuery, now: datetime
    ) -> list[RankedResult]:
        """Score every candidate across all type results.

        Returns:
            Ranked results in the total relevance order.
        """
        term_patterns = [
            (term, re.compile(rf"\b{re.escape(term)}\b")) for term in query.tokens
        ]
        phrase = query.sanitized.lower()

        ranked = []
        for result in results:
            normalize_signals(result)
            for candidate in result.candidates:
                ranked.append(
                    RankedResult(
                        entry=candidate.entry,
                        score=self.score_candidate(candidate, phrase, term_patterns, now),
                        highlights=candidate.highlights,
                    )
                )
        return order_results(ranked)

    def score_candidate(
        self,
        candidate: Candidate,
        phrase: str,
        term_patterns: list[tuple[str, re.Pattern[str]]],
        now: datetime,
    ) -> float:
        entry = candidate.entry
        text = searchable_text(entry)
        title = entry.title.lower()

        score = 0.0
        if phrase and phrase in text:
            score += PHRASE_BONUS
        for term, pattern in term_patterns:
            score += len(pattern.findall(text)) * TERM_MATCH_BONUS
            if term in title:
                score += TITLE_MATCH_BONUS

        score *= self._type_weights.get(entry.content_type, 1.0)
        score += recency_bonus(entry.updated_at, now)
        score += self._native_signal_weight * candidate.signal_normalized
        return round(max(score, 0.0), 6)


def searchable_text(entry: IndexEntry) -> str:
    """Lowercase concatenation of the weighted fields: title, body, tags."""
    return " ".join(part for part in (entry.title, entry.body, entry.tags) if part).lower()


def recency_bonus(updated_at: datetime, now: datetime) -> float:
    """+2 within a week, +1 within a month, nothing after."""
    age_days = (now - updated_at).total_seconds() / 86400
    if age_days < RECENT_WEEK_DAYS:
        return RECENT_WEEK_BONUS
    if age_days < RECENT_MONTH_DAYS:
        return RECENT_MONTH_BONUS
    return 0.0


def order_results(results: list[RankedResult], sort_by: str = "relevance") -> list[RankedResult]:
    """Sort results into a deterministic total order.

    relevance: score desc, updated_at desc, id asc, content type asc.
    date: updated_at desc, score desc, id asc, content type asc.
    """
    if sort_by == SORT_DATE:
        return sorted(
            results,
            key=lambda r: (
                -r.entry.updated_at.timestamp(),
                -r.score,
                r.entry.item_id,
                r.entry.content_type,
            ),
        )
    return sorted(results, key=RankedResult.sort_key)
