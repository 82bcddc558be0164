"""Facet counts over a permission-filtered result set."""

from collections import Counter
from datetime import datetime
from typing import Iterable

from quarry.constants import DATE_BUCKETS, FACET_NONE
from quarry.models import IndexEntry
from quarry.schemas import Facets


def date_bucket(created_at: datetime, now: datetime) -> str:
    """Label of the DATE_BUCKETS window created_at falls into."""
    age_days = (now - created_at).total_seconds() / 86400
    for label, max_days in DATE_BUCKETS:
        if max_days is None or age_days < max_days:
            return label
    return DATE_BUCKETS[-1][0]


class FacetAggregator:
    """Counts results by content type, author, workspace and creation date.

    Every dimension sums to the number of entries aggregated; entries without
    an author or workspace are counted under FACET_NONE.
    """

    def aggregate(self, entries: Iterable[IndexEntry], now: datetime) -> Facets:
        content_types: Counter[str] = Counter()
        authors: Counter[str] = Counter()
        workspaces: Counter[str] = Counter()
        date_ranges: Counter[str] = Counter()

        for entry in entries:
            content_types[entry.content_type] += 1
            authors[entry.owner_id or FACET_NONE] += 1
            workspaces[entry.workspace_id or FACET_NONE] += 1
            date_ranges[date_bucket(entry.created_at, now)] += 1

        return Facets(
            content_types=dict(content_types),
            authors=dict(authors),
            workspaces=dict(workspaces),
            date_ranges=dict(date_ranges),
        )
