"""Domain types shared by the index, the search pipeline and analytics."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

from quarry.constants import SORT_RELEVANCE, VISIBILITY_PRIVATE


class ChangeKind(str, Enum):
    """Kind of content change emitted by the change feed."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class ItemState(str, Enum):
    """Index state of a single source item."""

    ABSENT = "absent"
    INDEXED = "indexed"
    STALE = "stale"  # indexed, with an update still queued


@dataclass(frozen=True)
class SourceItem:
    """A content item as owned by an external content store.

    (id, content_type) is the item's identity for its whole lifetime.
    """

    id: str
    content_type: str
    owner_id: Optional[str] = None
    workspace_id: Optional[str] = None
    title: str = ""
    body: str = ""
    tags: str | Sequence[str] = ()
    visibility: str = VISIBILITY_PRIVATE
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    deleted_at: Optional[datetime] = None


@dataclass(frozen=True)
class ChangeEvent:
    """A create/update/delete notification for one source item."""

    kind: ChangeKind
    item: SourceItem

    @property
    def content_type(self) -> str:
        return self.item.content_type


@dataclass(frozen=True)
class IndexEntry:
    """Normalized, searchable copy of a source item."""

    item_id: str
    content_type: str
    owner_id: Optional[str]
    workspace_id: Optional[str]
    title: str
    body: str
    tags: str
    tokens: str
    visibility: str
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_row(cls, row: Any, content_type: str) -> IndexEntry:
        """Create entry from an entries_<type> database row."""
        return cls(
            item_id=row["item_id"],
            content_type=content_type,
            owner_id=row["owner_id"],
            workspace_id=row["workspace_id"],
            title=row["title"],
            body=row["body"],
            tags=row["tags"],
            tokens=row["tokens"],
            visibility=row["visibility"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )


@dataclass(frozen=True)
class DateRange:
    """Inclusive created_at window."""

    start: Optional[datetime] = None
    end: Optional[datetime] = None


@dataclass(frozen=True)
class SearchFilters:
    """Filters applied inside every strategy's query."""

    date_range: Optional[DateRange] = None
    author: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        """JSON-friendly form used for analytics."""
        result: dict[str, Any] = {}
        if self.date_range is not None:
            result["dateRange"] = {
                "start": self.date_range.start.isoformat() if self.date_range.start else None,
                "end": self.date_range.end.isoformat() if self.date_range.end else None,
            }
        if self.author is not None:
            result["author"] = self.author
        return result


@dataclass(frozen=True)
class SearchQuery:
    """Executable plan produced by the query planner."""

    raw: str
    sanitized: str
    tokens: tuple[str, ...]
    content_types: tuple[str, ...]
    filters: SearchFilters = field(default_factory=SearchFilters)
    user_id: Optional[str] = None
    workspace_id: Optional[str] = None
    limit: int = 20
    offset: int = 0
    sort_by: str = SORT_RELEVANCE
    include_highlights: bool = True
    session_id: Optional[str] = None


@dataclass
class Candidate:
    """One strategy hit before scoring.

    signal is the strategy's raw rank value (higher is better);
    signal_normalized is signal scaled into [0, 1] within its type batch.
    """

    entry: IndexEntry
    signal: float = 0.0
    signal_normalized: float = 0.0
    highlights: dict[str, str] = field(default_factory=dict)


@dataclass
class PerTypeResult:
    """Output of one content type's execution, whatever the strategy."""

    content_type: str
    strategy: str
    candidates: list[Candidate] = field(default_factory=list)
    failed: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class RankedResult:
    """A scored candidate."""

    entry: IndexEntry
    score: float
    highlights: dict[str, str] = field(default_factory=dict)

    @property
    def content_type(self) -> str:
        return self.entry.content_type

    def sort_key(self) -> tuple[float, float, str, str]:
        """Total order: score desc, updated_at desc, id asc, content type asc."""
        return (
            -self.score,
            -self.entry.updated_at.timestamp(),
            self.entry.item_id,
            self.entry.content_type,
        )


@dataclass
class SearchEvent:
    """Analytics record of one completed search.

    Written once; the only later change is attaching a single click.
    """

    id: str
    query: str
    user_id: Optional[str]
    results_count: int
    response_time_ms: int
    created_at: datetime
    filters: dict[str, Any] = field(default_factory=dict)
    content_types: list[str] = field(default_factory=list)
    session_id: Optional[str] = None
    clicked_result_id: Optional[str] = None
    clicked_result_type: Optional[str] = None


@dataclass(frozen=True)
class ClickEvent:
    """A click attached to an earlier search."""

    search_id: str
    result_id: str
    result_type: str
