"""Request and response schemas for the search API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys, accepting either form."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DateRangeOption(CamelModel):
    """Inclusive created_at window."""

    start: Optional[datetime] = Field(None, description="Earliest creation time")
    end: Optional[datetime] = Field(None, description="Latest creation time")


class FilterOptions(CamelModel):
    """Search filters."""

    date_range: Optional[DateRangeOption] = Field(None, description="Creation date window")
    author: Optional[str] = Field(None, description="Owner/author id")


class SearchOptions(CamelModel):
    """Options accepted by SearchService.search()."""

    user_id: Optional[str] = Field(None, description="Requesting user")
    content_types: Optional[list[str]] = Field(
        None, description="Content types to search (default: all)"
    )
    filters: FilterOptions = Field(default_factory=FilterOptions)
    limit: Optional[int] = Field(None, description="Page size (default from config)")
    offset: int = Field(0, description="Results to skip")
    sort_by: str = Field("relevance", description="relevance or date")
    workspace_id: Optional[str] = Field(None, description="Restrict to one workspace")
    include_highlights: bool = Field(True, description="Return highlighted snippets")
    session_id: Optional[str] = Field(None, description="Client session, for analytics")


class SearchResultItem(CamelModel):
    """Individual search result."""

    id: str
    content_type: str
    title: str
    snippet: str
    relevance_score: float
    owner_id: Optional[str] = None
    workspace_id: Optional[str] = None
    visibility: str
    highlights: dict[str, str] = Field(default_factory=dict)
    created_at: datetime
    updated_at: datetime


class Facets(CamelModel):
    """Counts over the permission-filtered result set."""

    content_types: dict[str, int] = Field(default_factory=dict)
    authors: dict[str, int] = Field(default_factory=dict)
    workspaces: dict[str, int] = Field(default_factory=dict)
    date_ranges: dict[str, int] = Field(default_factory=dict)


class SearchResponse(CamelModel):
    """Search response with results, facets and suggestions."""

    query: str
    results: list[SearchResultItem] = Field(default_factory=list)
    total_results: int = 0
    has_more: bool = False
    response_time_ms: int = 0
    facets: Facets = Field(default_factory=Facets)
    suggestions: list[str] = Field(default_factory=list)
    search_id: str
    error: Optional[str] = None


class SuggestionsResponse(CamelModel):
    """Autocomplete suggestions."""

    query: str
    suggestions: list[str]


class ClickRequest(CamelModel):
    """Click on a result of an earlier search."""

    search_id: str = Field(..., min_length=1)
    result_id: str = Field(..., min_length=1)
    result_type: str = Field(..., min_length=1)


class FacetsResponse(CamelModel):
    """Facets of everything visible to the requester."""

    facets: Facets
    content_types: list[str]


class PopularQuery(CamelModel):
    query: str
    count: int


class ZeroResultQuery(CamelModel):
    query: str
    timestamp: datetime


class AnalyticsSummary(CamelModel):
    """In-memory search aggregates."""

    total_searches: int
    avg_response_time_ms: float
    popular_queries: list[PopularQuery]
    zero_result_queries: list[ZeroResultQuery]
    pending_events: int
    dropped_events: int


class PartitionStatusItem(CamelModel):
    content_type: str
    pending: int
    oldest_pending_ms: int
    indexed: int
    failures: int


class IndexStatusResponse(CamelModel):
    """Synchronization state of the index."""

    partitions: list[PartitionStatusItem]
    within_bound: bool
    native_types: list[str]
    fallback_types: list[str]


class RebuildResponse(CamelModel):
    content_type: str
    indexed: int
    skipped: int
    duration_ms: int
