"""Search service: planner, executor, scorer, filters and analytics wired together."""

from __future__ import annotations

import asyncio
import logging
import secrets
import time
from datetime import UTC, datetime
from typing import Callable, Optional

from quarry.analytics.logger import AnalyticsLogger
from quarry.analytics.store import AnalyticsStore
from quarry.config import Config
from quarry.constants import DEFAULT_CONTENT_TYPES
from quarry.db.connection import Database
from quarry.db.migrations import run_migrations
from quarry.errors import QueryTooShort
from quarry.index.feed import ChangeFeed, ContentStore
from quarry.index.store import IndexStore
from quarry.index.synchronizer import IndexSynchronizer, RebuildReport
from quarry.models import RankedResult, SearchEvent, SearchQuery
from quarry.schemas import (
    AnalyticsSummary,
    Facets,
    IndexStatusResponse,
    PartitionStatusItem,
    SearchOptions,
    SearchResponse,
    SearchResultItem,
)
from quarry.search.executor import DualStrategyExecutor
from quarry.search.facets import FacetAggregator
from quarry.search.highlight import make_snippet, mark_terms
from quarry.search.permissions import Authorizer, PermissionFilter
from quarry.search.planner import QueryPlanner, sanitize_query
from quarry.search.scoring import RelevanceScorer, order_results
from quarry.search.strategies import SearchStrategy
from quarry.search.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)


def new_search_id(now: Optional[datetime] = None) -> str:
    """Opaque search id: creation time in ms plus a random suffix."""
    now = now or datetime.now(UTC)
    return f"search_{int(now.timestamp() * 1000)}_{secrets.token_hex(5)}"


class SearchService:
    """Entry point of the search subsystem.

    Owns every component and their background tasks. Call start() from a
    running event loop before searching with live index updates, and close()
    on shutdown to flush analytics and stop the index writers.
    """

    def __init__(
        self,
        db: Database,
        config: Config,
        authorizer: Authorizer,
        content_store: Optional[ContentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
        strategies: Optional[dict[str, SearchStrategy]] = None,
        content_types: tuple[str, ...] = DEFAULT_CONTENT_TYPES,
    ) -> None:
        """Initialize the service and its components.

        Args:
            db: Database holding the index partitions and search analytics.
            config: Service configuration.
            authorizer: Answers workspace membership questions.
            content_store: Snapshot source for index rebuilds.
            clock: Returns the current time (UTC); injectable for tests.
            strategies: Per content type strategy overrides.
            content_types: Content types to index and search.
        """
        self._db = db
        self._config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._content_types = content_types

        with_fts = run_migrations(db, content_types)
        self.store = IndexStore(db, content_types, with_fts)
        self.synchronizer = IndexSynchronizer(
            self.store, config.index, content_store=content_store, clock=self._clock
        )
        self.feed = ChangeFeed()
        self.feed.subscribe(self.synchronizer)

        self.planner = QueryPlanner(config.search, content_types)
        self.executor = DualStrategyExecutor(
            db, config.search, with_fts, content_types=content_types, strategies=strategies
        )
        self.scorer = RelevanceScorer(native_signal_weight=config.search.native_signal_weight)
        self.permissions = PermissionFilter(authorizer)
        self.facet_aggregator = FacetAggregator()

        self.suggestions = SuggestionEngine(config.suggestions)
        self.analytics_store = AnalyticsStore(db)
        self.suggestions.load(self.analytics_store.query_frequencies())
        self.analytics_logger = AnalyticsLogger(
            self.analytics_store,
            config.analytics,
            suggestions=self.suggestions,
            clock=self._clock,
        )

    @property
    def config(self) -> Config:
        return self._config

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def start(self) -> None:
        """Start the index writers and the analytics worker."""
        self.synchronizer.start()
        self.analytics_logger.start()
        logger.info(
            f"Search service started (native: {', '.join(self.executor.native_types) or 'none'}; "
            f"fallback: {', '.join(self.executor.fallback_types) or 'none'})"
        )

    async def close(self, timeout: float = 5.0) -> None:
        """Flush analytics, stop background tasks and close the database."""
        await self.analytics_logger.close(timeout)
        await self.synchronizer.close(timeout)
        self._db.close()
        logger.info("Search service stopped")

    # =========================================================================
    # Search
    # =========================================================================

    async def search(self, query: object, options: Optional[SearchOptions] = None) -> SearchResponse:
        """Run a search across content types.

        Raises:
            InvalidFilters: If the options are malformed.
            AccessDenied: If the search is scoped to a workspace the requester
                cannot access.
        """
        started = time.monotonic()
        options = options or SearchOptions()
        now = self._clock()
        search_id = new_search_id(now)

        try:
            plan = self.planner.plan(query, options)
        except QueryTooShort as e:
            return SearchResponse(
                query=sanitize_query(query, self._config.search.max_query_length),
                search_id=search_id,
                response_time_ms=_elapsed_ms(started),
                error=str(e),
            )

        await self.permissions.check_scope(plan.user_id, plan.workspace_id)

        per_type = await self.executor.execute(plan)
        ranked = order_results(self.scorer.score(per_type, plan, now), plan.sort_by)
        visible = await self.permissions.filter(ranked, plan.user_id)
        visible = visible[: self._config.search.max_results]

        total = len(visible)
        page = visible[plan.offset : plan.offset + plan.limit]
        facets = self.facet_aggregator.aggregate((r.entry for r in visible), now)
        suggestions = self.suggestions.suggest(plan.sanitized)

        response = SearchResponse(
            query=plan.sanitized,
            results=[self._to_item(r, plan) for r in page],
            total_results=total,
            has_more=plan.offset + len(page) < total,
            response_time_ms=_elapsed_ms(started),
            facets=facets,
            suggestions=suggestions,
            search_id=search_id,
        )
        failed = [r.content_type for r in per_type if r.failed]
        logger.debug(
            f"Search {search_id} {plan.sanitized!r}: {total} result(s) "
            f"in {response.response_time_ms}ms"
            + (f", failed types: {', '.join(failed)}" if failed else "")
        )

        self.analytics_logger.record(
            SearchEvent(
                id=search_id,
                query=plan.sanitized,
                user_id=plan.user_id,
                results_count=total,
                response_time_ms=response.response_time_ms,
                created_at=now,
                filters=plan.filters.as_dict(),
                content_types=list(plan.content_types),
                session_id=plan.session_id,
            )
        )
        return response

    def _to_item(self, result: RankedResult, plan: SearchQuery) -> SearchResultItem:
        entry = result.entry
        highlights = result.highlights if plan.include_highlights else {}
        snippet = highlights.get("body")
        if snippet is None:
            snippet = make_snippet(
                entry.body or entry.title, plan.tokens, self._config.search.snippet_max_length
            )
            if plan.include_highlights:
                snippet = mark_terms(snippet, plan.tokens)
        return SearchResultItem(
            id=entry.item_id,
            content_type=entry.content_type,
            title=entry.title,
            snippet=snippet,
            relevance_score=result.score,
            owner_id=entry.owner_id,
            workspace_id=entry.workspace_id,
            visibility=entry.visibility,
            highlights=dict(highlights),
            created_at=entry.created_at,
            updated_at=entry.updated_at,
        )

    # =========================================================================
    # Clicks, suggestions, facets, analytics
    # =========================================================================

    def log_click(self, search_id: str, result_id: str, result_type: str) -> None:
        """Attach a clicked result to an earlier search. Fire-and-forget."""
        self.analytics_logger.record_click(search_id, result_id, result_type)

    def suggest(self, partial: str, limit: Optional[int] = None) -> list[str]:
        return self.suggestions.suggest(
            sanitize_query(partial, self._config.search.max_query_length), limit
        )

    async def facets(self, user_id: Optional[str], workspace_id: Optional[str] = None) -> Facets:
        """Facets over every indexed item the requester can see.

        Raises:
            AccessDenied: If workspace_id is given and the requester cannot access it.
        """
        await self.permissions.check_scope(user_id, workspace_id)
        entries = []
        for content_type in self._content_types:
            entries.extend(
                await asyncio.to_thread(self.store.entries, content_type, workspace_id)
            )
        visible = await self.permissions.filter(
            (RankedResult(entry=entry, score=0.0) for entry in entries), user_id
        )
        return self.facet_aggregator.aggregate((r.entry for r in visible), self._clock())

    def analytics(self) -> AnalyticsSummary:
        return self.analytics_logger.summary()

    async def export_analytics(self, format: str = "json", time_range: str = "30d") -> str:
        return await self.analytics_logger.export(format, time_range)

    # =========================================================================
    # Index maintenance
    # =========================================================================

    async def rebuild(self, content_type: str) -> RebuildReport:
        return await self.synchronizer.rebuild(content_type)

    async def index_status(self) -> IndexStatusResponse:
        statuses = await asyncio.to_thread(self.synchronizer.status)
        return IndexStatusResponse(
            partitions=[
                PartitionStatusItem(
                    content_type=s.content_type,
                    pending=s.pending,
                    oldest_pending_ms=s.oldest_pending_ms,
                    indexed=s.indexed,
                    failures=s.failures,
                )
                for s in statuses
            ],
            within_bound=self.synchronizer.is_within_bound(statuses),
            native_types=self.executor.native_types,
            fallback_types=self.executor.fallback_types,
        )

    @property
    def content_types(self) -> tuple[str, ...]:
        return self._content_types


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
