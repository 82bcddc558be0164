"""Asynchronous search analytics logger."""

from __future__ import annotations

import asyncio
import csv
import io
import json
import logging
from collections import Counter, deque
from datetime import UTC, datetime, timedelta
from typing import Awaitable, Callable, Optional, Union

from quarry.analytics.store import AnalyticsStore
from quarry.config import AnalyticsConfig
from quarry.constants import (
    EXPORT_FORMATS,
    EXPORT_TIME_RANGES,
    POPULAR_QUERY_LIMIT,
    RECENT_ZERO_RESULT_LIMIT,
)
from quarry.errors import PersistenceFailure
from quarry.models import ClickEvent, SearchEvent
from quarry.schemas import AnalyticsSummary, PopularQuery, ZeroResultQuery
from quarry.search.suggestions import SuggestionEngine

logger = logging.getLogger(__name__)

QueuedRecord = Union[SearchEvent, ClickEvent]


class AnalyticsLogger:
    """Records search events off the request path.

    record() and record_click() never block: they update the in-memory
    aggregates and append to a bounded queue. When the queue is full the
    oldest queued record is dropped and counted. A worker task persists
    queued records in batches; a batch that fails to persist is retried with
    exponential backoff until it succeeds.
    """

    def __init__(
        self,
        store: AnalyticsStore,
        config: AnalyticsConfig,
        suggestions: Optional[SuggestionEngine] = None,
        clock: Optional[Callable[[], datetime]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._store = store
        self._config = config
        self._suggestions = suggestions
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sleep = sleep

        self._queue: deque[QueuedRecord] = deque()
        self._in_flight: list[QueuedRecord] = []
        self._wakeup = asyncio.Event()
        self._batch_ready = asyncio.Event()
        self._worker: Optional[asyncio.Task[None]] = None
        self._dropped = 0

        # In-memory aggregates since process start
        self._total_searches = 0
        self._avg_response_time = 0.0
        self._popular: Counter[str] = Counter()
        self._zero_results: deque[tuple[str, datetime]] = deque(
            maxlen=config.zero_result_history
        )

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    @property
    def pending_events(self) -> int:
        return len(self._queue) + len(self._in_flight)

    @property
    def dropped_events(self) -> int:
        return self._dropped

    # =========================================================================
    # Recording
    # =========================================================================

    def record(self, event: SearchEvent) -> None:
        """Record a completed search. Never blocks and never raises."""
        if not self._config.enabled:
            return

        self._total_searches += 1
        self._avg_response_time += (
            event.response_time_ms - self._avg_response_time
        ) / self._total_searches
        self._popular[event.query] += 1
        if event.results_count == 0:
            self._zero_results.append((event.query, event.created_at))
        if self._suggestions is not None:
            self._suggestions.observe(event.query)

        self._enqueue(event)

    def record_click(self, search_id: str, result_id: str, result_type: str) -> None:
        """Attach a click to an earlier search. Only the first click is kept."""
        if not self._config.enabled:
            return
        self._enqueue(ClickEvent(search_id=search_id, result_id=result_id, result_type=result_type))

    def _enqueue(self, record: QueuedRecord) -> None:
        if len(self._queue) >= self._config.queue_size:
            dropped = self._queue.popleft()
            self._dropped += 1
            logger.warning(
                f"Analytics queue full ({self._config.queue_size}); "
                f"dropped oldest {type(dropped).__name__} for search {_search_id(dropped)}"
            )
        self._queue.append(record)
        self._wakeup.set()
        if len(self._queue) >= self._config.batch_size:
            self._batch_ready.set()

    # =========================================================================
    # Worker
    # =========================================================================

    def start(self) -> None:
        """Start the persistence worker."""
        if self._worker is None and self._config.enabled:
            self._worker = asyncio.create_task(self._run(), name="search-analytics")

    async def _run(self) -> None:
        interval = self._config.flush_interval_ms / 1000
        while True:
            await self._wakeup.wait()
            if len(self._queue) < self._config.batch_size:
                try:
                    await asyncio.wait_for(self._batch_ready.wait(), interval)
                except asyncio.TimeoutError:
                    pass
            await self._persist_next_batch()
            if not self._queue:
                self._wakeup.clear()
            if len(self._queue) < self._config.batch_size:
                self._batch_ready.clear()

    async def _persist_next_batch(self) -> None:
        batch_size = self._config.batch_size
        while self._queue and len(self._in_flight) < batch_size:
            self._in_flight.append(self._queue.popleft())
        if not self._in_flight:
            return

        events = [r for r in self._in_flight if isinstance(r, SearchEvent)]
        clicks = [r for r in self._in_flight if isinstance(r, ClickEvent)]
        delay_ms = self._config.retry_base_ms
        attempt = 0
        while True:
            try:
                await asyncio.to_thread(self._store.append_batch, events, clicks)
                break
            except PersistenceFailure as e:
                attempt += 1
                logger.warning(
                    f"{e}; retrying {len(self._in_flight)} record(s) in {delay_ms}ms "
                    f"(attempt {attempt})"
                )
                await self._sleep(delay_ms / 1000)
                delay_ms = min(delay_ms * 2, self._config.retry_max_ms)
        self._in_flight.clear()

    async def flush(self, timeout: Optional[float] = None) -> None:
        """Persist everything queued so far.

        Raises:
            asyncio.TimeoutError: If the queue does not drain within timeout seconds.
        """
        if self._worker is None:
            await asyncio.wait_for(self._drain(), timeout)
            return

        async def drained() -> None:
            while self.pending_events:
                self._batch_ready.set()
                await asyncio.sleep(0.01)

        await asyncio.wait_for(drained(), timeout)

    async def _drain(self) -> None:
        while self._queue or self._in_flight:
            await self._persist_next_batch()

    async def close(self, timeout: float = 5.0) -> None:
        """Flush queued records (bounded wait) and stop the worker."""
        try:
            await self.flush(timeout)
        except asyncio.TimeoutError:
            logger.warning(
                f"Stopping analytics logger with {self.pending_events} record(s) unpersisted"
            )
        if self._worker is not None:
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)
            self._worker = None

    # =========================================================================
    # Reporting
    # =========================================================================

    def summary(self) -> AnalyticsSummary:
        """Aggregates since process start."""
        popular = sorted(self._popular.items(), key=lambda item: (-item[1], item[0]))
        recent_zero = list(self._zero_results)[-RECENT_ZERO_RESULT_LIMIT:]
        return AnalyticsSummary(
            total_searches=self._total_searches,
            avg_response_time_ms=round(self._avg_response_time, 2),
            popular_queries=[
                PopularQuery(query=query, count=count)
                for query, count in popular[:POPULAR_QUERY_LIMIT]
            ],
            zero_result_queries=[
                ZeroResultQuery(query=query, timestamp=timestamp)
                for query, timestamp in recent_zero
            ],
            pending_events=self.pending_events,
            dropped_events=self._dropped,
        )

    async def export(self, format: str = "json", time_range: str = "30d") -> str:
        """Export persisted analytics for a time window as JSON or CSV.

        Raises:
            ValueError: If format or time_range is not supported.
        """
        if format not in EXPORT_FORMATS:
            raise ValueError(f"Format must be one of {', '.join(EXPORT_FORMATS)}")
        if time_range not in EXPORT_TIME_RANGES:
            raise ValueError(f"Time range must be one of {', '.join(EXPORT_TIME_RANGES)}")

        try:
            await self.flush(timeout=self._config.flush_interval_ms / 1000 + 1)
        except asyncio.TimeoutError:
            logger.warning("Exporting analytics with records still queued")

        now = self._clock()
        days = EXPORT_TIME_RANGES[time_range]
        since = now - timedelta(days=days) if days is not None else None
        popular = await asyncio.to_thread(self._store.popular_queries, since, POPULAR_QUERY_LIMIT)

        if format == "csv":
            buffer = io.StringIO()
            writer = csv.writer(buffer, lineterminator="\n")
            writer.writerow(["Query", "Count", "Last Searched"])
            for stats in popular:
                writer.writerow([stats.query, stats.count, stats.last_searched.isoformat()])
            return buffer.getvalue()

        total, avg_response_time = await asyncio.to_thread(self._store.totals, since)
        zero_results = await asyncio.to_thread(
            self._store.zero_result_queries, since, RECENT_ZERO_RESULT_LIMIT
        )
        return json.dumps(
            {
                "timeRange": time_range,
                "exportedAt": now.isoformat(),
                "totalSearches": total,
                "avgResponseTimeMs": round(avg_response_time, 2),
                "popularQueries": [
                    {
                        "query": s.query,
                        "count": s.count,
                        "lastSearched": s.last_searched.isoformat(),
                    }
                    for s in popular
                ],
                "zeroResultQueries": [
                    {"query": s.query, "count": s.count, "lastSearched": s.last_searched.isoformat()}
                    for s in zero_results
                ],
            }
        )


def _search_id(record: QueuedRecord) -> str:
    return record.id if isinstance(record, SearchEvent) else record.search_id
