"""Concurrent per-type execution over native and fallback strategies."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from quarry.config import SearchConfig
from quarry.constants import DEFAULT_CONTENT_TYPES
from quarry.db.connection import Database
from quarry.errors import PartialTypeFailure
from quarry.models import PerTypeResult, SearchQuery
from quarry.search.strategies import FallbackStrategy, NativeStrategy, SearchStrategy

logger = logging.getLogger(__name__)


class DualStrategyExecutor:
    """Runs one strategy per requested content type, concurrently.

    The strategy for each type is fixed at construction: native FTS5 matching
    when it is enabled, available and not overridden for the type, LIKE
    matching otherwise. A type that raises or times out contributes an empty,
    failed PerTypeResult; the others are unaffected.
    """

    def __init__(
        self,
        db: Database,
        config: SearchConfig,
        with_fts: bool,
        content_types: tuple[str, ...] = DEFAULT_CONTENT_TYPES,
        strategies: Optional[dict[str, SearchStrategy]] = None,
    ):
        self._config = config
        native = NativeStrategy(db, config)
        fallback = FallbackStrategy(db, config)
        use_native = config.enable_fts and with_fts
        forced = config.fallback_type_set

        self._strategies: dict[str, SearchStrategy] = {}
        for content_type in content_types:
            if use_native and content_type not in forced:
                self._strategies[content_type] = native
            else:
                self._strategies[content_type] = fallback
        if strategies:
            self._strategies.update(strategies)

    def strategy_for(self, content_type: str) -> SearchStrategy:
        return self._strategies[content_type]

    @property
    def native_types(self) -> list[str]:
        return [ct for ct, s in self._strategies.items() if s.name == NativeStrategy.name]

    @property
    def fallback_types(self) -> list[str]:
        return [ct for ct, s in self._strategies.items() if s.name != NativeStrategy.name]

    async def execute(self, query: SearchQuery) -> list[PerTypeResult]:
        """Execute the query for every requested content type.

        Returns:
            One PerTypeResult per requested type, in request order.
        """
        tasks = [self._execute_type(query, ct) for ct in query.content_types]
        return list(await asyncio.gather(*tasks))

    async def _execute_type(self, query: SearchQuery, content_type: str) -> PerTypeResult:
        strategy = self._strategies[content_type]
        timeout = self._config.timeout_ms / 1000
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(strategy.execute, query, content_type), timeout
            )
        except asyncio.TimeoutError:
            failure = PartialTypeFailure(content_type, f"timed out after {timeout:g}s")
        except Exception as e:
            failure = PartialTypeFailure(content_type, f"{type(e).__name__}: {e}")
        logger.warning(f"Search on {failure} ({strategy.name} strategy); returning no results")
        return PerTypeResult(
            content_type=content_type,
            strategy=strategy.name,
            failed=True,
            error=failure.reason,
        )
