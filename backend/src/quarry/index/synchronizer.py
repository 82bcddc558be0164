"""Index synchronizer: the only writer to the search index."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import sqlite3
import threading
import time
from collections import Counter, deque
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Callable, Optional

from quarry.config import IndexConfig
from quarry.errors import IndexSyncFailure
from quarry.index.feed import ContentStore
from quarry.index.normalize import normalize_item
from quarry.index.store import IndexStore
from quarry.models import ChangeEvent, ChangeKind, ItemState, SourceItem

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RebuildReport:
    """Outcome of a full partition rebuild."""

    content_type: str
    indexed: int
    skipped: int
    duration_ms: int


@dataclass(frozen=True)
class PartitionStatus:
    """Synchronization state of one content type."""

    content_type: str
    pending: int
    oldest_pending_ms: int
    indexed: int
    failures: int


class IndexSynchronizer:
    """Consumes change events and keeps the index partitions in sync.

    Events are queued per content type and drained by one worker task per
    type, so writes are serialized within a type and run in parallel across
    types. A queue holds at most max_pending_events; producers wait once it is
    full, which is what bounds how stale the index can get.
    """

    def __init__(
        self,
        store: IndexStore,
        config: IndexConfig,
        content_store: Optional[ContentStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        """Initialize synchronizer.

        Args:
            store: Index partitions to write to.
            config: Queue bound, staleness bound and rebuild batch size.
            content_store: Source of full snapshots for rebuild().
            clock: Returns the current time; used for items lacking timestamps.
        """
        self._store = store
        self._config = config
        self._content_store = content_store
        self._clock = clock or (lambda: datetime.now(UTC))
        self._queues: dict[str, asyncio.Queue[ChangeEvent]] = {
            content_type: asyncio.Queue(maxsize=config.max_pending_events)
            for content_type in store.content_types
        }
        # Enqueue times (monotonic seconds) of queued events, oldest first
        self._enqueued: dict[str, deque[float]] = {ct: deque() for ct in store.content_types}
        # Per-type writer locks; rebuild() and apply() for a type never overlap
        self._type_locks = {ct: threading.Lock() for ct in store.content_types}
        self._pending_updates: Counter[tuple[str, str]] = Counter()
        self._pending_lock = threading.Lock()
        self._failures: Counter[str] = Counter()
        self._workers: list[asyncio.Task[None]] = []

    # =========================================================================
    # Applying events
    # =========================================================================

    def apply(self, event: ChangeEvent) -> bool:
        """Apply one change event to the index.

        Idempotent: applying the same event again leaves the index unchanged.
        Normalization failures are logged and leave the item absent; they never
        propagate.

        Returns:
            True if the index changed.
        """
        content_type = event.content_type
        if content_type not in self._type_locks:
            logger.warning(f"Ignoring change event for unknown content type {content_type!r}")
            return False

        item = event.item
        with self._type_locks[content_type]:
            try:
                if event.kind is ChangeKind.DELETE or item.deleted_at is not None:
                    return self._store.delete(content_type, item.id)
                return self._apply_upsert(item)
            except IndexSyncFailure as e:
                self._record_failure(content_type)
                logger.warning(f"Skipping unindexable item {e}")
                self._store.delete(content_type, str(item.id))
                return False
            except sqlite3.Error as e:
                self._record_failure(content_type)
                logger.warning(f"Index write failed for {content_type}/{item.id}: {e}")
                return False

    def _apply_upsert(self, item: SourceItem) -> bool:
        entry = normalize_item(item, now=self._clock())
        existing = self._store.get(entry.content_type, entry.item_id)
        if existing is not None:
            if item.created_at is None and item.updated_at is None:
                # Items without timestamps keep the ones they were first indexed with
                entry = dataclasses.replace(
                    entry, created_at=existing.created_at, updated_at=existing.updated_at
                )
            if entry.updated_at < existing.updated_at:
                logger.debug(
                    f"Ignoring out-of-order event for {entry.content_type}/{entry.item_id}"
                )
                return False
            if entry == existing:
                return False
        self._store.upsert(entry)
        return True

    # =========================================================================
    # Change feed subscription
    # =========================================================================

    async def submit(self, event: ChangeEvent) -> None:
        """Queue an event for the content type's writer.

        Waits while that type already has max_pending_events queued.
        """
        queue = self._queues.get(event.content_type)
        if queue is None:
            logger.warning(f"Dropping change event for unknown content type {event.content_type!r}")
            return
        await queue.put(event)
        # No await between put() and here, so the writer cannot dequeue first
        self._enqueued[event.content_type].append(time.monotonic())
        if event.kind is ChangeKind.UPDATE:
            with self._pending_lock:
                self._pending_updates[(event.content_type, event.item.id)] += 1

    async def on_item_created(self, content_type: str, item: SourceItem) -> None:
        await self.submit(ChangeEvent(ChangeKind.CREATE, _with_type(item, content_type)))

    async def on_item_updated(self, content_type: str, item: SourceItem) -> None:
        await self.submit(ChangeEvent(ChangeKind.UPDATE, _with_type(item, content_type)))

    async def on_item_deleted(self, content_type: str, item: SourceItem) -> None:
        await self.submit(ChangeEvent(ChangeKind.DELETE, _with_type(item, content_type)))

    # =========================================================================
    # Workers
    # =========================================================================

    def start(self) -> None:
        """Start one writer task per content type."""
        if self._workers:
            return
        for content_type in self._queues:
            self._workers.append(
                asyncio.create_task(self._run(content_type), name=f"index-sync-{content_type}")
            )

    async def _run(self, content_type: str) -> None:
        queue = self._queues[content_type]
        while True:
            event = await queue.get()
            try:
                await asyncio.to_thread(self.apply, event)
            except Exception as e:
                # Keep the writer alive whatever one event does
                logger.warning(f"Unexpected error applying {event.kind.value} event: {e}")
            finally:
                if self._enqueued[content_type]:
                    self._enqueued[content_type].popleft()
                if event.kind is ChangeKind.UPDATE:
                    self._release_pending(content_type, event.item.id)
                queue.task_done()

    def _record_failure(self, content_type: str) -> None:
        with self._pending_lock:
            self._failures[content_type] += 1

    def _release_pending(self, content_type: str, item_id: str) -> None:
        key = (content_type, item_id)
        with self._pending_lock:
            self._pending_updates[key] -= 1
            if self._pending_updates[key] <= 0:
                del self._pending_updates[key]

    async def flush(self, timeout: Optional[float] = None) -> None:
        """Wait until every queued event has been applied.

        Raises:
            asyncio.TimeoutError: If the queues do not drain within timeout seconds.
        """
        await asyncio.wait_for(
            asyncio.gather(*(queue.join() for queue in self._queues.values())),
            timeout,
        )

    async def close(self, timeout: float = 5.0) -> None:
        """Drain queued events (bounded wait) and stop the writers."""
        if not self._workers:
            return
        try:
            await self.flush(timeout)
        except asyncio.TimeoutError:
            pending = sum(q.qsize() for q in self._queues.values())
            logger.warning(f"Stopping index writers with {pending} event(s) still queued")
        for task in self._workers:
            task.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers.clear()

    # =========================================================================
    # State and staleness
    # =========================================================================

    def state(self, content_type: str, item_id: str) -> ItemState:
        """Index state of one item."""
        if self._store.get(content_type, item_id) is None:
            return ItemState.ABSENT
        with self._pending_lock:
            pending = self._pending_updates.get((content_type, item_id), 0)
        return ItemState.STALE if pending > 0 else ItemState.INDEXED

    def status(self) -> list[PartitionStatus]:
        """Pending work and failure counts per content type."""
        now = time.monotonic()
        result = []
        for content_type, queue in self._queues.items():
            enqueued = self._enqueued[content_type]
            oldest_ms = int((now - enqueued[0]) * 1000) if enqueued else 0
            with self._pending_lock:
                failures = self._failures[content_type]
            result.append(
                PartitionStatus(
                    content_type=content_type,
                    pending=queue.qsize(),
                    oldest_pending_ms=oldest_ms,
                    indexed=self._store.count(content_type),
                    failures=failures,
                )
            )
        return result

    def is_within_bound(self, statuses: Optional[list[PartitionStatus]] = None) -> bool:
        """Whether no partition's oldest queued event is older than max_lag_ms.

        Queue length needs no check here: submit() never lets a queue grow past
        max_pending_events.
        """
        if statuses is None:
            statuses = self.status()
        return all(s.oldest_pending_ms <= self._config.max_lag_ms for s in statuses)

    # =========================================================================
    # Rebuild
    # =========================================================================

    async def rebuild(self, content_type: str) -> RebuildReport:
        """Resynchronize one partition from the content store.

        Entries are copied into shadow tables and swapped in at the end, so
        searches keep reading the old partition until the swap.

        Raises:
            KeyError: If the content type is not registered.
            RuntimeError: If no content store was configured.
        """
        if content_type not in self._type_locks:
            raise KeyError(f"Unknown content type: {content_type}")
        if self._content_store is None:
            raise RuntimeError("Rebuild requires a content store")
        return await asyncio.to_thread(self._rebuild_sync, content_type)

    def _rebuild_sync(self, content_type: str) -> RebuildReport:
        assert self._content_store is not None
        started = time.monotonic()
        indexed = 0
        skipped = 0
        batch_size = self._config.rebuild_batch_size

        with self._type_locks[content_type]:
            self._store.create_shadow(content_type)
            try:
                batch = []
                for item in self._content_store.iter_items(content_type):
                    if item.deleted_at is not None:
                        continue
                    try:
                        batch.append(normalize_item(item, now=self._clock()))
                    except IndexSyncFailure as e:
                        skipped += 1
                        self._record_failure(content_type)
                        logger.warning(f"Skipping unindexable item during rebuild {e}")
                        continue
                    if len(batch) >= batch_size:
                        self._store.write_shadow(batch)
                        indexed += len(batch)
                        batch = []
                self._store.write_shadow(batch)
                indexed += len(batch)
                self._store.swap_shadow(content_type)
            except Exception as e:
                logger.error(f"Rebuild of {content_type} failed, keeping current index: {e}")
                try:
                    self._store.drop_shadow(content_type)
                except sqlite3.Error as drop_error:
                    logger.error(f"Failed to drop shadow tables: {drop_error}")
                raise

        duration_ms = int((time.monotonic() - started) * 1000)
        logger.info(
            f"Rebuilt {content_type} index: {indexed} indexed, {skipped} skipped "
            f"in {duration_ms}ms"
        )
        return RebuildReport(
            content_type=content_type,
            indexed=indexed,
            skipped=skipped,
            duration_ms=duration_ms,
        )


def _with_type(item: SourceItem, content_type: str) -> SourceItem:
    if item.content_type == content_type:
        return item
    return dataclasses.replace(item, content_type=content_type)
