"""Content change feed and content store collaborators."""

from __future__ import annotations

from typing import Iterable, Protocol

from quarry.models import ChangeEvent, ChangeKind, SourceItem


class ContentStore(Protocol):
    """Read-only snapshot access to the owning content store.

    Used by full index rebuilds.
    """

    def iter_items(self, content_type: str) -> Iterable[SourceItem]: ...


class ChangeSubscriber(Protocol):
    """Receives typed change notifications."""

    async def on_item_created(self, content_type: str, item: SourceItem) -> None: ...

    async def on_item_updated(self, content_type: str, item: SourceItem) -> None: ...

    async def on_item_deleted(self, content_type: str, item: SourceItem) -> None: ...


class InMemoryContentStore:
    """Dict-backed content store, used for tests and embedded deployments."""

    def __init__(self, items: Iterable[SourceItem] = ()) -> None:
        self._items: dict[tuple[str, str], SourceItem] = {}
        for item in items:
            self.put(item)

    def put(self, item: SourceItem) -> None:
        self._items[(item.content_type, item.id)] = item

    def remove(self, content_type: str, item_id: str) -> None:
        self._items.pop((content_type, item_id), None)

    def iter_items(self, content_type: str) -> Iterable[SourceItem]:
        return [
            item
            for (ctype, _), item in sorted(self._items.items())
            if ctype == content_type
        ]


class ChangeFeed:
    """In-process publisher of content changes.

    The owning services publish here; the index synchronizer subscribes.
    """

    def __init__(self) -> None:
        self._subscribers: list[ChangeSubscriber] = []

    def subscribe(self, subscriber: ChangeSubscriber) -> None:
        self._subscribers.append(subscriber)

    def unsubscribe(self, subscriber: ChangeSubscriber) -> None:
        if subscriber in self._subscribers:
            self._subscribers.remove(subscriber)

    async def publish(self, event: ChangeEvent) -> None:
        """Deliver an event to every subscriber in subscription order."""
        for subscriber in list(self._subscribers):
            if event.kind is ChangeKind.CREATE:
                await subscriber.on_item_created(event.content_type, event.item)
            elif event.kind is ChangeKind.UPDATE:
                await subscriber.on_item_updated(event.content_type, event.item)
            else:
                await subscriber.on_item_deleted(event.content_type, event.item)

    async def created(self, item: SourceItem) -> None:
        await self.publish(ChangeEvent(ChangeKind.CREATE, item))

    async def updated(self, item: SourceItem) -> None:
        await self.publish(ChangeEvent(ChangeKind.UPDATE, item))

    async def deleted(self, item: SourceItem) -> None:
        await self.publish(ChangeEvent(ChangeKind.DELETE, item))
