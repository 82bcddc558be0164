"""Search index: normalization, storage and change-feed synchronization."""

from quarry.index.feed import ChangeFeed, ContentStore, InMemoryContentStore
from quarry.index.store import IndexStore
from quarry.index.synchronizer import IndexSynchronizer, RebuildReport

__all__ = [
    "ChangeFeed",
    "ContentStore",
    "InMemoryContentStore",
    "IndexStore",
    "IndexSynchronizer",
    "RebuildReport",
]
