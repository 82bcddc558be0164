"""Shared pytest fixtures for all tests.

These fixtures properly clean up resources to prevent file descriptor leaks.
"""

import gc
from datetime import UTC, datetime

import pytest

from quarry.config import Config
from quarry.constants import DEFAULT_CONTENT_TYPES
from quarry.db.connection import Database
from quarry.db.migrations import run_migrations
from quarry.index.feed import InMemoryContentStore
from quarry.index.store import IndexStore
from quarry.models import SourceItem
from quarry.search.permissions import InMemoryAuthorizer
from quarry.search.service import SearchService

# Fixed "now" shared by the clock fixture and the item factory
NOW = datetime(2026, 3, 2, 12, 0, 0, tzinfo=UTC)


@pytest.fixture(autouse=True)
def cleanup_after_test():
    """Clean up resources after each test to prevent file descriptor leaks.

    This runs automatically after every test to help garbage collect
    any lingering SQLite connections.
    """
    yield
    # Force garbage collection to release file handles
    gc.collect()


@pytest.fixture
def temp_db(tmp_path):
    """Create a temporary database that cleans up properly.

    This fixture should be used instead of creating Database instances
    directly in tests to ensure SQLite connections are released.
    """
    db_path = tmp_path / "test.db"
    db = Database(db_path)
    yield db
    # Clean up to release file handles
    db.close()
    gc.collect()


@pytest.fixture
def index_store(temp_db):
    """Index partitions for every registered content type."""
    with_fts = run_migrations(temp_db)
    return IndexStore(temp_db, DEFAULT_CONTENT_TYPES, with_fts)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def clock():
    """Clock frozen at NOW."""
    return lambda: NOW


@pytest.fixture
def config(tmp_path):
    """Default configuration rooted in a temporary data directory."""
    return Config(data_dir=tmp_path)


@pytest.fixture
def make_item():
    """Factory for source items with sensible defaults."""

    def _make(item_id: str, content_type: str = "notes", **fields) -> SourceItem:
        fields.setdefault("owner_id", "alice")
        fields.setdefault("visibility", "public")
        fields.setdefault("created_at", NOW)
        fields.setdefault("updated_at", fields["created_at"])
        return SourceItem(id=item_id, content_type=content_type, **fields)

    return _make


@pytest.fixture
def authorizer():
    """Workspace ws1 owned by alice with bob as a member; ws2 owned by carol."""
    auth = InMemoryAuthorizer()
    auth.set_owner("ws1", "alice")
    auth.add_member("ws1", "bob")
    auth.set_owner("ws2", "carol")
    return auth


@pytest.fixture
def content_store():
    return InMemoryContentStore()


@pytest.fixture
async def service(temp_db, config, authorizer, content_store, clock):
    """Started search service over a temporary database."""
    svc = SearchService(
        temp_db,
        config,
        authorizer=authorizer,
        content_store=content_store,
        clock=clock,
    )
    svc.start()
    yield svc
    await svc.close()


@pytest.fixture
def index_items(service):
    """Publish items through the change feed and wait until they are indexed."""

    async def _index(*items: SourceItem) -> None:
        for item in items:
            await service.feed.created(item)
        await service.synchronizer.flush(timeout=5)

    return _index
