"""FastAPI dependency injection functions."""

from functools import lru_cache

from quarry.config import Settings, load_settings
from quarry.db.connection import Database
from quarry.index.feed import InMemoryContentStore
from quarry.search.permissions import InMemoryAuthorizer
from quarry.search.service import SearchService


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings."""
    return load_settings()


# Process-wide collaborators. Embedding applications replace these with their
# own authorization and content store before the first request.
_authorizer = InMemoryAuthorizer()
_content_store = InMemoryContentStore()

_search_service: SearchService | None = None


def get_authorizer() -> InMemoryAuthorizer:
    """Get the workspace membership authorizer."""
    return _authorizer


def get_content_store() -> InMemoryContentStore:
    """Get the content store used for index rebuilds."""
    return _content_store


async def get_search_service() -> SearchService:
    """Get the search service, creating and starting it on first use.

    Async so that the service's background tasks start on the running loop.
    """
    global _search_service
    if _search_service is None:
        settings = get_settings()
        db = Database(settings.db_path)
        _search_service = SearchService(
            db,
            settings,
            authorizer=_authorizer,
            content_store=_content_store,
        )
        _search_service.start()
    return _search_service


async def shutdown_search_service() -> None:
    """Flush and close the search service, if one was created."""
    global _search_service
    if _search_service is not None:
        await _search_service.close()
        _search_service = None


def _reset_search_service() -> None:
    """Reset the search service instance (for testing only).

    Background tasks belong to the test's event loop and end with it; only
    the database connection needs closing here.
    """
    global _search_service, _authorizer, _content_store
    if _search_service is not None:
        _search_service.store.db.close()
        _search_service = None
    _authorizer = InMemoryAuthorizer()
    _content_store = InMemoryContentStore()
