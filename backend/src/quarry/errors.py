"""Search error taxonomy.

Input errors (QueryTooShort, InvalidFilters) and AccessDenied reach the
caller. The remaining errors are contained by the component that produced
them and only ever show up in logs.
"""


class SearchError(Exception):
    """Base class for search subsystem errors."""

    pass


class QueryTooShort(SearchError):
    """Sanitized query is empty or shorter than the configured minimum."""

    pass


class InvalidFilters(SearchError):
    """A filter, pagination or content-type option is malformed."""

    pass


class AccessDenied(SearchError):
    """Requester cannot access the workspace a search was scoped to."""

    pass


class PartialTypeFailure(SearchError):
    """One content type's execution failed or timed out."""

    def __init__(self, content_type: str, reason: str):
        super().__init__(f"{content_type}: {reason}")
        self.content_type = content_type
        self.reason = reason


class IndexSyncFailure(SearchError):
    """A single item could not be normalized or written to the index."""

    def __init__(self, content_type: str, item_id: str, reason: str):
        super().__init__(f"{content_type}/{item_id}: {reason}")
        self.content_type = content_type
        self.item_id = item_id
        self.reason = reason


class PersistenceFailure(SearchError):
    """An analytics batch could not be persisted."""

    pass
