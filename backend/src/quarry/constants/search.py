"""Search registry and fixed constants.

These values define the shape of the index and the scoring contract. Unlike
the tunables in quarry.config they are not expected to change per deployment.
"""

import re

# =============================================================================
# Content Type Registry
# =============================================================================
# Each searchable content type maps its source fields onto the three indexed
# columns (title, body, tags) and carries a relevance weight. Titles rank
# highest, then bodies, then tags.

CONTENT_TYPE_WEIGHTS = {
    "notes": 1.0,
    "workspaces": 0.9,
    "files": 0.8,
    "users": 0.7,
    "chat": 0.6,
}

# Indexed columns per content type, in scoring order. Types without a title
# (chat messages) or tags are simply missing those columns.
CONTENT_TYPE_FIELDS = {
    "notes": ("title", "body", "tags"),
    "workspaces": ("title", "body"),
    "files": ("title", "body"),
    "users": ("title", "body"),
    "chat": ("body",),
}

DEFAULT_CONTENT_TYPES = tuple(CONTENT_TYPE_WEIGHTS)

# =============================================================================
# Query Sanitization
# =============================================================================
# Anything outside word characters, whitespace, hyphen, dot and at-sign is
# stripped before planning. Tokens shorter than MIN_TOKEN_LENGTH are dropped.

DISALLOWED_QUERY_CHARS = re.compile(r"[^\w\s\-.@]")
MIN_TOKEN_LENGTH = 2

EMPTY_QUERY_ERROR = "Query too short or empty"

# =============================================================================
# Scoring
# =============================================================================

PHRASE_BONUS = 10.0
TERM_MATCH_BONUS = 2.0
TITLE_MATCH_BONUS = 5.0
RECENT_WEEK_BONUS = 2.0
RECENT_MONTH_BONUS = 1.0
RECENT_WEEK_DAYS = 7
RECENT_MONTH_DAYS = 30

SORT_RELEVANCE = "relevance"
SORT_DATE = "date"
SORT_OPTIONS = (SORT_RELEVANCE, SORT_DATE)

# =============================================================================
# Highlighting
# =============================================================================

HIGHLIGHT_OPEN = "<mark>"
HIGHLIGHT_CLOSE = "</mark>"
SNIPPET_ELLIPSIS = "..."

# =============================================================================
# Facets
# =============================================================================
# Date buckets are computed from created_at. Each bucket is (label, max age in
# days); the last bucket catches everything older.

DATE_BUCKETS = (
    ("Last 7 days", 7),
    ("Last 30 days", 30),
    ("Last 3 months", 90),
    ("Older", None),
)

# Facet key for results with no author or workspace, so every dimension sums
# to the filtered result count.
FACET_NONE = "none"

# =============================================================================
# Visibility
# =============================================================================

VISIBILITY_PUBLIC = "public"
VISIBILITY_PRIVATE = "private"
VISIBILITY_WORKSPACE = "workspace"
VISIBILITY_OPTIONS = (VISIBILITY_PUBLIC, VISIBILITY_PRIVATE, VISIBILITY_WORKSPACE)
