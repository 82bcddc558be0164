"""Fixed constants.

Re-exports all constants for convenient importing:
    from quarry.constants import CONTENT_TYPE_WEIGHTS, DATE_BUCKETS
"""

from quarry.constants.search import *  # noqa: F403
from quarry.constants.analytics import *  # noqa: F403
