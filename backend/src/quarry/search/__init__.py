"""Search pipeline: planning, execution, scoring, filtering and suggestions.

The SearchService facade lives in quarry.search.service.
"""

from quarry.search.executor import DualStrategyExecutor
from quarry.search.facets import FacetAggregator
from quarry.search.permissions import Authorizer, InMemoryAuthorizer, PermissionFilter
from quarry.search.planner import QueryPlanner, sanitize_query, tokenize
from quarry.search.scoring import RelevanceScorer, order_results
from quarry.search.suggestions import SuggestionEngine

__all__ = [
    "Authorizer",
    "DualStrategyExecutor",
    "FacetAggregator",
    "InMemoryAuthorizer",
    "PermissionFilter",
    "QueryPlanner",
    "RelevanceScorer",
    "SuggestionEngine",
    "order_results",
    "sanitize_query",
    "tokenize",
]
