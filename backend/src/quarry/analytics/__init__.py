"""Search analytics: non-blocking event logging and persistence."""

from quarry.analytics.logger import AnalyticsLogger
from quarry.analytics.store import AnalyticsStore

__all__ = ["AnalyticsLogger", "AnalyticsStore"]
