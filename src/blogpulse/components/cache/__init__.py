"""
Cache component - short-TTL read cache with pattern invalidation.
"""

from ._impl import (
    AnalyticsCache,
    create_analytics_cache,
)
from .component import (
    TOPICS,
    CacheKeys,
    is_pattern,
    matches,
    topic_patterns,
)
from .models import (
    CacheConfig,
    CacheStats,
)

__all__ = [
    "AnalyticsCache",
    "create_analytics_cache",
    "CacheKeys",
    "TOPICS",
    "is_pattern",
    "matches",
    "topic_patterns",
    "CacheConfig",
    "CacheStats",
]
