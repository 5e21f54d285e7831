"""
Engagement component - per-post counters, running means and score.
"""

from ._impl import (
    EngagementAggregator,
    InMemoryEngagementStatRepo,
    InMemoryPostCatalog,
    create_engagement_aggregator,
)
from .component import (
    COMPARISON_SORT_FIELDS,
    bucket_time_on_page,
    build_metrics,
    clamp_time_sample,
    compute_engagement_score,
    derive_avg_scroll_depth,
    engagement_rate,
    floor_scroll_threshold,
    normalize_event_type,
    run_record_event,
    running_mean,
    scroll_distribution,
    share_rate,
    sort_metrics,
    validate_event,
)
from .models import (
    EngagementConfig,
    EngagementValidationError,
    PostMetrics,
    RecordEventInput,
    RecordEventOutput,
    ScoreConfig,
    TimeBucket,
)
from .ports import (
    CacheInvalidatorPort,
    EngagementStatRepoPort,
    PostCatalogPort,
)

__all__ = [
    # Component functions
    "run_record_event",
    # Services
    "EngagementAggregator",
    "create_engagement_aggregator",
    # Pure functions
    "bucket_time_on_page",
    "build_metrics",
    "clamp_time_sample",
    "compute_engagement_score",
    "derive_avg_scroll_depth",
    "engagement_rate",
    "floor_scroll_threshold",
    "normalize_event_type",
    "running_mean",
    "scroll_distribution",
    "share_rate",
    "sort_metrics",
    "validate_event",
    "COMPARISON_SORT_FIELDS",
    # Models
    "EngagementConfig",
    "EngagementValidationError",
    "PostMetrics",
    "RecordEventInput",
    "RecordEventOutput",
    "ScoreConfig",
    "TimeBucket",
    # Ports
    "CacheInvalidatorPort",
    "EngagementStatRepoPort",
    "PostCatalogPort",
    # In-memory stores
    "InMemoryEngagementStatRepo",
    "InMemoryPostCatalog",
]
