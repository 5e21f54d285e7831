"""
Analytics component - beacon ingestion pipeline.
"""

from ._impl import (
    DefaultTimePort,
    InMemoryTrafficRepo,
    TrackingPipeline,
    create_tracking_pipeline,
)
from .component import (
    build_beacon,
    run_track,
    run_track_engagement,
    safe_str,
)
from .models import (
    Beacon,
    EngagementBeacon,
    IngestionConfig,
    TrackResult,
)
from .ports import (
    CacheTopicPort,
    TimePort,
    TrafficRepoPort,
)

__all__ = [
    # Component functions
    "run_track",
    "run_track_engagement",
    # Pipeline
    "TrackingPipeline",
    "create_tracking_pipeline",
    "DefaultTimePort",
    # Pure functions
    "build_beacon",
    "safe_str",
    # Models
    "Beacon",
    "EngagementBeacon",
    "IngestionConfig",
    "TrackResult",
    # Ports
    "CacheTopicPort",
    "TimePort",
    "TrafficRepoPort",
    # In-memory stores
    "InMemoryTrafficRepo",
]
