# blogpulse - Ports (Protocol Interfaces)
# Abstract interfaces for adapters; no implementations here

from blogpulse.core.ports.db import (
    BREAKDOWN_DIMENSIONS,
    DAILY_COUNTERS,
    ENGAGEMENT_COUNTERS,
    EngagementStatRepoPort,
    PostCatalogPort,
    SessionRepoPort,
    TrafficRepoPort,
    VisitorRepoPort,
)
from blogpulse.core.ports.time import TimePort

__all__ = [
    "BREAKDOWN_DIMENSIONS",
    "DAILY_COUNTERS",
    "ENGAGEMENT_COUNTERS",
    "EngagementStatRepoPort",
    "PostCatalogPort",
    "SessionRepoPort",
    "TimePort",
    "TrafficRepoPort",
    "VisitorRepoPort",
]
