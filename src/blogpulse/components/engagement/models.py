"""
Engagement component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal

# --- Event Types ---

EventType = Literal["view", "scroll_checkpoint", "share", "cta_click", "time_on_page"]

EVENT_TYPES: frozenset[str] = frozenset(
    {"view", "scroll_checkpoint", "share", "cta_click", "time_on_page"}
)

# Names sent by the blog tracker script
EVENT_ALIASES: dict[str, str] = {
    "scroll_milestone": "scroll_checkpoint",
    "time_milestone": "time_on_page",
    "exit": "time_on_page",
    "page_view": "view",
    "cta": "cta_click",
}

SCROLL_THRESHOLDS: tuple[int, ...] = (25, 50, 75, 100)

# Breakdown labels outside the allow-lists are counted under OTHER_LABEL
OTHER_LABEL = "other"

SHARE_PLATFORMS: frozenset[str] = frozenset(
    {"twitter", "x", "facebook", "linkedin", "reddit", "whatsapp", "email", "copy_link"}
)

CTA_TARGETS: frozenset[str] = frozenset({"cta", "newsletter", "subscribe", "contact", "download", "related_post"})

# --- Bucket Types ---

TimeBucket = Literal["0-10s", "10-30s", "30-60s", "60-120s", "120-300s", "300+s"]


# --- Configuration ---


@dataclass(frozen=True)
class ScoreConfig:
    """Engagement score weights and normalizers."""

    w_engagement_rate: float = 0.4
    w_scroll_depth: float = 0.3
    w_time_on_page: float = 0.2
    w_share_rate: float = 0.1
    time_norm_seconds: float = 180.0
    share_rate_norm: float = 0.05
    scale: float = 100.0


@dataclass(frozen=True)
class EngagementConfig:
    """Aggregator configuration."""

    max_time_on_page_seconds: int = 3600
    leaderboard_size: int = 10
    score: ScoreConfig = field(default_factory=ScoreConfig)
    share_platforms: frozenset[str] = SHARE_PLATFORMS
    cta_targets: frozenset[str] = CTA_TARGETS


DEFAULT_CONFIG = EngagementConfig()


# --- Validation Error ---


@dataclass(frozen=True)
class EngagementValidationError:
    """Engagement validation error."""

    code: str
    message: str
    field_name: str | None = None


# --- Input Models ---


@dataclass(frozen=True)
class RecordEventInput:
    """One engagement event for a post."""

    post_id: str
    event_type: str
    payload: dict[str, Any] | None = None
    timestamp: datetime | None = None


# --- Output Models ---


@dataclass(frozen=True)
class RecordEventOutput:
    """Outcome of recording an engagement event."""

    applied: bool
    event_type: str | None = None
    errors: list[EngagementValidationError] = field(default_factory=list)
    success: bool = True


@dataclass(frozen=True)
class PostMetrics:
    """Counters of a post plus the metrics derived from them."""

    post_id: str
    title: str | None
    total_views: int
    unique_visitors: int
    scroll_25_percent: int
    scroll_50_percent: int
    scroll_75_percent: int
    scroll_100_percent: int
    total_shares: int
    cta_clicks: int
    time_samples: int
    avg_time_on_page: float
    avg_scroll_depth: float
    engagement_rate: float
    share_rate: float
    engagement_score: float
    first_view_at: datetime | None = None
    last_view_at: datetime | None = None
