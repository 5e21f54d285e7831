"""
Domain entities for blogpulse analytics.

- Visitor: durable anonymous identity (client-held token)
- Session: one bounded visit, state derived lazily from timestamps
- PageViewEvent: append-only navigation log of a session
- TrafficEvent: flat per-beacon log backing the traffic views
- PostEngagementStat / DailyPostStat: per-post rolling aggregates
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum

from pydantic import BaseModel, Field


class SourceCategory(str, Enum):
    """Canonical traffic source."""

    INSTAGRAM = "instagram"
    FACEBOOK = "facebook"
    YOUTUBE = "youtube"
    GOOGLE = "google"
    DIRECT = "direct"
    OTHER = "other"


class SessionState(str, Enum):
    """Session lifecycle state (computed, never stored)."""

    NO_SESSION = "no_session"
    ACTIVE = "active"
    ENDED = "ended"


# --- Visitor ---


class Visitor(BaseModel):
    """
    Anonymous visitor.

    Invariants:
    - first_source is written once, at creation, and never overwritten
    - user_id is linked at most once (COALESCE semantics)
    """

    visitor_id: str
    first_source: SourceCategory
    referrer: str | None = None
    landing_path: str | None = None
    user_id: str | None = None
    created_at: datetime
    last_seen_at: datetime


# --- Session ---


class Session(BaseModel):
    """
    One visit: a contiguous run of page views from one visitor.

    source and landing_path are locked when the session starts.
    """

    session_id: str
    visitor_id: str
    user_id: str | None = None
    source: SourceCategory
    landing_path: str | None = None
    started_at: datetime
    last_seen_at: datetime
    ended_at: datetime | None = None
    page_count: int = 1
    user_agent: str | None = None
    ip: str | None = None


class PageViewEvent(BaseModel):
    """Immutable page view belonging to a session."""

    session_id: str
    occurred_at: datetime
    path: str
    referrer: str | None = None
    source: SourceCategory | None = None
    ip: str | None = None
    user_agent: str | None = None


class TrafficEvent(BaseModel):
    """Flat beacon record, written even when sessionization fails."""

    id: int | None = None
    occurred_at: datetime
    source: SourceCategory
    referrer: str | None = None
    path: str | None = None
    user_agent: str | None = None
    ip: str | None = None


# --- Engagement ---


class PostEngagementStat(BaseModel):
    """
    Rolling engagement counters for one blog post.

    Counters only grow (except on an administrative reset). Derived metrics
    (avg scroll depth, engagement rate, score) are computed on read.
    """

    post_id: str
    total_views: int = 0
    unique_visitors: int = 0
    scroll_25_percent: int = 0
    scroll_50_percent: int = 0
    scroll_75_percent: int = 0
    scroll_100_percent: int = 0
    total_shares: int = 0
    cta_clicks: int = 0
    time_samples: int = 0
    avg_time_on_page: float = 0.0
    first_view_at: datetime | None = None
    last_view_at: datetime | None = None
    breakdowns: dict[str, dict[str, int]] = Field(default_factory=dict)


class DailyPostStat(BaseModel):
    """Per-day counters for the post timeline."""

    post_id: str
    stat_date: date
    views: int = 0
    unique_visitors: int = 0
    completions: int = 0
    shares: int = 0
