"""
Storage port interfaces for the analytics pipeline.

The pipeline treats persistence as a row store with three primitives:
upsert-by-unique-key, atomic increment, and range scan with filters.
Implementations: SQLite (adapters.sqlite_db), in-memory (component fakes).
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Protocol

from blogpulse.core.entities import (
    DailyPostStat,
    PageViewEvent,
    PostEngagementStat,
    Session,
    TrafficEvent,
    Visitor,
)

# Column whitelists for atomic increments. Adapters must reject anything else.
ENGAGEMENT_COUNTERS: frozenset[str] = frozenset(
    {
        "total_views",
        "unique_visitors",
        "scroll_25_percent",
        "scroll_50_percent",
        "scroll_75_percent",
        "scroll_100_percent",
        "total_shares",
        "cta_clicks",
    }
)

DAILY_COUNTERS: frozenset[str] = frozenset({"views", "unique_visitors", "completions", "shares"})

BREAKDOWN_DIMENSIONS: frozenset[str] = frozenset({"share", "cta", "source", "time"})


# -----------------------------------------------------------------------------
# Visitors
# -----------------------------------------------------------------------------


class VisitorRepoPort(Protocol):
    """
    Visitor rows keyed by the client token.

    insert_or_get is the only operation that needs a transactional guarantee:
    concurrent callers with the same visitor_id must end up with one row.
    """

    def get(self, visitor_id: str) -> Visitor | None:
        ...

    def insert_or_get(self, visitor: Visitor) -> tuple[Visitor, bool]:
        """Insert unless the id exists. Returns (stored row, inserted)."""
        ...

    def touch(self, visitor_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        """Bump last_seen_at and link user_id if still empty."""
        ...

    def count(self) -> int:
        ...


# -----------------------------------------------------------------------------
# Sessions
# -----------------------------------------------------------------------------


class SessionRepoPort(Protocol):
    """Sessions and their ordered page view log."""

    def get(self, session_id: str) -> Session | None:
        ...

    def latest_for_visitor(self, visitor_id: str) -> Session | None:
        """Most recently started session of a visitor."""
        ...

    def create(self, session: Session) -> Session:
        ...

    def touch(self, session_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        """Atomically page_count += 1 and last_seen_at = seen_at."""
        ...

    def end(self, session_id: str, ended_at: datetime) -> None:
        """Set ended_at unless already set."""
        ...

    def list_sessions(
        self,
        source: str | None = None,
        user_id: str | None = None,
        visitor_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Session]:
        """Newest first."""
        ...

    def append_event(self, event: PageViewEvent) -> None:
        ...

    def list_events(self, session_id: str) -> list[PageViewEvent]:
        """Events in arrival order."""
        ...

    def count_events(self, session_id: str) -> int:
        ...

    def count_started_since(self, since: datetime) -> int:
        ...

    def count_active(self, now: datetime, timeout: timedelta) -> int:
        ...

    def count_started_by_day(self, since: datetime) -> dict[date, dict[str, int]]:
        """Sessions started since `since`, by UTC start day and source."""
        ...


# -----------------------------------------------------------------------------
# Traffic log
# -----------------------------------------------------------------------------


class TrafficRepoPort(Protocol):
    """Flat per-beacon traffic log."""

    def append(self, event: TrafficEvent) -> None:
        ...

    def count_by_source(self, since: datetime) -> dict[str, int]:
        ...

    def top_referrers(
        self,
        since: datetime,
        source: str = "other",
        limit: int = 5,
    ) -> list[tuple[str | None, int]]:
        """(raw referrer or None for empty, count), most frequent first."""
        ...

    def list_events(
        self,
        since: datetime,
        source: str | None = None,
        ref: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TrafficEvent]:
        """Newest first; ref is a case-insensitive substring filter."""
        ...


# -----------------------------------------------------------------------------
# Engagement
# -----------------------------------------------------------------------------


class EngagementStatRepoPort(Protocol):
    """
    Per-post engagement counters.

    Every mutation is an in-place increment in the store; callers never
    read-modify-write counters.
    """

    def increment(
        self,
        post_id: str,
        counters: dict[str, int],
        seen_at: datetime | None = None,
    ) -> None:
        """Add to counters (row created on first use). seen_at updates view timestamps."""
        ...

    def add_time_sample(self, post_id: str, seconds: float) -> None:
        """Fold one sample into avg_time_on_page (incremental mean)."""
        ...

    def increment_breakdown(self, post_id: str, dimension: str, key: str, amount: int = 1) -> None:
        ...

    def increment_daily(self, post_id: str, stat_date: date, counters: dict[str, int]) -> None:
        ...

    def get(self, post_id: str) -> PostEngagementStat | None:
        ...

    def list_stats(self) -> list[PostEngagementStat]:
        ...

    def list_daily(self, post_id: str, since: date) -> list[DailyPostStat]:
        ...

    def reset(self, post_id: str) -> None:
        """Zero every counter, breakdown and daily row of a post."""
        ...


class PostCatalogPort(Protocol):
    """Read-only view of the CMS post table."""

    def exists(self, post_id: str) -> bool:
        ...

    def get_title(self, post_id: str) -> str | None:
        ...

    def list_posts(self) -> list[tuple[str, str | None]]:
        """(post_id, title) of every live post, ordered by id."""
        ...
