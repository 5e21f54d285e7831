"""
EngagementAggregator - folds engagement events into per-post counters.

Key behaviors:
- Counters are incremented in the store, never read-modify-written
- A unique visitor is counted once per post within the visitor TTL
- A scroll threshold is counted once per (post, view, threshold)
- Time-on-page samples are clamped and folded into a running mean
- Share platforms and CTA targets come from allow-lists; others count as "other"
- Unknown posts, unknown event types and malformed payloads are no-ops
- Every applied write invalidates the blog and dashboard cache views
"""

from __future__ import annotations

import logging
import threading
from copy import deepcopy
from datetime import UTC, date, datetime, timedelta
from typing import Any

from blogpulse.core.entities import DailyPostStat, PostEngagementStat, SourceCategory
from blogpulse.core.ports.db import BREAKDOWN_DIMENSIONS, DAILY_COUNTERS, ENGAGEMENT_COUNTERS
from blogpulse.core.services.analytics_dedupe import DedupeService

from .component import (
    bucket_time_on_page,
    build_metrics,
    clamp_time_sample,
    floor_scroll_threshold,
    normalize_event_type,
    running_mean,
    sort_metrics,
)
from .models import DEFAULT_CONFIG, OTHER_LABEL, EngagementConfig, PostMetrics
from .ports import CacheInvalidatorPort, EngagementStatRepoPort, PostCatalogPort, TimePort

logger = logging.getLogger(__name__)

MAX_LABEL_LENGTH = 64

INVALIDATED_PATTERNS = ("blog:*", "dashboard:*")


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


def _label(value: Any, default: str, allowed: frozenset[str]) -> str:
    """Normalized breakdown label; anything outside `allowed` is OTHER_LABEL."""
    if not isinstance(value, str) or not value.strip():
        return default
    label = value.strip().lower()[:MAX_LABEL_LENGTH]
    return label if label in allowed else OTHER_LABEL


# --- Aggregator ---


class EngagementAggregator:
    """Per-post engagement aggregation."""

    def __init__(
        self,
        repo: EngagementStatRepoPort,
        catalog: PostCatalogPort,
        dedupe: DedupeService | None = None,
        cache: CacheInvalidatorPort | None = None,
        config: EngagementConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._repo = repo
        self._catalog = catalog
        self._dedupe = dedupe or DedupeService()
        self._cache = cache
        self._config = config or DEFAULT_CONFIG
        self._time = time_port or DefaultTimePort()

    @property
    def config(self) -> EngagementConfig:
        return self._config

    def record_event(
        self,
        post_id: str,
        event_type: str,
        payload: dict[str, Any] | None = None,
        now: datetime | None = None,
    ) -> bool:
        """
        Apply one engagement event.

        Returns True when a counter changed. Bad input is logged and ignored;
        store errors propagate.
        """
        kind = normalize_event_type(event_type)
        if kind is None:
            logger.info("Ignoring unknown engagement event type %r", event_type)
            return False
        if payload is None:
            payload = {}
        if not isinstance(payload, dict):
            logger.info("Ignoring %s event with malformed payload", kind)
            return False
        if not isinstance(post_id, str) or not self._catalog.exists(post_id):
            logger.info("Ignoring %s event for unknown post %r", kind, post_id)
            return False

        now = now or self._time.now_utc()

        if kind == "view":
            applied = self._record_view(post_id, payload, now)
        elif kind == "scroll_checkpoint":
            applied = self._record_scroll(post_id, payload, now)
        elif kind == "share":
            applied = self._record_share(post_id, payload, now)
        elif kind == "cta_click":
            applied = self._record_cta(post_id, payload)
        else:
            applied = self._record_time(post_id, payload)

        if applied:
            self._invalidate()
        return applied

    def _record_view(self, post_id: str, payload: dict[str, Any], now: datetime) -> bool:
        first_visit = self._dedupe.first_visit(post_id, payload.get("visitor_id"))
        unique = 1 if first_visit else 0

        self._repo.increment(post_id, {"total_views": 1, "unique_visitors": unique}, seen_at=now)
        self._repo.increment_daily(post_id, now.date(), {"views": 1, "unique_visitors": unique})

        source = payload.get("source")
        if isinstance(source, SourceCategory):
            source = source.value
        if source in {c.value for c in SourceCategory}:
            self._repo.increment_breakdown(post_id, "source", source)
        return True

    def _record_scroll(self, post_id: str, payload: dict[str, Any], now: datetime) -> bool:
        threshold = floor_scroll_threshold(payload.get("depth"))
        if threshold is None:
            return False

        view_key = payload.get("view_id") or payload.get("session_id") or payload.get("visitor_id")
        if not self._dedupe.first_scroll(post_id, view_key, threshold):
            logger.debug("Duplicate scroll checkpoint %s for post %s", threshold, post_id)
            return False

        self._repo.increment(post_id, {f"scroll_{threshold}_percent": 1})
        if threshold == 100:
            self._repo.increment_daily(post_id, now.date(), {"completions": 1})
        return True

    def _record_share(self, post_id: str, payload: dict[str, Any], now: datetime) -> bool:
        platform = _label(payload.get("platform"), OTHER_LABEL, self._config.share_platforms)
        self._repo.increment(post_id, {"total_shares": 1})
        self._repo.increment_breakdown(post_id, "share", platform)
        self._repo.increment_daily(post_id, now.date(), {"shares": 1})
        return True

    def _record_cta(self, post_id: str, payload: dict[str, Any]) -> bool:
        target = _label(payload.get("target"), "cta", self._config.cta_targets)
        self._repo.increment(post_id, {"cta_clicks": 1})
        self._repo.increment_breakdown(post_id, "cta", target)
        return True

    def _record_time(self, post_id: str, payload: dict[str, Any]) -> bool:
        raw = payload.get("seconds")
        if raw is None:
            raw = payload.get("time_on_page")
        sample = clamp_time_sample(raw, self._config.max_time_on_page_seconds)
        if sample is None:
            return False

        self._repo.add_time_sample(post_id, sample)
        self._repo.increment_breakdown(post_id, "time", bucket_time_on_page(sample))
        return True

    def reset(self, post_id: str) -> bool:
        """Zero every counter of a post. False when the post is unknown."""
        if not self._catalog.exists(post_id):
            return False
        self._repo.reset(post_id)
        self._dedupe.forget_post(post_id)
        self._invalidate()
        logger.info("Engagement stats reset for post %s", post_id)
        return True

    def _invalidate(self) -> None:
        if self._cache is None:
            return
        for pattern in INVALIDATED_PATTERNS:
            self._cache.invalidate(pattern)

    # --- Queries ---

    def get_stat(self, post_id: str) -> PostEngagementStat:
        return self._repo.get(post_id) or PostEngagementStat(post_id=post_id)

    def get_metrics(self, post_id: str) -> PostMetrics | None:
        """Metrics of a post; None when the post does not exist."""
        if not self._catalog.exists(post_id):
            return None
        return build_metrics(
            self.get_stat(post_id),
            self._catalog.get_title(post_id),
            self._config.score,
        )

    def list_metrics(self) -> list[PostMetrics]:
        """Metrics of every post with recorded engagement, most viewed first."""
        metrics = [
            build_metrics(s, self._catalog.get_title(s.post_id), self._config.score)
            for s in self._repo.list_stats()
        ]
        metrics.sort(key=lambda m: (m.total_views, m.post_id), reverse=True)
        return metrics

    def comparison(
        self,
        sort_by: str = "engagement_score",
        descending: bool = True,
        limit: int = 20,
        page: int = 1,
    ) -> tuple[list[PostMetrics], int]:
        """
        One page of every live post side by side, posts without engagement
        included as zeros. Returns (page, total posts).
        """
        stats = {s.post_id: s for s in self._repo.list_stats()}
        metrics = [
            build_metrics(
                stats.get(post_id) or PostEngagementStat(post_id=post_id),
                title,
                self._config.score,
            )
            for post_id, title in self._catalog.list_posts()
        ]
        ordered = sort_metrics(metrics, sort_by, descending)
        start = (page - 1) * limit
        return ordered[start : start + limit], len(ordered)

    def leaderboard(self, limit: int | None = None) -> list[PostMetrics]:
        """Top posts by engagement score."""
        size = limit or self._config.leaderboard_size
        ranked = sorted(
            self.list_metrics(),
            key=lambda m: (m.engagement_score, m.total_views),
            reverse=True,
        )
        return ranked[:size]

    def timeline(self, post_id: str, days: int, today: date | None = None) -> list[DailyPostStat]:
        """Daily counters for the last `days` days, missing days zero-filled."""
        today = today or self._time.now_utc().date()
        since = today - timedelta(days=days - 1)
        rows = {r.stat_date: r for r in self._repo.list_daily(post_id, since)}
        return [
            rows.get(since + timedelta(days=i))
            or DailyPostStat(post_id=post_id, stat_date=since + timedelta(days=i))
            for i in range(days)
        ]


# --- In-Memory Implementations ---


class InMemoryEngagementStatRepo:
    """Thread-safe in-memory engagement counters."""

    def __init__(self) -> None:
        self._stats: dict[str, PostEngagementStat] = {}
        self._daily: dict[tuple[str, date], DailyPostStat] = {}
        self._lock = threading.Lock()

    def _row(self, post_id: str) -> PostEngagementStat:
        row = self._stats.get(post_id)
        if row is None:
            row = PostEngagementStat(post_id=post_id)
            self._stats[post_id] = row
        return row

    def increment(
        self,
        post_id: str,
        counters: dict[str, int],
        seen_at: datetime | None = None,
    ) -> None:
        unknown = set(counters) - ENGAGEMENT_COUNTERS
        if unknown:
            raise ValueError(f"Unknown engagement counters: {sorted(unknown)}")
        with self._lock:
            row = self._row(post_id)
            for name, amount in counters.items():
                setattr(row, name, getattr(row, name) + amount)
            if seen_at is not None:
                if row.first_view_at is None:
                    row.first_view_at = seen_at
                row.last_view_at = seen_at

    def add_time_sample(self, post_id: str, seconds: float) -> None:
        with self._lock:
            row = self._row(post_id)
            row.avg_time_on_page = running_mean(row.avg_time_on_page, row.time_samples, seconds)
            row.time_samples += 1

    def increment_breakdown(self, post_id: str, dimension: str, key: str, amount: int = 1) -> None:
        if dimension not in BREAKDOWN_DIMENSIONS:
            raise ValueError(f"Unknown breakdown dimension: {dimension}")
        with self._lock:
            bucket = self._row(post_id).breakdowns.setdefault(dimension, {})
            bucket[key] = bucket.get(key, 0) + amount

    def increment_daily(self, post_id: str, stat_date: date, counters: dict[str, int]) -> None:
        unknown = set(counters) - DAILY_COUNTERS
        if unknown:
            raise ValueError(f"Unknown daily counters: {sorted(unknown)}")
        with self._lock:
            row = self._daily.get((post_id, stat_date))
            if row is None:
                row = DailyPostStat(post_id=post_id, stat_date=stat_date)
                self._daily[(post_id, stat_date)] = row
            for name, amount in counters.items():
                setattr(row, name, getattr(row, name) + amount)

    def get(self, post_id: str) -> PostEngagementStat | None:
        with self._lock:
            row = self._stats.get(post_id)
            return deepcopy(row) if row else None

    def list_stats(self) -> list[PostEngagementStat]:
        with self._lock:
            return [deepcopy(r) for r in self._stats.values()]

    def list_daily(self, post_id: str, since: date) -> list[DailyPostStat]:
        with self._lock:
            rows = [
                deepcopy(r)
                for (pid, day), r in self._daily.items()
                if pid == post_id and day >= since
            ]
        return sorted(rows, key=lambda r: r.stat_date)

    def reset(self, post_id: str) -> None:
        with self._lock:
            self._stats.pop(post_id, None)
            for key in [k for k in self._daily if k[0] == post_id]:
                del self._daily[key]


class InMemoryPostCatalog:
    """In-memory post catalog for testing/dev."""

    def __init__(self, posts: dict[str, str] | None = None) -> None:
        self._posts: dict[str, str] = dict(posts or {})

    def register(self, post_id: str, title: str = "") -> None:
        self._posts[post_id] = title

    def exists(self, post_id: str) -> bool:
        return post_id in self._posts

    def get_title(self, post_id: str) -> str | None:
        return self._posts.get(post_id)

    def list_posts(self) -> list[tuple[str, str | None]]:
        return sorted(self._posts.items())


# --- Factory ---


def create_engagement_aggregator(
    repo: EngagementStatRepoPort | None = None,
    catalog: PostCatalogPort | None = None,
    dedupe: DedupeService | None = None,
    cache: CacheInvalidatorPort | None = None,
    config: EngagementConfig | None = None,
    time_port: TimePort | None = None,
) -> EngagementAggregator:
    """Create an EngagementAggregator (in-memory stores by default)."""
    return EngagementAggregator(
        repo=repo or InMemoryEngagementStatRepo(),
        catalog=catalog or InMemoryPostCatalog(),
        dedupe=dedupe,
        cache=cache,
        config=config,
        time_port=time_port,
    )
