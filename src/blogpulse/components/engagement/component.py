"""
Engagement component - per-post counters and the derived engagement score.

Pure functions over stored counters; the aggregator in _impl applies them.

Invariants:
- Counters only grow (administrative reset aside)
- Derived metrics are computed on read and never stored
- The score stays within [0, scale] for every counter combination,
  all-zero counters included
"""

from __future__ import annotations

import math
from typing import TYPE_CHECKING, Any

from blogpulse.core.entities import PostEngagementStat

from .models import (
    DEFAULT_CONFIG,
    EVENT_ALIASES,
    EVENT_TYPES,
    SCROLL_THRESHOLDS,
    EngagementValidationError,
    PostMetrics,
    RecordEventInput,
    RecordEventOutput,
    ScoreConfig,
    TimeBucket,
)

if TYPE_CHECKING:
    from ._impl import EngagementAggregator


# --- Pure Functions (Functional Core) ---


def normalize_event_type(event_type: Any) -> str | None:
    """Map client event names onto the canonical set; None when unknown."""
    if not isinstance(event_type, str):
        return None
    name = event_type.strip().lower()
    name = EVENT_ALIASES.get(name, name)
    return name if name in EVENT_TYPES else None


def parse_number(value: Any) -> float | None:
    """Coerce a payload value to a finite float."""
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def floor_scroll_threshold(depth: Any) -> int | None:
    """
    Floor a scroll depth to the highest threshold reached.

    Depths below the first threshold are ignored; anything above 100 is 100.
    """
    value = parse_number(depth)
    if value is None:
        return None
    reached = [t for t in SCROLL_THRESHOLDS if value >= t]
    return reached[-1] if reached else None


def clamp_time_sample(seconds: Any, max_seconds: int) -> float | None:
    """Clamp a time-on-page sample to [0, max_seconds]; negatives are dropped."""
    value = parse_number(seconds)
    if value is None or value < 0:
        return None
    return min(value, float(max_seconds))


def running_mean(avg: float, n: int, sample: float) -> float:
    """Incremental mean after folding one more sample into n existing ones."""
    return avg + (sample - avg) / (n + 1)


def bucket_time_on_page(seconds: float) -> TimeBucket:
    """
    Bucket time on page value.

    Args:
        seconds: Time on page in seconds (0-3600 typical range)

    Returns:
        Time bucket label
    """
    if seconds < 10:
        return "0-10s"
    elif seconds < 30:
        return "10-30s"
    elif seconds < 60:
        return "30-60s"
    elif seconds < 120:
        return "60-120s"
    elif seconds < 300:
        return "120-300s"
    else:
        return "300+s"


def derive_avg_scroll_depth(stat: PostEngagementStat) -> float:
    """
    Average scroll depth (0-100) from the checkpoint counters.

    Each view is credited with the deepest threshold it reached:
    (25*(s25-s50) + 50*(s50-s75) + 75*(s75-s100) + 100*s100) / views
    """
    if stat.total_views <= 0:
        return 0.0

    s25, s50 = stat.scroll_25_percent, stat.scroll_50_percent
    s75, s100 = stat.scroll_75_percent, stat.scroll_100_percent
    weighted = (
        25 * max(s25 - s50, 0)
        + 50 * max(s50 - s75, 0)
        + 75 * max(s75 - s100, 0)
        + 100 * max(s100, 0)
    )
    return max(0.0, min(100.0, weighted / stat.total_views))


def engagement_rate(stat: PostEngagementStat) -> float:
    """Share of views that reached the end of the post (0.0 - 1.0)."""
    if stat.total_views <= 0:
        return 0.0
    return max(0.0, min(stat.scroll_100_percent / stat.total_views, 1.0))


def share_rate(stat: PostEngagementStat) -> float:
    if stat.total_views <= 0:
        return 0.0
    return max(0.0, stat.total_shares / stat.total_views)


def compute_engagement_score(
    stat: PostEngagementStat,
    config: ScoreConfig | None = None,
) -> float:
    """
    Weighted engagement score in [0, scale].

    score = scale * (w1*rate + w2*scroll/100 + w3*min(time/time_norm, 1)
                     + w4*min(share_rate/share_norm, 1)) / (w1+w2+w3+w4)
    """
    cfg = config or DEFAULT_CONFIG.score
    weights = (
        cfg.w_engagement_rate,
        cfg.w_scroll_depth,
        cfg.w_time_on_page,
        cfg.w_share_rate,
    )
    total_weight = sum(weights)
    if total_weight <= 0:
        return 0.0

    time_term = 0.0
    if cfg.time_norm_seconds > 0:
        time_term = min(max(stat.avg_time_on_page, 0.0) / cfg.time_norm_seconds, 1.0)
    share_term = 0.0
    if cfg.share_rate_norm > 0:
        share_term = min(share_rate(stat) / cfg.share_rate_norm, 1.0)

    terms = (
        engagement_rate(stat),
        derive_avg_scroll_depth(stat) / 100.0,
        time_term,
        share_term,
    )
    raw = sum(w * t for w, t in zip(weights, terms, strict=True)) / total_weight
    return max(0.0, min(cfg.scale, cfg.scale * raw))


def build_metrics(
    stat: PostEngagementStat,
    title: str | None = None,
    config: ScoreConfig | None = None,
) -> PostMetrics:
    """Counters plus derived metrics for the admin views."""
    return PostMetrics(
        post_id=stat.post_id,
        title=title,
        total_views=stat.total_views,
        unique_visitors=stat.unique_visitors,
        scroll_25_percent=stat.scroll_25_percent,
        scroll_50_percent=stat.scroll_50_percent,
        scroll_75_percent=stat.scroll_75_percent,
        scroll_100_percent=stat.scroll_100_percent,
        total_shares=stat.total_shares,
        cta_clicks=stat.cta_clicks,
        time_samples=stat.time_samples,
        avg_time_on_page=round(stat.avg_time_on_page, 2),
        avg_scroll_depth=round(derive_avg_scroll_depth(stat), 2),
        engagement_rate=round(engagement_rate(stat), 4),
        share_rate=round(share_rate(stat), 4),
        engagement_score=round(compute_engagement_score(stat, config), 2),
        first_view_at=stat.first_view_at,
        last_view_at=stat.last_view_at,
    )


COMPARISON_SORT_FIELDS: tuple[str, ...] = (
    "engagement_score",
    "total_views",
    "unique_visitors",
    "engagement_rate",
    "avg_time_on_page",
    "avg_scroll_depth",
    "total_shares",
    "cta_clicks",
    "title",
)


def sort_metrics(
    metrics: list[PostMetrics],
    sort_by: str = "engagement_score",
    descending: bool = True,
) -> list[PostMetrics]:
    """
    Order posts for the comparison table.

    Unknown fields fall back to engagement_score. Ties keep post_id order so
    pages are stable; titles compare case-insensitively, missing titles last.
    """
    field_name = sort_by if sort_by in COMPARISON_SORT_FIELDS else "engagement_score"
    ordered = sorted(metrics, key=lambda m: m.post_id)
    if field_name == "title":
        titled = [m for m in ordered if m.title]
        untitled = [m for m in ordered if not m.title]
        titled.sort(key=lambda m: m.title.casefold(), reverse=descending)  # type: ignore[union-attr]
        return titled + untitled
    return sorted(ordered, key=lambda m: getattr(m, field_name), reverse=descending)


def scroll_distribution(stat: PostEngagementStat) -> dict[str, int]:
    """
    Views by deepest threshold reached (heatmap).

    "0-25" is every view without a checkpoint.
    """
    s25, s50 = stat.scroll_25_percent, stat.scroll_50_percent
    s75, s100 = stat.scroll_75_percent, stat.scroll_100_percent
    return {
        "0-25": max(stat.total_views - max(s25, s50, s75, s100), 0),
        "25-50": max(s25 - s50, 0),
        "50-75": max(s50 - s75, 0),
        "75-100": max(s75 - s100, 0),
        "100": max(s100, 0),
    }


def validate_event(inp: RecordEventInput) -> list[EngagementValidationError]:
    """
    Validate an engagement event.

    Returns:
        List of validation errors (empty if valid)
    """
    errors: list[EngagementValidationError] = []

    if not isinstance(inp.post_id, str) or not inp.post_id.strip():
        errors.append(
            EngagementValidationError(
                code="INVALID_POST",
                message="post_id is required",
                field_name="post_id",
            )
        )

    if normalize_event_type(inp.event_type) is None:
        errors.append(
            EngagementValidationError(
                code="INVALID_EVENT_TYPE",
                message=f"Unknown event type: {inp.event_type!r}",
                field_name="event_type",
            )
        )

    if inp.payload is not None and not isinstance(inp.payload, dict):
        errors.append(
            EngagementValidationError(
                code="INVALID_PAYLOAD",
                message="Payload must be an object",
                field_name="payload",
            )
        )

    return errors


# --- Component Entry Points ---


def run_record_event(
    inp: RecordEventInput,
    *,
    aggregator: EngagementAggregator,
) -> RecordEventOutput:
    """
    Validate and record one engagement event.

    Never raises for bad input; store errors propagate.
    """
    errors = validate_event(inp)
    if errors:
        return RecordEventOutput(applied=False, errors=errors, success=False)

    event_type = normalize_event_type(inp.event_type)
    applied = aggregator.record_event(
        inp.post_id,
        inp.event_type,
        inp.payload or {},
        inp.timestamp,
    )
    return RecordEventOutput(applied=applied, event_type=event_type)
