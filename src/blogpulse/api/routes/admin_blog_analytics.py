"""
Admin Blog Analytics API.

Per-post engagement: overview, leaderboard, comparison, post detail, audience,
scroll heatmap, daily timeline and an administrative reset.

Unknown posts answer 404. Metrics are derived from the stored counters on
every read; overview, leaderboard and post detail go through the cache.
"""

from __future__ import annotations

import math
from dataclasses import asdict
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from blogpulse.api.deps import get_cache, get_engagement_aggregator
from blogpulse.components.cache import AnalyticsCache, CacheKeys
from blogpulse.components.engagement import (
    COMPARISON_SORT_FIELDS,
    EngagementAggregator,
    PostMetrics,
    scroll_distribution,
)

router = APIRouter()


# --- Response Models ---


class PostMetricsResponse(BaseModel):
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


class OverviewResponse(BaseModel):
    total_posts: int
    total_views: int
    unique_visitors: int
    total_shares: int
    cta_clicks: int
    avg_engagement_score: float
    posts: list[PostMetricsResponse]


class LeaderboardResponse(BaseModel):
    items: list[PostMetricsResponse]


class Pagination(BaseModel):
    current_page: int
    total_pages: int
    total: int
    limit: int
    from_item: int
    to_item: int


class ComparisonResponse(BaseModel):
    sort_by: str
    order: str
    posts: list[PostMetricsResponse]
    pagination: Pagination


class AudienceResponse(BaseModel):
    post_id: str
    sources: dict[str, int]
    shares: dict[str, int]
    cta: dict[str, int]


class HeatmapResponse(BaseModel):
    post_id: str
    total_views: int
    scroll: dict[str, int]
    time_on_page: dict[str, int]


class TimelinePoint(BaseModel):
    stat_date: date
    views: int
    unique_visitors: int
    completions: int
    shares: int


class TimelineResponse(BaseModel):
    post_id: str
    days: int
    points: list[TimelinePoint]


class ResetResponse(BaseModel):
    post_id: str
    reset: bool = True


# --- Helpers ---


def _response(metrics: PostMetrics) -> PostMetricsResponse:
    return PostMetricsResponse(**asdict(metrics))


def _require_post(aggregator: EngagementAggregator, post_id: str) -> PostMetrics:
    metrics = aggregator.get_metrics(post_id)
    if metrics is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return metrics


# --- Routes ---


@router.get("", response_model=OverviewResponse)
def overview(
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
    cache: AnalyticsCache = Depends(get_cache),
) -> OverviewResponse:
    """Totals across posts plus per-post metrics, most viewed first."""

    def compute() -> OverviewResponse:
        posts = aggregator.list_metrics()
        avg_score = sum(p.engagement_score for p in posts) / len(posts) if posts else 0.0
        return OverviewResponse(
            total_posts=len(posts),
            total_views=sum(p.total_views for p in posts),
            unique_visitors=sum(p.unique_visitors for p in posts),
            total_shares=sum(p.total_shares for p in posts),
            cta_clicks=sum(p.cta_clicks for p in posts),
            avg_engagement_score=round(avg_score, 2),
            posts=[_response(p) for p in posts],
        )

    return cache.get_or_compute(CacheKeys.BLOG_OVERVIEW, None, compute)


@router.get("/leaderboard", response_model=LeaderboardResponse)
def leaderboard(
    limit: int | None = Query(None, ge=1, le=100),
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
    cache: AnalyticsCache = Depends(get_cache),
) -> LeaderboardResponse:
    """Posts ranked by engagement score."""

    def compute() -> LeaderboardResponse:
        return LeaderboardResponse(items=[_response(m) for m in aggregator.leaderboard(limit)])

    if limit is None:
        return cache.get_or_compute(CacheKeys.BLOG_LEADERBOARD, None, compute)
    return compute()


@router.get("/comparison", response_model=ComparisonResponse)
def comparison(
    sort_by: str = Query("engagement_score"),
    order: str = Query("desc"),
    limit: int = Query(20, ge=1, le=100),
    page: int = Query(1, ge=1),
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
) -> ComparisonResponse:
    """Every live post side by side, sortable and paged. Unknown sort fields use the score."""
    field_name = sort_by if sort_by in COMPARISON_SORT_FIELDS else "engagement_score"
    direction = "asc" if order.lower() == "asc" else "desc"
    posts, total = aggregator.comparison(field_name, direction == "desc", limit, page)
    offset = (page - 1) * limit
    return ComparisonResponse(
        sort_by=field_name,
        order=direction,
        posts=[_response(m) for m in posts],
        pagination=Pagination(
            current_page=page,
            total_pages=math.ceil(total / limit),
            total=total,
            limit=limit,
            from_item=offset + 1 if posts else 0,
            to_item=offset + len(posts),
        ),
    )


@router.get("/{post_id}", response_model=PostMetricsResponse)
def post_detail(
    post_id: str,
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
    cache: AnalyticsCache = Depends(get_cache),
) -> PostMetricsResponse:
    cached: Any = cache.get(CacheKeys.blog_post(post_id))
    if cached is not None:
        return cached

    # Not cached: unknown posts must still answer 404, so compute outside get_or_compute
    response = _response(_require_post(aggregator, post_id))
    cache.set(CacheKeys.blog_post(post_id), response)
    return response


@router.get("/{post_id}/audience", response_model=AudienceResponse)
def post_audience(
    post_id: str,
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
) -> AudienceResponse:
    """Views by traffic source, shares by platform, clicks by CTA."""
    _require_post(aggregator, post_id)
    breakdowns = aggregator.get_stat(post_id).breakdowns
    return AudienceResponse(
        post_id=post_id,
        sources=breakdowns.get("source", {}),
        shares=breakdowns.get("share", {}),
        cta=breakdowns.get("cta", {}),
    )


@router.get("/{post_id}/heatmap", response_model=HeatmapResponse)
def post_heatmap(
    post_id: str,
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
) -> HeatmapResponse:
    """Views by deepest scroll threshold and by time-on-page bucket."""
    _require_post(aggregator, post_id)
    stat = aggregator.get_stat(post_id)
    return HeatmapResponse(
        post_id=post_id,
        total_views=stat.total_views,
        scroll=scroll_distribution(stat),
        time_on_page=stat.breakdowns.get("time", {}),
    )


@router.get("/{post_id}/timeline", response_model=TimelineResponse)
def post_timeline(
    post_id: str,
    days: int = Query(30, ge=1, le=365),
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
) -> TimelineResponse:
    """Daily counters, oldest first, missing days as zero."""
    _require_post(aggregator, post_id)
    return TimelineResponse(
        post_id=post_id,
        days=days,
        points=[
            TimelinePoint(
                stat_date=d.stat_date,
                views=d.views,
                unique_visitors=d.unique_visitors,
                completions=d.completions,
                shares=d.shares,
            )
            for d in aggregator.timeline(post_id, days)
        ],
    )


@router.post("/{post_id}/reset", response_model=ResetResponse)
def reset_post(
    post_id: str,
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
) -> ResetResponse:
    """Zero every engagement counter of a post."""
    if not aggregator.reset(post_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Post not found")
    return ResetResponse(post_id=post_id)
