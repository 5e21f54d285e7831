"""
Admin Dashboard API.

A cached snapshot of the headline numbers, a sessions-per-day timeline and
an operator hook to drop cached admin views.
"""

from __future__ import annotations

import logging
from datetime import UTC, date, datetime, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from blogpulse.adapters.clock import SystemClock
from blogpulse.api.deps import (
    get_cache,
    get_clock,
    get_engagement_aggregator,
    get_rules,
    get_session_repo,
    get_traffic_repo,
    get_visitor_repo,
)
from blogpulse.api.routes.admin_traffic import zero_filled
from blogpulse.components.cache import TOPICS, AnalyticsCache, CacheKeys
from blogpulse.components.engagement import EngagementAggregator
from blogpulse.core.ports.db import SessionRepoPort, TrafficRepoPort, VisitorRepoPort
from blogpulse.rules.models import Rules

logger = logging.getLogger(__name__)

router = APIRouter()

TOP_POSTS = 5
MAX_TIMELINE_DAYS = 30


class TopPost(BaseModel):
    post_id: str
    title: str | None
    total_views: int
    engagement_score: float


class DashboardResponse(BaseModel):
    generated_at: datetime
    visitors_total: int
    sessions_24h: int
    active_sessions: int
    traffic_7d: dict[str, int]
    top_posts: list[TopPost]


class ClearCacheResponse(BaseModel):
    success: bool = True
    topic: str
    cleared: int


class SessionsDay(BaseModel):
    day: date
    by_source: dict[str, int]
    total: int


class SessionsTimelineResponse(BaseModel):
    days: int
    points: list[SessionsDay]


@router.get("", response_model=DashboardResponse)
def dashboard(
    visitors: VisitorRepoPort = Depends(get_visitor_repo),
    sessions: SessionRepoPort = Depends(get_session_repo),
    traffic: TrafficRepoPort = Depends(get_traffic_repo),
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
    cache: AnalyticsCache = Depends(get_cache),
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> DashboardResponse:
    def compute() -> DashboardResponse:
        now = clock.now_utc()
        timeout = timedelta(minutes=rules.analytics.session_timeout_minutes)
        return DashboardResponse(
            generated_at=now,
            visitors_total=visitors.count(),
            sessions_24h=sessions.count_started_since(now - timedelta(days=1)),
            active_sessions=sessions.count_active(now, timeout),
            traffic_7d=zero_filled(traffic.count_by_source(now - timedelta(days=7))),
            top_posts=[
                TopPost(
                    post_id=m.post_id,
                    title=m.title,
                    total_views=m.total_views,
                    engagement_score=m.engagement_score,
                )
                for m in aggregator.list_metrics()[:TOP_POSTS]
            ],
        )

    return cache.get_or_compute(CacheKeys.DASHBOARD_METRICS, None, compute)


@router.post("/clear-cache", response_model=ClearCacheResponse)
def clear_cache(
    topic: str = Query("dashboard"),
    cache: AnalyticsCache = Depends(get_cache),
) -> ClearCacheResponse:
    """Drop cached admin views of a topic (dashboard, traffic, sessions, blog, all)."""
    if topic not in TOPICS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown cache topic. Use one of: {', '.join(TOPICS)}",
        )
    cleared = cache.invalidate_topic(topic)
    logger.info("Admin cache clear: topic=%s entries=%d", topic, cleared)
    return ClearCacheResponse(topic=topic, cleared=cleared)


@router.get("/sessions-timeline", response_model=SessionsTimelineResponse)
def sessions_timeline(
    days: int = Query(7, ge=1),
    sessions: SessionRepoPort = Depends(get_session_repo),
    clock: SystemClock = Depends(get_clock),
) -> SessionsTimelineResponse:
    """Sessions started per UTC day by source, oldest first; at most 30 days."""
    days = min(days, MAX_TIMELINE_DAYS)
    today = clock.now_utc().astimezone(UTC).date()
    first = today - timedelta(days=days - 1)
    counts = sessions.count_started_by_day(datetime.combine(first, time.min, tzinfo=UTC))

    points = []
    for i in range(days):
        day = first + timedelta(days=i)
        by_source = zero_filled(counts.get(day, {}))
        points.append(SessionsDay(day=day, by_source=by_source, total=sum(by_source.values())))
    return SessionsTimelineResponse(days=days, points=points)
