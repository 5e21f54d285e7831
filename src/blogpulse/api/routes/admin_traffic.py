"""
Admin Traffic API.

Source breakdown over a lookback range and the raw traffic log.

Ranges are normalized (1h, 24h, 7d, 30d, 90d, 365d or N days) before they
reach the store or a cache key, so "week" and "7d" share one cache entry.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from blogpulse.adapters.clock import SystemClock
from blogpulse.api.deps import get_cache, get_clock, get_traffic_repo
from blogpulse.components.cache import AnalyticsCache, CacheKeys
from blogpulse.core.entities import SourceCategory
from blogpulse.core.ports.db import TrafficRepoPort
from blogpulse.core.services.time_range import MAX_RANGE_DAYS, normalize_range

router = APIRouter()

NO_REFERRER_LABEL = "No referrer"
TOP_REFERRERS = 5


# --- Response Models ---


class ReferrerCount(BaseModel):
    referrer: str
    count: int


class TrafficSummaryResponse(BaseModel):
    range: str
    since: datetime
    total: int
    by_source: dict[str, int]
    top_other_referrers: list[ReferrerCount]


class TrafficEventItem(BaseModel):
    id: int | None
    occurred_at: datetime
    source: str
    referrer: str | None
    path: str | None


class TrafficEventsResponse(BaseModel):
    range: str
    items: list[TrafficEventItem]
    by_source: dict[str, int]
    limit: int
    offset: int


def zero_filled(counts: dict[str, int]) -> dict[str, int]:
    """Counts for every source category, missing ones as 0."""
    return {c.value: int(counts.get(c.value, 0)) for c in SourceCategory}


# --- Routes ---


@router.get("/summary", response_model=TrafficSummaryResponse)
def traffic_summary(
    range_: str | None = Query(None, alias="range"),
    repo: TrafficRepoPort = Depends(get_traffic_repo),
    cache: AnalyticsCache = Depends(get_cache),
    clock: SystemClock = Depends(get_clock),
) -> TrafficSummaryResponse:
    """Views per source plus the top unclassified referrers."""
    window = normalize_range(range_)

    def compute() -> TrafficSummaryResponse:
        since = window.since(clock.now_utc())
        by_source = zero_filled(repo.count_by_source(since))
        top = repo.top_referrers(since, source=SourceCategory.OTHER.value, limit=TOP_REFERRERS)
        return TrafficSummaryResponse(
            range=window.label,
            since=since,
            total=sum(by_source.values()),
            by_source=by_source,
            top_other_referrers=[ReferrerCount(referrer=ref or NO_REFERRER_LABEL, count=n) for ref, n in top],
        )

    return cache.get_or_compute(CacheKeys.traffic_summary(window.label), None, compute)


@router.get("/events", response_model=TrafficEventsResponse)
def traffic_events(
    source: str | None = Query(None),
    ref: str | None = Query(None, max_length=256),
    days: int | None = Query(None, ge=1),
    range_: str | None = Query(None, alias="range"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    repo: TrafficRepoPort = Depends(get_traffic_repo),
    clock: SystemClock = Depends(get_clock),
) -> TrafficEventsResponse:
    """Traffic log, newest first. `days` wins over `range` when both are given."""
    if source:
        valid = {c.value for c in SourceCategory}
        if source not in valid:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown source '{source}'",
            )

    if days is not None:
        days = min(days, MAX_RANGE_DAYS)
        label, since = f"{days}d", clock.now_utc() - timedelta(days=days)
    else:
        window = normalize_range(range_)
        label, since = window.label, window.since(clock.now_utc())

    events = repo.list_events(since, source=source or None, ref=ref or None, limit=limit, offset=offset)
    return TrafficEventsResponse(
        range=label,
        items=[
            TrafficEventItem(
                id=e.id,
                occurred_at=e.occurred_at,
                source=e.source.value,
                referrer=e.referrer,
                path=e.path,
            )
            for e in events
        ],
        by_source=zero_filled(repo.count_by_source(since)),
        limit=limit,
        offset=offset,
    )
