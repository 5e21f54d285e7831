"""
Tracking API Routes.

Public beacon endpoints called from the blog's pages.

Every route acknowledges with {"success": true}: ingestion problems are
logged server side and never surfaced to the browser.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from pydantic import BaseModel, ConfigDict

from blogpulse.api.deps import get_client_key, get_optional_user_id, get_rules, get_tracking_pipeline
from blogpulse.components.analytics import (
    EngagementBeacon,
    TrackingPipeline,
    build_beacon,
    run_track,
    run_track_engagement,
)
from blogpulse.rules.models import Rules

router = APIRouter()

VISITOR_COOKIE = "ps_vid"
SESSION_COOKIE = "ps_sid"
SOURCE_COOKIE = "ps_src"

DAY_SECONDS = 24 * 60 * 60


# --- Request/Response Models ---


class TrackRequest(BaseModel):
    """Page view beacon. Fields are untrusted and sanitized downstream."""

    path: Any = None
    referrer: Any = None
    source: Any = None

    model_config = ConfigDict(extra="allow")


class EngagementRequest(BaseModel):
    """Blog engagement event."""

    event_type: Any = None
    event_data: Any = None

    model_config = ConfigDict(extra="allow")


class TrackResponse(BaseModel):
    success: bool = True


def _set_cookie(response: Response, key: str, value: str, max_age: int) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        httponly=True,
        samesite="lax",
        path="/",
    )


# --- Routes ---


@router.post("", response_model=TrackResponse)
def track_page_view(
    request: Request,
    response: Response,
    body: TrackRequest,
    pipeline: TrackingPipeline = Depends(get_tracking_pipeline),
    user_id: str | None = Depends(get_optional_user_id),
    rules: Rules = Depends(get_rules),
) -> TrackResponse:
    """Record a page view and refresh the visitor/session cookies."""
    visitor_max_age = rules.analytics.visitor_cookie_days * DAY_SECONDS
    # Sliding: refreshed on every view
    session_max_age = rules.analytics.session_timeout_minutes * 60
    beacon = build_beacon(
        path=body.path,
        body_referrer=body.referrer,
        header_referrer=request.headers.get("referer"),
        hint=body.source,
        visitor_token=request.cookies.get(VISITOR_COOKIE),
        user_agent=request.headers.get("user-agent"),
        ip=get_client_key(request),
        user_id=user_id,
    )
    result = run_track(beacon, pipeline=pipeline)

    if result.visitor_id:
        _set_cookie(response, VISITOR_COOKIE, result.visitor_id, visitor_max_age)
    if result.session_id:
        _set_cookie(response, SESSION_COOKIE, result.session_id, session_max_age)
    if result.first_source and SOURCE_COOKIE not in request.cookies:
        _set_cookie(response, SOURCE_COOKIE, result.first_source.value, visitor_max_age)

    return TrackResponse()


@router.post("/end", response_model=TrackResponse)
def end_session(
    request: Request,
    response: Response,
    pipeline: TrackingPipeline = Depends(get_tracking_pipeline),
) -> TrackResponse:
    """Explicit end of the visitor's session (page hide / logout)."""
    pipeline.end_session(request.cookies.get(VISITOR_COOKIE))
    response.delete_cookie(SESSION_COOKIE, path="/")
    return TrackResponse()


@router.post("/blog/{post_id}/engagement", response_model=TrackResponse)
def track_engagement(
    post_id: str,
    request: Request,
    body: EngagementRequest,
    pipeline: TrackingPipeline = Depends(get_tracking_pipeline),
) -> TrackResponse:
    """Record a blog engagement event (view, scroll, share, cta, time)."""
    beacon = EngagementBeacon(
        post_id=post_id,
        event_type=body.event_type if isinstance(body.event_type, str) else "",
        event_data=body.event_data if isinstance(body.event_data, dict) else {},
        visitor_token=request.cookies.get(VISITOR_COOKIE),
    )
    run_track_engagement(beacon, pipeline=pipeline)
    return TrackResponse()
