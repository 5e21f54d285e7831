"""
Admin Sessions API.

Session listing with filters, session detail and its page view log.
The first unfiltered page is served from the analytics cache.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from blogpulse.adapters.clock import SystemClock
from blogpulse.api.deps import get_cache, get_clock, get_rules, get_session_repo
from blogpulse.components.cache import AnalyticsCache, CacheKeys
from blogpulse.components.sessions import SessionRepoPort, session_state
from blogpulse.core.entities import Session, SourceCategory
from blogpulse.rules.models import Rules

router = APIRouter()

DEFAULT_LIMIT = 50
MAX_LIMIT = 200


# --- Response Models ---


class SessionItem(BaseModel):
    session_id: str
    visitor_id: str
    user_id: str | None
    source: str
    landing_path: str | None
    started_at: datetime
    last_seen_at: datetime
    ended_at: datetime | None
    page_count: int


class SessionListResponse(BaseModel):
    items: list[SessionItem]
    limit: int
    offset: int


class SessionDetailResponse(SessionItem):
    state: str
    events_count: int
    user_agent: str | None
    ip: str | None


class PageViewItem(BaseModel):
    occurred_at: datetime
    path: str
    referrer: str | None
    source: str | None


class SessionEventsResponse(BaseModel):
    session_id: str
    items: list[PageViewItem]


# --- Helpers ---


def _item(session: Session) -> SessionItem:
    return SessionItem(
        session_id=session.session_id,
        visitor_id=session.visitor_id,
        user_id=session.user_id,
        source=session.source.value,
        landing_path=session.landing_path,
        started_at=session.started_at,
        last_seen_at=session.last_seen_at,
        ended_at=session.ended_at,
        page_count=session.page_count,
    )


def _validate_source(source: str | None) -> str | None:
    if source is None or source == "":
        return None
    valid = {c.value for c in SourceCategory}
    if source not in valid:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown source '{source}'. Expected one of: {', '.join(sorted(valid))}",
        )
    return source


def _get_or_404(repo: SessionRepoPort, session_id: str) -> Session:
    session = repo.get(session_id)
    if session is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
    return session


# --- Routes ---


@router.get("", response_model=SessionListResponse)
def list_sessions(
    source: str | None = Query(None),
    user_id: str | None = Query(None),
    visitor_id: str | None = Query(None),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    offset: int = Query(0, ge=0),
    repo: SessionRepoPort = Depends(get_session_repo),
    cache: AnalyticsCache = Depends(get_cache),
) -> SessionListResponse:
    """List sessions, newest first."""
    source = _validate_source(source)

    def compute() -> SessionListResponse:
        sessions = repo.list_sessions(
            source=source,
            user_id=user_id or None,
            visitor_id=visitor_id or None,
            limit=limit,
            offset=offset,
        )
        return SessionListResponse(items=[_item(s) for s in sessions], limit=limit, offset=offset)

    unfiltered = not (source or user_id or visitor_id)
    if unfiltered and offset == 0 and limit == DEFAULT_LIMIT:
        return cache.get_or_compute(CacheKeys.SESSIONS_RECENT, None, compute)
    return compute()


@router.get("/{session_id}", response_model=SessionDetailResponse)
def get_session(
    session_id: str,
    repo: SessionRepoPort = Depends(get_session_repo),
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> SessionDetailResponse:
    """Session detail with its derived lifecycle state."""
    session = _get_or_404(repo, session_id)
    timeout = timedelta(minutes=rules.analytics.session_timeout_minutes)
    state = session_state(session, clock.now_utc(), timeout)

    return SessionDetailResponse(
        **_item(session).model_dump(),
        state=state.value,
        events_count=repo.count_events(session_id),
        user_agent=session.user_agent,
        ip=session.ip,
    )


@router.get("/{session_id}/events", response_model=SessionEventsResponse)
def list_session_events(
    session_id: str,
    repo: SessionRepoPort = Depends(get_session_repo),
) -> SessionEventsResponse:
    """Page views of a session in order."""
    _get_or_404(repo, session_id)
    return SessionEventsResponse(
        session_id=session_id,
        items=[
            PageViewItem(
                occurred_at=e.occurred_at,
                path=e.path,
                referrer=e.referrer,
                source=e.source.value if e.source else None,
            )
            for e in repo.list_events(session_id)
        ],
    )
