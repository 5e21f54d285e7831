"""
VisitorRegistry and SessionTracker.

Key behaviors:
- A valid client token is reused; an unknown one is inserted-or-fetched
  under the store's uniqueness constraint
- first_source is written once and never touched again
- A beacon inside the inactivity timeout continues the visitor's session,
  otherwise a new session starts with this beacon's attribution
- A timed-out predecessor gets ended_at backfilled with its last_seen_at
- The same (visitor, path) inside the navigation window is one page view
"""

from __future__ import annotations

import logging
import threading
import uuid
from copy import copy
from datetime import UTC, date, datetime, timedelta

from blogpulse.core.entities import (
    PageViewEvent,
    Session,
    SessionState,
    SourceCategory,
    Visitor,
)
from blogpulse.core.services.analytics_attrib import AttributionService
from blogpulse.core.services.analytics_dedupe import DedupeService

from .component import is_valid_token, new_token, normalize_token, session_state
from .models import DEFAULT_CONFIG, IdentifyResult, PageViewResult, ReferrerInfo, SessionConfig
from .ports import SessionRepoPort, VisitorRepoPort

logger = logging.getLogger(__name__)

# Per-visitor lock striping for session start/continue decisions
LOCK_STRIPES = 64


# --- Visitor Registry ---


class VisitorRegistry:
    """Resolves client tokens to durable visitor records."""

    def __init__(self, repo: VisitorRepoPort) -> None:
        self._repo = repo

    def identify(
        self,
        client_token: str | None,
        first_source: SourceCategory,
        now: datetime,
        referrer: str | None = None,
        landing_path: str | None = None,
        user_id: str | None = None,
    ) -> IdentifyResult:
        """
        Return the visitor for a client token, creating it when needed.

        Store errors propagate.
        """
        if is_valid_token(client_token):
            token = normalize_token(client_token)  # type: ignore[arg-type]
            existing = self._repo.get(token)
            if existing is not None:
                self._repo.touch(token, now, user_id)
                return IdentifyResult(token, False, existing.first_source)
        else:
            if client_token:
                logger.debug("Discarding malformed visitor token")
            token = new_token()

        visitor = Visitor(
            visitor_id=token,
            first_source=first_source,
            referrer=referrer,
            landing_path=landing_path,
            user_id=user_id,
            created_at=now,
            last_seen_at=now,
        )
        stored, inserted = self._repo.insert_or_get(visitor)
        if not inserted:
            # Lost a first-contact race; the winner's row stands
            self._repo.touch(token, now, user_id)
        return IdentifyResult(stored.visitor_id, inserted, stored.first_source)


# --- Session Tracker ---


class SessionTracker:
    """
    Session state machine over the session store.

    NO_SESSION/ENDED --page view--> ACTIVE (new session)
    ACTIVE --page view--> ACTIVE (page_count + 1)
    ACTIVE --timeout or end_session--> ENDED
    """

    def __init__(
        self,
        repo: SessionRepoPort,
        attribution: AttributionService | None = None,
        dedupe: DedupeService | None = None,
        config: SessionConfig | None = None,
    ) -> None:
        self._repo = repo
        self._attribution = attribution or AttributionService()
        self._dedupe = dedupe or DedupeService()
        self._config = config or DEFAULT_CONFIG
        self._locks = [threading.Lock() for _ in range(LOCK_STRIPES)]

    def _lock_for(self, visitor_id: str) -> threading.Lock:
        return self._locks[hash(visitor_id) % LOCK_STRIPES]

    def state(self, session: Session | None, now: datetime) -> SessionState:
        return session_state(session, now, self._config.inactivity_timeout)

    def record_page_view(
        self,
        visitor_id: str,
        path: str,
        referrer_info: ReferrerInfo,
        timestamp: datetime,
        user_agent: str | None = None,
        ip: str | None = None,
        user_id: str | None = None,
    ) -> PageViewResult:
        """Attach a page view to the visitor's active session or start a new one."""
        with self._lock_for(visitor_id):
            duplicate = self._dedupe.is_duplicate_navigation(visitor_id, path)
            latest = self._repo.latest_for_visitor(visitor_id)
            state = self.state(latest, timestamp)

            if state == SessionState.ACTIVE and latest is not None:
                if duplicate:
                    return PageViewResult(
                        session_id=latest.session_id,
                        is_new_session=False,
                        source=latest.source,
                        is_duplicate=True,
                    )
                view = self._attribution.attribute(
                    referrer_info.referrer,
                    referrer_info.hint,
                    referrer_info.origin,
                    first_view=False,
                )
                self._repo.touch(latest.session_id, timestamp, user_id)
                self._append(latest.session_id, path, view.referrer, view.source, timestamp, ip, user_agent)
                return PageViewResult(
                    session_id=latest.session_id,
                    is_new_session=False,
                    source=latest.source,
                    view_source=view.source,
                )

            if latest is not None and latest.ended_at is None:
                # Timed out without an explicit end
                self._repo.end(latest.session_id, latest.last_seen_at)

            first = self._attribution.attribute(
                referrer_info.referrer,
                referrer_info.hint,
                referrer_info.origin,
                first_view=True,
            )
            session = self._repo.create(
                Session(
                    session_id=str(uuid.uuid4()),
                    visitor_id=visitor_id,
                    user_id=user_id,
                    source=first.source,
                    landing_path=path,
                    started_at=timestamp,
                    last_seen_at=timestamp,
                    page_count=1,
                    user_agent=user_agent,
                    ip=ip,
                )
            )
            self._append(session.session_id, path, first.referrer, first.source, timestamp, ip, user_agent)
            logger.debug("Started session %s (source=%s)", session.session_id, first.source.value)
            return PageViewResult(
                session_id=session.session_id,
                is_new_session=True,
                source=first.source,
                view_source=first.source,
            )

    def _append(
        self,
        session_id: str,
        path: str,
        referrer: str | None,
        source: SourceCategory,
        timestamp: datetime,
        ip: str | None,
        user_agent: str | None,
    ) -> None:
        self._repo.append_event(
            PageViewEvent(
                session_id=session_id,
                occurred_at=timestamp,
                path=path,
                referrer=referrer,
                source=source,
                ip=ip,
                user_agent=user_agent,
            )
        )

    def current_session(self, visitor_id: str, now: datetime) -> Session | None:
        """The visitor's ACTIVE session, if any."""
        latest = self._repo.latest_for_visitor(visitor_id)
        return latest if self.state(latest, now) == SessionState.ACTIVE else None

    def end_session(self, visitor_id: str, now: datetime) -> str | None:
        """End the visitor's active session. Returns its id, or None if none was active."""
        with self._lock_for(visitor_id):
            latest = self._repo.latest_for_visitor(visitor_id)
            if self.state(latest, now) != SessionState.ACTIVE or latest is None:
                return None
            self._repo.end(latest.session_id, now)
            return latest.session_id


# --- In-Memory Repositories ---


class InMemoryVisitorRepo:
    """Thread-safe in-memory visitor store."""

    def __init__(self) -> None:
        self._rows: dict[str, Visitor] = {}
        self._lock = threading.Lock()

    def get(self, visitor_id: str) -> Visitor | None:
        with self._lock:
            row = self._rows.get(visitor_id)
            return copy(row) if row else None

    def insert_or_get(self, visitor: Visitor) -> tuple[Visitor, bool]:
        with self._lock:
            existing = self._rows.get(visitor.visitor_id)
            if existing is not None:
                return copy(existing), False
            self._rows[visitor.visitor_id] = copy(visitor)
            return copy(visitor), True

    def touch(self, visitor_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        with self._lock:
            row = self._rows.get(visitor_id)
            if row is None:
                return
            row.last_seen_at = seen_at
            if row.user_id is None and user_id:
                row.user_id = user_id

    def count(self) -> int:
        with self._lock:
            return len(self._rows)


class InMemorySessionRepo:
    """Thread-safe in-memory session store."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._events: dict[str, list[PageViewEvent]] = {}
        self._lock = threading.Lock()

    def get(self, session_id: str) -> Session | None:
        with self._lock:
            row = self._sessions.get(session_id)
            return copy(row) if row else None

    def latest_for_visitor(self, visitor_id: str) -> Session | None:
        with self._lock:
            rows = [s for s in self._sessions.values() if s.visitor_id == visitor_id]
            if not rows:
                return None
            return copy(max(rows, key=lambda s: s.started_at))

    def create(self, session: Session) -> Session:
        with self._lock:
            self._sessions[session.session_id] = copy(session)
            self._events.setdefault(session.session_id, [])
            return copy(session)

    def touch(self, session_id: str, seen_at: datetime, user_id: str | None = None) -> None:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is None:
                return
            row.page_count += 1
            row.last_seen_at = seen_at
            if row.user_id is None and user_id:
                row.user_id = user_id

    def end(self, session_id: str, ended_at: datetime) -> None:
        with self._lock:
            row = self._sessions.get(session_id)
            if row is not None and row.ended_at is None:
                row.ended_at = ended_at

    def list_sessions(
        self,
        source: str | None = None,
        user_id: str | None = None,
        visitor_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Session]:
        with self._lock:
            rows = list(self._sessions.values())
        if source:
            rows = [s for s in rows if s.source.value == source]
        if user_id:
            rows = [s for s in rows if s.user_id == user_id]
        if visitor_id:
            rows = [s for s in rows if s.visitor_id == visitor_id]
        rows.sort(key=lambda s: s.started_at, reverse=True)
        return [copy(s) for s in rows[offset : offset + limit]]

    def append_event(self, event: PageViewEvent) -> None:
        with self._lock:
            self._events.setdefault(event.session_id, []).append(event)

    def list_events(self, session_id: str) -> list[PageViewEvent]:
        with self._lock:
            return list(self._events.get(session_id, []))

    def count_events(self, session_id: str) -> int:
        with self._lock:
            return len(self._events.get(session_id, []))

    def count_started_since(self, since: datetime) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if s.started_at >= since)

    def count_active(self, now: datetime, timeout: timedelta) -> int:
        with self._lock:
            return sum(
                1
                for s in self._sessions.values()
                if s.ended_at is None and now - s.last_seen_at <= timeout
            )

    def count_started_by_day(self, since: datetime) -> dict[date, dict[str, int]]:
        counts: dict[date, dict[str, int]] = {}
        with self._lock:
            for s in self._sessions.values():
                if s.started_at < since:
                    continue
                day = counts.setdefault(s.started_at.astimezone(UTC).date(), {})
                day[s.source.value] = day.get(s.source.value, 0) + 1
        return counts


# --- Factories ---


def create_visitor_registry(repo: VisitorRepoPort | None = None) -> VisitorRegistry:
    """Create a VisitorRegistry (in-memory store by default)."""
    return VisitorRegistry(repo or InMemoryVisitorRepo())


def create_session_tracker(
    repo: SessionRepoPort | None = None,
    attribution: AttributionService | None = None,
    dedupe: DedupeService | None = None,
    config: SessionConfig | None = None,
) -> SessionTracker:
    """Create a SessionTracker (in-memory store by default)."""
    return SessionTracker(repo or InMemorySessionRepo(), attribution, dedupe, config)
