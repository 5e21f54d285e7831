"""
TrackingPipeline - fire-and-forget beacon processing.

Stages, in order:
1. visitor: resolve or create the visitor for the client token
2. session: continue or start the visitor's session, append the page view
3. traffic: append the flat traffic log row (also the fallback record)
4. cache: invalidate the traffic, sessions and dashboard views

Each stage is contained: an exception is logged, the stage is recorded in
TrackResult.failed_stages and the remaining stages still run where their
inputs exist. The caller always acknowledges the beacon.
"""

from __future__ import annotations

import logging
import threading
from collections import Counter
from datetime import UTC, datetime

from blogpulse.components.engagement import EngagementAggregator
from blogpulse.components.sessions import (
    PageViewResult,
    ReferrerInfo,
    SessionTracker,
    VisitorRegistry,
    is_valid_token,
    normalize_token,
)
from blogpulse.core.entities import TrafficEvent
from blogpulse.core.services.analytics_attrib import AttributionService

from .models import (
    DEFAULT_CONFIG,
    INVALIDATED_TOPICS,
    SERVER_PAYLOAD_KEYS,
    Beacon,
    EngagementBeacon,
    IngestionConfig,
    TrackResult,
)
from .ports import CacheTopicPort, TimePort, TrafficRepoPort

logger = logging.getLogger(__name__)


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


class TrackingPipeline:
    """Beacon ingestion with per-stage error containment."""

    def __init__(
        self,
        registry: VisitorRegistry,
        tracker: SessionTracker,
        traffic: TrafficRepoPort,
        attribution: AttributionService | None = None,
        aggregator: EngagementAggregator | None = None,
        cache: CacheTopicPort | None = None,
        config: IngestionConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._registry = registry
        self._tracker = tracker
        self._traffic = traffic
        self._attribution = attribution or AttributionService()
        self._aggregator = aggregator
        self._cache = cache
        self._config = config or DEFAULT_CONFIG
        self._time = time_port or DefaultTimePort()

    def track(self, beacon: Beacon) -> TrackResult:
        """Process a page view beacon. Never raises."""
        if not self._config.enabled:
            return TrackResult(visitor_id=None, session_id=None)

        now = beacon.timestamp or self._time.now_utc()
        failed: list[str] = []

        # Attribution as a session opener; decides the first_source of new visitors
        opener = self._attribution.attribute(beacon.referrer, beacon.hint, beacon.origin, first_view=True)

        # 1. Visitor
        visitor_id: str | None = None
        is_new_visitor = False
        first_source = None
        try:
            identity = self._registry.identify(
                beacon.visitor_token,
                opener.source,
                now,
                referrer=opener.referrer,
                landing_path=beacon.path,
                user_id=beacon.user_id,
            )
            visitor_id = identity.visitor_id
            is_new_visitor = identity.is_new
            first_source = identity.first_source
        except Exception:
            logger.exception("Tracking stage 'visitor' failed")
            failed.append("visitor")
            # Keep the client's token so the next beacon can retry
            if is_valid_token(beacon.visitor_token):
                visitor_id = normalize_token(beacon.visitor_token)  # type: ignore[arg-type]

        # 2. Session
        page_view: PageViewResult | None = None
        if visitor_id is not None and "visitor" not in failed:
            try:
                page_view = self._tracker.record_page_view(
                    visitor_id,
                    beacon.path,
                    ReferrerInfo(beacon.referrer, beacon.hint, beacon.origin),
                    now,
                    user_agent=beacon.user_agent,
                    ip=beacon.ip,
                    user_id=beacon.user_id,
                )
            except Exception:
                logger.exception("Tracking stage 'session' failed")
                failed.append("session")

        if page_view is not None and page_view.is_duplicate:
            logger.debug("Collapsed duplicate navigation to %s", beacon.path)
            return TrackResult(
                visitor_id=visitor_id,
                session_id=page_view.session_id,
                source=page_view.source,
                first_source=first_source,
                is_duplicate=True,
            )

        view_source = opener.source
        if page_view is not None and page_view.view_source is not None:
            view_source = page_view.view_source

        # 3. Traffic log
        try:
            self._traffic.append(
                TrafficEvent(
                    occurred_at=now,
                    source=view_source,
                    referrer=beacon.referrer,
                    path=beacon.path,
                    user_agent=beacon.user_agent,
                    ip=beacon.ip,
                )
            )
        except Exception:
            logger.exception("Tracking stage 'traffic' failed")
            failed.append("traffic")

        # 4. Cache
        self._invalidate(failed)

        if failed:
            logger.warning("Beacon for %s acknowledged with failed stages: %s", beacon.path, ", ".join(failed))

        return TrackResult(
            visitor_id=visitor_id,
            session_id=page_view.session_id if page_view else None,
            is_new_visitor=is_new_visitor,
            is_new_session=page_view.is_new_session if page_view else False,
            source=page_view.source if page_view else view_source,
            first_source=first_source,
            failed_stages=tuple(failed),
        )

    def _invalidate(self, failed: list[str]) -> None:
        if self._cache is None:
            return
        try:
            for topic in INVALIDATED_TOPICS:
                self._cache.invalidate_topic(topic)
        except Exception:
            logger.exception("Tracking stage 'cache' failed")
            failed.append("cache")

    def end_session(self, visitor_token: str | None, now: datetime | None = None) -> str | None:
        """End the visitor's active session. Never raises."""
        if not is_valid_token(visitor_token):
            return None
        now = now or self._time.now_utc()
        try:
            session_id = self._tracker.end_session(normalize_token(visitor_token), now)  # type: ignore[arg-type]
        except Exception:
            logger.exception("Ending session failed")
            return None
        if session_id is not None:
            failed: list[str] = []
            self._invalidate(failed)
        return session_id

    def track_engagement(self, beacon: EngagementBeacon) -> bool:
        """
        Record a blog engagement event. Never raises.

        The visitor and its active session are attached to the payload so
        the aggregator can count unique visitors, dedupe scroll checkpoints
        per view and break views down by traffic source. Identity keys sent
        by the client are discarded; only `view_id` is taken from the client.
        """
        if self._aggregator is None:
            return False

        now = beacon.timestamp or self._time.now_utc()
        payload = dict(beacon.event_data) if isinstance(beacon.event_data, dict) else {}
        for key in SERVER_PAYLOAD_KEYS:
            payload.pop(key, None)

        try:
            if is_valid_token(beacon.visitor_token):
                visitor_id = normalize_token(beacon.visitor_token)  # type: ignore[arg-type]
                payload["visitor_id"] = visitor_id
                session = self._tracker.current_session(visitor_id, now)
                if session is not None:
                    payload["session_id"] = session.session_id
                    payload["source"] = session.source.value
        except Exception:
            logger.warning("Session lookup failed for engagement event", exc_info=True)

        try:
            return self._aggregator.record_event(beacon.post_id, beacon.event_type, payload, now)
        except Exception:
            logger.exception("Engagement event %s for post %s failed", beacon.event_type, beacon.post_id)
            return False


# --- In-Memory Traffic Log ---


class InMemoryTrafficRepo:
    """Thread-safe in-memory traffic log."""

    def __init__(self) -> None:
        self._events: list[TrafficEvent] = []
        self._lock = threading.Lock()

    def append(self, event: TrafficEvent) -> None:
        with self._lock:
            stored = event.model_copy(update={"id": len(self._events) + 1})
            self._events.append(stored)

    def _since(self, since: datetime) -> list[TrafficEvent]:
        with self._lock:
            return [e for e in self._events if e.occurred_at >= since]

    def count_by_source(self, since: datetime) -> dict[str, int]:
        counts = Counter(e.source.value for e in self._since(since))
        return dict(counts)

    def top_referrers(
        self,
        since: datetime,
        source: str = "other",
        limit: int = 5,
    ) -> list[tuple[str | None, int]]:
        counts = Counter(e.referrer or None for e in self._since(since) if e.source.value == source)
        return sorted(counts.items(), key=lambda kv: (-kv[1], kv[0] or ""))[:limit]

    def list_events(
        self,
        since: datetime,
        source: str | None = None,
        ref: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[TrafficEvent]:
        rows = self._since(since)
        if source:
            rows = [e for e in rows if e.source.value == source]
        if ref:
            needle = ref.lower()
            rows = [e for e in rows if e.referrer and needle in e.referrer.lower()]
        rows.sort(key=lambda e: (e.occurred_at, e.id or 0), reverse=True)
        return rows[offset : offset + limit]


# --- Factory ---


def create_tracking_pipeline(
    registry: VisitorRegistry,
    tracker: SessionTracker,
    traffic: TrafficRepoPort,
    attribution: AttributionService | None = None,
    aggregator: EngagementAggregator | None = None,
    cache: CacheTopicPort | None = None,
    config: IngestionConfig | None = None,
    time_port: TimePort | None = None,
) -> TrackingPipeline:
    """Create a TrackingPipeline."""
    return TrackingPipeline(
        registry=registry,
        tracker=tracker,
        traffic=traffic,
        attribution=attribution,
        aggregator=aggregator,
        cache=cache,
        config=config,
        time_port=time_port,
    )
