from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from blogpulse.adapters.sqlite.migrator import SQLiteMigrator
from blogpulse.components.analytics import InMemoryTrafficRepo, TrackingPipeline
from blogpulse.components.cache import AnalyticsCache
from blogpulse.components.engagement import (
    EngagementAggregator,
    InMemoryEngagementStatRepo,
    InMemoryPostCatalog,
)
from blogpulse.components.sessions import (
    InMemorySessionRepo,
    InMemoryVisitorRepo,
    SessionTracker,
    VisitorRegistry,
)
from blogpulse.core.services.analytics_attrib import AttributionService
from blogpulse.core.services.analytics_dedupe import DedupeService, InMemoryDedupeStore

T0 = datetime(2026, 3, 2, 9, 0, 0, tzinfo=UTC)


class FakeTimePort:
    """Controllable clock shared by every component under test."""

    def __init__(self, now: datetime = T0) -> None:
        self._now = now

    def now_utc(self) -> datetime:
        return self._now

    def today_utc(self):
        return self._now.date()

    def advance(self, **kwargs: float) -> datetime:
        self._now = self._now + timedelta(**kwargs)
        return self._now

    def set(self, now: datetime) -> None:
        self._now = now


@pytest.fixture
def clock() -> FakeTimePort:
    return FakeTimePort()


@pytest.fixture
def dedupe(clock: FakeTimePort) -> DedupeService:
    return DedupeService(store=InMemoryDedupeStore(clock))


@pytest.fixture
def cache(clock: FakeTimePort) -> AnalyticsCache:
    return AnalyticsCache(time_port=clock)


@pytest.fixture
def visitor_repo() -> InMemoryVisitorRepo:
    return InMemoryVisitorRepo()


@pytest.fixture
def session_repo() -> InMemorySessionRepo:
    return InMemorySessionRepo()


@pytest.fixture
def traffic_repo() -> InMemoryTrafficRepo:
    return InMemoryTrafficRepo()


@pytest.fixture
def stat_repo() -> InMemoryEngagementStatRepo:
    return InMemoryEngagementStatRepo()


@pytest.fixture
def catalog() -> InMemoryPostCatalog:
    return InMemoryPostCatalog({"post-1": "First Post", "post-2": "Second Post"})


@pytest.fixture
def attribution() -> AttributionService:
    return AttributionService()


@pytest.fixture
def registry(visitor_repo: InMemoryVisitorRepo) -> VisitorRegistry:
    return VisitorRegistry(visitor_repo)


@pytest.fixture
def tracker(
    session_repo: InMemorySessionRepo,
    attribution: AttributionService,
    dedupe: DedupeService,
) -> SessionTracker:
    return SessionTracker(session_repo, attribution, dedupe)


@pytest.fixture
def aggregator(
    stat_repo: InMemoryEngagementStatRepo,
    catalog: InMemoryPostCatalog,
    dedupe: DedupeService,
    cache: AnalyticsCache,
    clock: FakeTimePort,
) -> EngagementAggregator:
    return EngagementAggregator(stat_repo, catalog, dedupe, cache, time_port=clock)


@pytest.fixture
def pipeline(
    registry: VisitorRegistry,
    tracker: SessionTracker,
    traffic_repo: InMemoryTrafficRepo,
    attribution: AttributionService,
    aggregator: EngagementAggregator,
    cache: AnalyticsCache,
    clock: FakeTimePort,
) -> TrackingPipeline:
    return TrackingPipeline(
        registry=registry,
        tracker=tracker,
        traffic=traffic_repo,
        attribution=attribution,
        aggregator=aggregator,
        cache=cache,
        time_port=clock,
    )


@pytest.fixture
def db_path(tmp_path) -> str:
    """Migrated SQLite database file."""
    path = str(tmp_path / "blogpulse.db")
    SQLiteMigrator(path).run_migrations()
    return path
