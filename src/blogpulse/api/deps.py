import logging
import os
from datetime import timedelta
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer

from blogpulse.adapters.clock import SystemClock
from blogpulse.adapters.sqlite_db import (
    SQLiteEngagementStatRepo,
    SQLitePostCatalog,
    SQLiteSessionRepo,
    SQLiteTrafficRepo,
    SQLiteVisitorRepo,
)
from blogpulse.api.auth_utils import decode_access_token, is_admin
from blogpulse.app_shell.rate_limit import RateLimiter
from blogpulse.components.analytics import IngestionConfig, TrackingPipeline
from blogpulse.components.cache import AnalyticsCache, CacheConfig
from blogpulse.components.engagement import EngagementAggregator, EngagementConfig, ScoreConfig
from blogpulse.components.sessions import SessionConfig, SessionTracker, VisitorRegistry
from blogpulse.core.ports.db import (
    EngagementStatRepoPort,
    PostCatalogPort,
    SessionRepoPort,
    TrafficRepoPort,
    VisitorRepoPort,
)
from blogpulse.core.services.analytics_attrib import AttributionConfig, AttributionService
from blogpulse.core.services.analytics_dedupe import DedupeConfig, DedupeService
from blogpulse.rules.loader import load_rules
from blogpulse.rules.models import Rules

logger = logging.getLogger(__name__)


def _env_flag(name: str) -> bool | None:
    """Parse a true/false environment variable; None when unset or unrecognized."""
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    return None


# --- Settings ---
class Settings:
    def __init__(self) -> None:
        self.base_dir = Path(os.getcwd())
        self.data_dir = Path(os.environ.get("BLOGPULSE_DATA_DIR", "./data"))
        self.db_path = str(self.data_dir / "blogpulse.db")
        self.rules_path = Path(os.environ.get("BLOGPULSE_RULES_PATH", str(self.base_dir / "rules.yaml")))
        self.site_origin = os.environ.get("BLOGPULSE_SITE_ORIGIN")
        self.rate_limit_enabled = _env_flag("ENABLE_RATE_LIMIT")


@lru_cache
def get_settings() -> Settings:
    return Settings()


# --- Rules ---
@lru_cache
def get_rules() -> Rules:
    return load_rules(get_settings().rules_path)


# --- Configuration mapping ---
def attribution_config(rules: Rules, settings: Settings) -> AttributionConfig:
    return AttributionConfig(site_origin=settings.site_origin or rules.analytics.site_origin)


def dedupe_config(rules: Rules) -> DedupeConfig:
    a = rules.analytics
    return DedupeConfig(
        navigation_window_seconds=a.navigation_dedupe_seconds,
        scroll_ttl_seconds=a.scroll_dedupe_ttl_seconds,
        unique_visitor_ttl_seconds=a.unique_visitor_ttl_seconds,
    )


def session_config(rules: Rules) -> SessionConfig:
    return SessionConfig(inactivity_timeout=timedelta(minutes=rules.analytics.session_timeout_minutes))


def engagement_config(rules: Rules) -> EngagementConfig:
    e = rules.engagement
    w = e.score.weights
    return EngagementConfig(
        max_time_on_page_seconds=e.max_time_on_page_seconds,
        leaderboard_size=e.leaderboard_size,
        score=ScoreConfig(
            w_engagement_rate=w.engagement_rate,
            w_scroll_depth=w.scroll_depth,
            w_time_on_page=w.time_on_page,
            w_share_rate=w.share_rate,
            time_norm_seconds=e.score.time_norm_seconds,
            share_rate_norm=e.score.share_rate_norm,
            scale=e.score.scale,
        ),
        share_platforms=frozenset(p.strip().lower() for p in e.share_platforms),
        cta_targets=frozenset(t.strip().lower() for t in e.cta_targets),
    )


def cache_config(rules: Rules) -> CacheConfig:
    return CacheConfig(
        default_ttl_seconds=rules.cache.default_ttl_seconds,
        max_entries=rules.cache.max_entries,
    )


# --- Repos ---
def get_visitor_repo(settings: Settings = Depends(get_settings)) -> VisitorRepoPort:
    return SQLiteVisitorRepo(settings.db_path)


def get_session_repo(settings: Settings = Depends(get_settings)) -> SessionRepoPort:
    return SQLiteSessionRepo(settings.db_path)


def get_traffic_repo(settings: Settings = Depends(get_settings)) -> TrafficRepoPort:
    return SQLiteTrafficRepo(settings.db_path)


def get_engagement_repo(settings: Settings = Depends(get_settings)) -> EngagementStatRepoPort:
    return SQLiteEngagementStatRepo(settings.db_path)


def get_post_catalog(settings: Settings = Depends(get_settings)) -> PostCatalogPort:
    return SQLitePostCatalog(settings.db_path)


# --- Process-wide state ---

# Time adapter for deterministic time operations
_clock_instance: SystemClock | None = None


def get_clock() -> SystemClock:
    """Get clock singleton."""
    global _clock_instance
    if _clock_instance is None:
        _clock_instance = SystemClock()
    return _clock_instance


# Dedupe keys live in process memory and are shared by every request
_dedupe_instance: DedupeService | None = None


def get_dedupe_service() -> DedupeService:
    """Get dedupe service singleton."""
    global _dedupe_instance
    if _dedupe_instance is None:
        _dedupe_instance = DedupeService(config=dedupe_config(get_rules()))
    return _dedupe_instance


_rate_limiter_instance: RateLimiter | None = None


def get_rate_limiter() -> RateLimiter:
    """Get rate limiter singleton (ENABLE_RATE_LIMIT overrides rules)."""
    global _rate_limiter_instance
    if _rate_limiter_instance is None:
        _rate_limiter_instance = RateLimiter(
            get_rules().rate_limits,
            time_port=get_clock(),
            enabled=get_settings().rate_limit_enabled,
        )
    return _rate_limiter_instance


def get_cache(request: Request) -> AnalyticsCache:
    """The application's analytics cache (created in the lifespan)."""
    cache = getattr(request.app.state, "analytics_cache", None)
    if cache is None:
        # Lifespan did not run (bare TestClient); attach one to this app
        cache = AnalyticsCache(cache_config(get_rules()), get_clock())
        request.app.state.analytics_cache = cache
    return cache


# --- Component Services ---
def get_attribution_service(
    rules: Rules = Depends(get_rules),
    settings: Settings = Depends(get_settings),
) -> AttributionService:
    return AttributionService(attribution_config(rules, settings))


def get_visitor_registry(repo: VisitorRepoPort = Depends(get_visitor_repo)) -> VisitorRegistry:
    return VisitorRegistry(repo)


def get_session_tracker(
    repo: SessionRepoPort = Depends(get_session_repo),
    attribution: AttributionService = Depends(get_attribution_service),
    dedupe: DedupeService = Depends(get_dedupe_service),
    rules: Rules = Depends(get_rules),
) -> SessionTracker:
    return SessionTracker(repo, attribution, dedupe, session_config(rules))


def get_engagement_aggregator(
    repo: EngagementStatRepoPort = Depends(get_engagement_repo),
    catalog: PostCatalogPort = Depends(get_post_catalog),
    dedupe: DedupeService = Depends(get_dedupe_service),
    cache: AnalyticsCache = Depends(get_cache),
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> EngagementAggregator:
    return EngagementAggregator(repo, catalog, dedupe, cache, engagement_config(rules), clock)


def get_tracking_pipeline(
    registry: VisitorRegistry = Depends(get_visitor_registry),
    tracker: SessionTracker = Depends(get_session_tracker),
    traffic: TrafficRepoPort = Depends(get_traffic_repo),
    attribution: AttributionService = Depends(get_attribution_service),
    aggregator: EngagementAggregator = Depends(get_engagement_aggregator),
    cache: AnalyticsCache = Depends(get_cache),
    settings: Settings = Depends(get_settings),
    rules: Rules = Depends(get_rules),
    clock: SystemClock = Depends(get_clock),
) -> TrackingPipeline:
    return TrackingPipeline(
        registry=registry,
        tracker=tracker,
        traffic=traffic,
        attribution=attribution,
        aggregator=aggregator,
        cache=cache,
        config=IngestionConfig(site_origin=settings.site_origin or rules.analytics.site_origin),
        time_port=clock,
    )


# --- Request shaping ---
def get_client_key(request: Request) -> str:
    """Extract client key from request for rate limiting."""
    # Use X-Forwarded-For if behind proxy, otherwise client host
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def enforce_rate_limit(
    request: Request,
    limiter: RateLimiter = Depends(get_rate_limiter),
) -> None:
    """App-wide gate; raises RateLimitExceeded (rendered by main's handler)."""
    limiter.check_request(request.url.path, get_client_key(request))


# --- Auth ---
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def _token_from_request(request: Request, token: str | None) -> str | None:
    # Cookie first (HttpOnly), then the Authorization header
    cookie_token = request.cookies.get("access_token")
    if cookie_token and cookie_token.startswith("Bearer "):
        return cookie_token.split(" ", 1)[1]
    return token


def require_admin(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> dict[str, Any]:
    """Gate for admin routes: a valid signed token carrying role=admin."""
    token = _token_from_request(request, token)
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )

    payload = decode_access_token(token)
    if not payload:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not is_admin(payload):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )

    return payload


def get_optional_user_id(
    request: Request,
    token: Annotated[str | None, Depends(oauth2_scheme)],
) -> str | None:
    """Signed-in user id for visitor linking; None for anonymous traffic."""
    token = _token_from_request(request, token)
    if not token:
        return None
    payload = decode_access_token(token)
    if not payload:
        return None
    sub = payload.get("sub")
    return sub if isinstance(sub, str) else None
