from pydantic import BaseModel, Field, model_validator

from blogpulse.components.engagement.models import CTA_TARGETS, SHARE_PLATFORMS

# Every section has defaults so a partial rules.yaml is valid.


class AnalyticsRules(BaseModel):
    site_origin: str | None = None
    session_timeout_minutes: int = Field(default=30, gt=0)
    navigation_dedupe_seconds: int = Field(default=2, ge=0)
    visitor_cookie_days: int = Field(default=30, gt=0)
    unique_visitor_ttl_seconds: int = Field(default=24 * 60 * 60, gt=0)
    scroll_dedupe_ttl_seconds: int = Field(default=6 * 60 * 60, gt=0)


class ScoreWeights(BaseModel):
    engagement_rate: float = Field(default=0.4, ge=0)
    scroll_depth: float = Field(default=0.3, ge=0)
    time_on_page: float = Field(default=0.2, ge=0)
    share_rate: float = Field(default=0.1, ge=0)


class ScoreRules(BaseModel):
    weights: ScoreWeights = Field(default_factory=ScoreWeights)
    time_norm_seconds: float = Field(default=180.0, gt=0)
    share_rate_norm: float = Field(default=0.05, gt=0)
    scale: float = Field(default=100.0, gt=0)


class EngagementRules(BaseModel):
    max_time_on_page_seconds: int = Field(default=3600, gt=0)
    leaderboard_size: int = Field(default=10, gt=0)
    score: ScoreRules = Field(default_factory=ScoreRules)
    share_platforms: list[str] = Field(default_factory=lambda: sorted(SHARE_PLATFORMS))
    cta_targets: list[str] = Field(default_factory=lambda: sorted(CTA_TARGETS))


class CacheRules(BaseModel):
    default_ttl_seconds: int = Field(default=60, gt=0)
    max_entries: int = Field(default=1000, gt=0)


class RateLimitWindow(BaseModel):
    window_seconds: int = Field(gt=0)
    max_requests: int = Field(gt=0)
    silent: bool = False


class RouteClassRule(BaseModel):
    prefix: str
    route_class: str


def _default_classes() -> dict[str, RateLimitWindow]:
    return {
        "tracking": RateLimitWindow(window_seconds=900, max_requests=500, silent=True),
        "admin": RateLimitWindow(window_seconds=900, max_requests=30),
        "auth_password": RateLimitWindow(window_seconds=1800, max_requests=5),
        "auth_general": RateLimitWindow(window_seconds=1800, max_requests=15),
        "subscribe": RateLimitWindow(window_seconds=900, max_requests=3),
        "api": RateLimitWindow(window_seconds=900, max_requests=100),
        "global": RateLimitWindow(window_seconds=900, max_requests=200),
    }


def _default_routes() -> list[RouteClassRule]:
    return [
        RouteClassRule(prefix="/api/track", route_class="tracking"),
        RouteClassRule(prefix="/api/admin", route_class="admin"),
        RouteClassRule(prefix="/api/auth/login", route_class="auth_password"),
        RouteClassRule(prefix="/api/auth", route_class="auth_general"),
        RouteClassRule(prefix="/api/subscribe", route_class="subscribe"),
        RouteClassRule(prefix="/api", route_class="api"),
    ]


class RateLimitRules(BaseModel):
    enabled: bool = False
    default_class: str = "global"
    exempt_paths: list[str] = Field(default_factory=lambda: ["/health"])
    classes: dict[str, RateLimitWindow] = Field(default_factory=_default_classes)
    routes: list[RouteClassRule] = Field(default_factory=_default_routes)

    @model_validator(mode="after")
    def check_class_references(self) -> "RateLimitRules":
        if self.default_class not in self.classes:
            raise ValueError(f"default_class {self.default_class!r} is not defined in classes")
        unknown = sorted({r.route_class for r in self.routes} - set(self.classes))
        if unknown:
            raise ValueError(f"routes reference undefined classes: {unknown}")
        return self


class OpsRules(BaseModel):
    data_dir_required: bool = False
    required_env: list[str] = Field(default_factory=list)


class Rules(BaseModel):
    analytics: AnalyticsRules = Field(default_factory=AnalyticsRules)
    engagement: EngagementRules = Field(default_factory=EngagementRules)
    cache: CacheRules = Field(default_factory=CacheRules)
    rate_limits: RateLimitRules = Field(default_factory=RateLimitRules)
    ops: OpsRules = Field(default_factory=OpsRules)
