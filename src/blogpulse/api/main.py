import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from blogpulse.adapters.sqlite.migrator import SQLiteMigrator
from blogpulse.api.deps import (
    cache_config,
    enforce_rate_limit,
    get_clock,
    get_rules,
    get_settings,
    require_admin,
)
from blogpulse.app_shell.config import validate_ops_rules
from blogpulse.app_shell.rate_limit import RateLimitExceeded
from blogpulse.components.cache import create_analytics_cache

logger = logging.getLogger(__name__)

TRACK_PREFIX = "/api/track"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    # Load rules and validate on startup (fail-fast)
    try:
        rules = get_rules()
    except Exception as e:
        logger.critical("Rules load failed: %s", e)
        sys.exit(1)
    logger.info("Rules loaded from %s", settings.rules_path)

    validate_ops_rules(rules, settings.data_dir)
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    SQLiteMigrator(settings.db_path).run_migrations()

    app.state.analytics_cache = create_analytics_cache(cache_config(rules), get_clock())

    yield

    app.state.analytics_cache.close()


app = FastAPI(
    title="blogpulse API",
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    dependencies=[Depends(enforce_rate_limit)],
)


# --- Error Handlers ---
@app.exception_handler(RateLimitExceeded)
async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> Response:
    if exc.silent:
        # Beacons over budget are dropped without telling the browser
        return JSONResponse({"success": True})
    return JSONResponse(
        status_code=429,
        content={"detail": "Rate limit exceeded", "route_class": exc.route_class},
        headers={"Retry-After": str(exc.retry_after)},
    )


@app.exception_handler(RequestValidationError)
async def validation_handler(request: Request, exc: RequestValidationError) -> Response:
    # Tracking never reports malformed beacons back to the page
    if request.url.path.startswith(TRACK_PREFIX):
        logger.info("Dropped malformed beacon for %s", request.url.path)
        return JSONResponse({"success": True})
    return await request_validation_exception_handler(request, exc)


# --- Routers ---
from blogpulse.api.routes import (  # noqa: E402
    admin_blog_analytics,
    admin_dashboard,
    admin_sessions,
    admin_traffic,
    track,
)

admin_only = [Depends(require_admin)]

app.include_router(track.router, prefix=TRACK_PREFIX, tags=["Tracking"])
app.include_router(
    admin_sessions.router, prefix="/api/admin/sessions", tags=["Admin Sessions"], dependencies=admin_only
)
app.include_router(
    admin_traffic.router, prefix="/api/admin/traffic", tags=["Admin Traffic"], dependencies=admin_only
)
app.include_router(
    admin_dashboard.router, prefix="/api/admin/dashboard", tags=["Admin Dashboard"], dependencies=admin_only
)
app.include_router(
    admin_blog_analytics.router,
    prefix="/api/admin/blog-analytics",
    tags=["Admin Blog Analytics"],
    dependencies=admin_only,
)


# CORS (Allow Frontend)
origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
def health_check() -> dict[str, Any]:
    """Health check endpoint."""
    return {"status": "ok", "service": "blogpulse"}
