"""
Shared setup for API tests.

Runs the real application with in-memory stores and a controllable clock
swapped in through dependency overrides. The lifespan is not entered, so
no database file is created.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from blogpulse.api import deps
from blogpulse.api.auth_utils import create_admin_token
from blogpulse.api.main import app
from blogpulse.app_shell.rate_limit import RateLimiter
from blogpulse.rules.models import Rules


@pytest.fixture
def rules() -> Rules:
    return Rules()


@pytest.fixture
def limiter(rules, clock) -> RateLimiter:
    return RateLimiter(rules.rate_limits, time_port=clock, enabled=False)


@pytest.fixture
def client(
    rules,
    limiter,
    clock,
    dedupe,
    cache,
    visitor_repo,
    session_repo,
    traffic_repo,
    stat_repo,
    catalog,
):
    overrides = {
        deps.get_rules: lambda: rules,
        deps.get_clock: lambda: clock,
        deps.get_dedupe_service: lambda: dedupe,
        deps.get_rate_limiter: lambda: limiter,
        deps.get_visitor_repo: lambda: visitor_repo,
        deps.get_session_repo: lambda: session_repo,
        deps.get_traffic_repo: lambda: traffic_repo,
        deps.get_engagement_repo: lambda: stat_repo,
        deps.get_post_catalog: lambda: catalog,
    }
    app.dependency_overrides.update(overrides)
    app.state.analytics_cache = cache

    yield TestClient(app)

    app.dependency_overrides.clear()
    del app.state.analytics_cache


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {create_admin_token('admin-1', timedelta(minutes=5))}"}
