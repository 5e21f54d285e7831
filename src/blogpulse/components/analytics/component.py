"""
Analytics component - beacon ingestion.

Sanitizes untrusted beacon fields and feeds them through the tracking
pipeline (visitor -> session -> traffic log -> cache invalidation).

Invariants:
- Ingestion never fails the request: stage errors are logged and skipped
- Untrusted strings are truncated before they reach a store
- The body referrer wins over the Referer header
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any

from .models import DEFAULT_CONFIG, Beacon, EngagementBeacon, IngestionConfig, TrackResult

if TYPE_CHECKING:
    from ._impl import TrackingPipeline


# --- Pure Functions ---


def safe_str(value: Any, max_length: int) -> str | None:
    """Stringify, strip and truncate; None for empty or non-scalar input."""
    if value is None or isinstance(value, dict | list | tuple | set):
        return None
    text = str(value).strip()
    if not text:
        return None
    return text[:max_length]


def build_beacon(
    path: Any,
    body_referrer: Any = None,
    header_referrer: Any = None,
    hint: Any = None,
    visitor_token: Any = None,
    user_agent: Any = None,
    ip: Any = None,
    user_id: Any = None,
    origin: str | None = None,
    timestamp: datetime | None = None,
    config: IngestionConfig = DEFAULT_CONFIG,
) -> Beacon:
    """Assemble a sanitized Beacon from raw request values."""
    referrer = body_referrer if body_referrer is not None else header_referrer
    return Beacon(
        path=safe_str(path, config.max_path_length) or "/",
        referrer=safe_str(referrer, config.max_referrer_length),
        hint=safe_str(hint, config.max_hint_length),
        visitor_token=safe_str(visitor_token, 64),
        user_agent=safe_str(user_agent, config.max_user_agent_length),
        ip=safe_str(ip, config.max_ip_length),
        user_id=safe_str(user_id, 64),
        origin=origin or config.site_origin,
        timestamp=timestamp,
    )


# --- Component Entry Points ---


def run_track(beacon: Beacon, *, pipeline: TrackingPipeline) -> TrackResult:
    """Track one page view beacon. Never raises."""
    return pipeline.track(beacon)


def run_track_engagement(beacon: EngagementBeacon, *, pipeline: TrackingPipeline) -> bool:
    """Record one engagement event. Never raises."""
    return pipeline.track_engagement(beacon)
