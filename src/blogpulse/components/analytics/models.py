"""
Analytics component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from blogpulse.core.entities import SourceCategory

# --- Configuration ---


@dataclass(frozen=True)
class IngestionConfig:
    """Beacon ingestion configuration."""

    enabled: bool = True

    # Truncation limits for untrusted strings
    max_path_length: int = 512
    max_referrer_length: int = 2048
    max_user_agent_length: int = 512
    max_ip_length: int = 128
    max_hint_length: int = 64

    site_origin: str | None = None


DEFAULT_CONFIG = IngestionConfig()

# Cache topics refreshed by every accepted beacon
INVALIDATED_TOPICS: tuple[str, ...] = ("traffic", "sessions", "dashboard")

# Engagement payload keys that only the server may set
SERVER_PAYLOAD_KEYS: tuple[str, ...] = ("visitor_id", "session_id", "source")


# --- Input Models ---


@dataclass(frozen=True)
class Beacon:
    """A sanitized page view beacon."""

    path: str
    referrer: str | None = None
    hint: str | None = None
    visitor_token: str | None = None
    user_agent: str | None = None
    ip: str | None = None
    user_id: str | None = None
    origin: str | None = None
    timestamp: datetime | None = None


@dataclass(frozen=True)
class EngagementBeacon:
    """A blog engagement event from the browser."""

    post_id: str
    event_type: str
    event_data: dict[str, Any] = field(default_factory=dict)
    visitor_token: str | None = None
    timestamp: datetime | None = None


# --- Output Models ---


@dataclass(frozen=True)
class TrackResult:
    """
    Outcome of a tracked beacon.

    failed_stages lists pipeline stages that raised and were skipped. The
    beacon is acknowledged either way.
    """

    visitor_id: str | None
    session_id: str | None
    is_new_visitor: bool = False
    is_new_session: bool = False
    source: SourceCategory | None = None
    first_source: SourceCategory | None = None
    is_duplicate: bool = False
    failed_stages: tuple[str, ...] = ()

    @property
    def success(self) -> bool:
        return not self.failed_stages
