"""
Sessions component input/output models.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from blogpulse.core.entities import SourceCategory

# --- Configuration ---


@dataclass(frozen=True)
class SessionConfig:
    """Session lifecycle configuration."""

    inactivity_timeout: timedelta = timedelta(minutes=30)


DEFAULT_CONFIG = SessionConfig()


# --- Input Models ---


@dataclass(frozen=True)
class ReferrerInfo:
    """Attribution inputs of one beacon."""

    referrer: str | None = None
    hint: str | None = None
    origin: str | None = None


# --- Output Models ---


@dataclass(frozen=True)
class IdentifyResult:
    """Outcome of resolving a client token to a visitor."""

    visitor_id: str
    is_new: bool
    first_source: SourceCategory


@dataclass(frozen=True)
class PageViewResult:
    """
    Outcome of recording a page view.

    source is the session's locked source; view_source is the attribution of
    this individual beacon.
    """

    session_id: str
    is_new_session: bool
    source: SourceCategory
    is_duplicate: bool = False
    view_source: SourceCategory | None = None
