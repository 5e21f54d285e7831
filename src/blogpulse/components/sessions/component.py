"""
Sessions component - visitor identity and session state.

Pure helpers shared by the registry, the tracker and the admin views.

Invariants:
- Session state is derived from stored timestamps, never stored
- A visitor token is a canonical UUID string
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta

from blogpulse.core.entities import Session, SessionState

from .models import DEFAULT_CONFIG


def session_state(
    session: Session | None,
    now: datetime,
    timeout: timedelta = DEFAULT_CONFIG.inactivity_timeout,
) -> SessionState:
    """
    Derive the lifecycle state of a session.

    ENDED when explicitly ended or idle for longer than the timeout.
    """
    if session is None:
        return SessionState.NO_SESSION
    if session.ended_at is not None:
        return SessionState.ENDED
    if now - session.last_seen_at > timeout:
        return SessionState.ENDED
    return SessionState.ACTIVE


def is_valid_token(token: str | None) -> bool:
    """Check that a client token is a UUID."""
    if not token or not isinstance(token, str) or len(token) > 64:
        return False
    try:
        uuid.UUID(token)
    except ValueError:
        return False
    return True


def normalize_token(token: str) -> str:
    """Canonical lowercase hyphenated form."""
    return str(uuid.UUID(token))


def new_token() -> str:
    return str(uuid.uuid4())
