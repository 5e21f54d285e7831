"""
Sessions component - visitor deduplication and session lifecycle.
"""

from ._impl import (
    InMemorySessionRepo,
    InMemoryVisitorRepo,
    SessionTracker,
    VisitorRegistry,
    create_session_tracker,
    create_visitor_registry,
)
from .component import (
    is_valid_token,
    new_token,
    normalize_token,
    session_state,
)
from .models import (
    IdentifyResult,
    PageViewResult,
    ReferrerInfo,
    SessionConfig,
)
from .ports import (
    SessionRepoPort,
    VisitorRepoPort,
)

__all__ = [
    # Services
    "VisitorRegistry",
    "SessionTracker",
    "create_visitor_registry",
    "create_session_tracker",
    # Pure functions
    "session_state",
    "is_valid_token",
    "normalize_token",
    "new_token",
    # Models
    "IdentifyResult",
    "PageViewResult",
    "ReferrerInfo",
    "SessionConfig",
    # Ports
    "SessionRepoPort",
    "VisitorRepoPort",
    # In-memory stores
    "InMemorySessionRepo",
    "InMemoryVisitorRepo",
]
