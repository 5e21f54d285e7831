"""
Sessions component port definitions.
"""

from __future__ import annotations

from blogpulse.core.ports.db import SessionRepoPort, VisitorRepoPort
from blogpulse.core.ports.time import TimePort
from blogpulse.core.services.analytics_dedupe import DedupeStorePort

__all__ = [
    "DedupeStorePort",
    "SessionRepoPort",
    "TimePort",
    "VisitorRepoPort",
]
