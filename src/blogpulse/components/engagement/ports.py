"""
Engagement component port definitions.
"""

from __future__ import annotations

from typing import Protocol

from blogpulse.core.ports.db import EngagementStatRepoPort, PostCatalogPort
from blogpulse.core.ports.time import TimePort


class CacheInvalidatorPort(Protocol):
    """Read cache that must forget derived views after a write."""

    def invalidate(self, key_or_pattern: str) -> int:
        """Drop matching keys. Returns count removed."""
        ...


__all__ = [
    "CacheInvalidatorPort",
    "EngagementStatRepoPort",
    "PostCatalogPort",
    "TimePort",
]
