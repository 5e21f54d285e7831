"""
Analytics component port definitions.
"""

from __future__ import annotations

from typing import Protocol

from blogpulse.core.ports.db import TrafficRepoPort
from blogpulse.core.ports.time import TimePort


class CacheTopicPort(Protocol):
    """Read cache invalidated by topic after each accepted beacon."""

    def invalidate_topic(self, topic: str) -> int:
        ...


__all__ = [
    "CacheTopicPort",
    "TimePort",
    "TrafficRepoPort",
]
