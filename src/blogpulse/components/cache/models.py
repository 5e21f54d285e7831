"""
Cache component models.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class CacheConfig:
    """Read cache configuration."""

    default_ttl_seconds: int = 60
    max_entries: int = 1000


DEFAULT_CONFIG = CacheConfig()


@dataclass(frozen=True)
class CacheStats:
    """Counters since start (or the last flush of stats)."""

    size: int
    hits: int
    misses: int
    sets: int
    invalidations: int

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0
