"""
AnalyticsCache - short-TTL read-through cache for admin views.

Key behaviors:
- get_or_compute returns a live entry or computes, stores and returns
- Entries expire after their TTL (default 60s)
- invalidate() takes an exact key or a shell-style pattern
- A failing compute is logged and re-raised; nothing is cached
- After close() every read is a miss and nothing is stored

Readers may see a value up to one TTL old; writers invalidate the
affected topics to keep that window short.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, TypeVar

from blogpulse.core.ports.time import TimePort

from .component import is_pattern, matches, topic_patterns
from .models import DEFAULT_CONFIG, CacheConfig, CacheStats

logger = logging.getLogger(__name__)

T = TypeVar("T")

_MISSING = object()


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


@dataclass
class _Entry:
    value: Any
    expires_at: datetime


class AnalyticsCache:
    """Thread-safe in-process TTL cache."""

    def __init__(
        self,
        config: CacheConfig | None = None,
        time_port: TimePort | None = None,
    ) -> None:
        self._config = config or DEFAULT_CONFIG
        self._time = time_port or DefaultTimePort()
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()
        self._closed = False
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._invalidations = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, key: str) -> Any | None:
        """Return a live value or None."""
        value = self._lookup(key)
        return None if value is _MISSING else value

    def _lookup(self, key: str) -> Any:
        with self._lock:
            if self._closed:
                self._misses += 1
                return _MISSING
            entry = self._entries.get(key)
            if entry is None or self._time.now_utc() >= entry.expires_at:
                if entry is not None:
                    del self._entries[key]
                self._misses += 1
                return _MISSING
            self._hits += 1
            return entry.value

    def set(self, key: str, value: Any, ttl_seconds: int | None = None) -> None:
        ttl = ttl_seconds if ttl_seconds is not None else self._config.default_ttl_seconds
        with self._lock:
            if self._closed:
                return
            now = self._time.now_utc()
            if key not in self._entries and len(self._entries) >= self._config.max_entries:
                self._evict_locked(now)
            self._entries[key] = _Entry(value, now + timedelta(seconds=ttl))
            self._sets += 1

    def _evict_locked(self, now: datetime) -> None:
        expired = [k for k, e in self._entries.items() if now >= e.expires_at]
        for key in expired:
            del self._entries[key]
        if len(self._entries) >= self._config.max_entries:
            oldest = min(self._entries, key=lambda k: self._entries[k].expires_at)
            del self._entries[oldest]

    def get_or_compute(
        self,
        key: str,
        ttl_seconds: int | None,
        compute_fn: Callable[[], T],
    ) -> T:
        """
        Read-through lookup.

        Concurrent misses may compute the same key more than once; the last
        writer wins.
        """
        value = self._lookup(key)
        if value is not _MISSING:
            return value

        try:
            value = compute_fn()
        except Exception:
            logger.exception("Cache compute failed for %s", key)
            raise

        self.set(key, value, ttl_seconds)
        return value

    def invalidate(self, key_or_pattern: str) -> int:
        """Remove an exact key or every key matching a pattern. Returns count removed."""
        with self._lock:
            if is_pattern(key_or_pattern):
                doomed = [k for k in self._entries if matches(k, key_or_pattern)]
            else:
                doomed = [key_or_pattern] if key_or_pattern in self._entries else []
            for key in doomed:
                del self._entries[key]
            self._invalidations += len(doomed)
        if doomed:
            logger.debug("Invalidated %d cache entries for %s", len(doomed), key_or_pattern)
        return len(doomed)

    def invalidate_topic(self, topic: str) -> int:
        """Invalidate a named topic (dashboard, traffic, sessions, blog, all)."""
        return sum(self.invalidate(p) for p in topic_patterns(topic))

    def flush(self) -> int:
        """Drop every entry."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._invalidations += count
            return count

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._entries),
                hits=self._hits,
                misses=self._misses,
                sets=self._sets,
                invalidations=self._invalidations,
            )

    def close(self) -> None:
        """Release entries; the cache turns into a pass-through."""
        with self._lock:
            self._entries.clear()
            self._closed = True
        logger.info("Analytics cache closed")


def create_analytics_cache(
    config: CacheConfig | None = None,
    time_port: TimePort | None = None,
) -> AnalyticsCache:
    """Create an AnalyticsCache."""
    return AnalyticsCache(config=config, time_port=time_port)
