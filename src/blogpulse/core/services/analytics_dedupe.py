"""
DedupeService - best-effort duplicate suppression with TTL keys.

Three uses share one TTL key set:
- navigation: the same (visitor, path) within a short window is one page view
- scroll: one checkpoint per (post, view, threshold)
- seen: one unique visitor per (post, visitor) within the visitor TTL

Key behaviors:
- add() is check-and-set under a lock: exactly one caller wins a new key
- Keys are namespaced by post so an administrative reset can drop them
- No PII in keys (visitor ids and paths are hashed)

Duplicate suppression is not exactly-once: keys live in process memory and
expire, so a re-delivery after expiry or a restart is counted again.
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

from blogpulse.core.ports.time import TimePort

logger = logging.getLogger(__name__)

# Sweep expired keys every N adds
PRUNE_EVERY = 1000


# --- Configuration ---


@dataclass(frozen=True)
class DedupeConfig:
    """Deduplication configuration."""

    enabled: bool = True
    navigation_window_seconds: int = 2
    scroll_ttl_seconds: int = 6 * 60 * 60
    unique_visitor_ttl_seconds: int = 24 * 60 * 60


DEFAULT_CONFIG = DedupeConfig()


# --- Dedupe Key Generation ---


def generate_dedupe_key(namespace: str, *parts: object) -> str:
    """
    Generate a dedupe key.

    The namespace stays readable so keys can be dropped by prefix; the
    remaining parts are hashed.
    """
    key_string = "|".join("" if p is None else str(p) for p in parts)
    digest = hashlib.sha256(key_string.encode()).hexdigest()[:32]
    return f"{namespace}:{digest}"


def navigation_key(visitor_id: str, path: str) -> str:
    return generate_dedupe_key("nav", visitor_id, path)


def scroll_key(post_id: str, view_key: str, threshold: int) -> str:
    return generate_dedupe_key(f"scroll:{post_id}", view_key, threshold)


def visitor_seen_key(post_id: str, visitor_id: str) -> str:
    return generate_dedupe_key(f"seen:{post_id}", visitor_id)


def post_prefixes(post_id: str) -> tuple[str, ...]:
    """Key prefixes owned by a post."""
    return (f"scroll:{post_id}:", f"seen:{post_id}:")


# --- Dedupe Store Protocol ---


class DedupeStorePort(Protocol):
    """Dedupe store interface."""

    def exists(self, key: str) -> bool:
        """Check if key exists (not expired)."""
        ...

    def add(self, key: str, ttl_seconds: int) -> bool:
        """Add key with TTL. Returns True if added (new), False if exists."""
        ...

    def discard_prefix(self, prefix: str) -> int:
        """Remove every key starting with prefix. Returns count removed."""
        ...

    def cleanup_expired(self) -> int:
        """Remove expired entries. Returns count removed."""
        ...


# --- In-Memory Dedupe Store ---


class DefaultTimePort:
    """Default time provider."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        return datetime.now(UTC)


class InMemoryDedupeStore:
    """
    Thread-safe in-memory dedupe store.

    Expired keys are dropped on lookup and swept every `prune_every` adds,
    so keys that are never looked up again do not accumulate.
    """

    def __init__(self, time_port: TimePort | None = None, prune_every: int = PRUNE_EVERY) -> None:
        self._time = time_port or DefaultTimePort()
        self._entries: dict[str, datetime] = {}
        self._lock = threading.Lock()
        self._prune_every = max(1, prune_every)
        self._adds = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def _alive(self, key: str, now: datetime) -> bool:
        expires_at = self._entries.get(key)
        if expires_at is None:
            return False
        if now >= expires_at:
            del self._entries[key]
            return False
        return True

    def _prune_locked(self, now: datetime) -> int:
        expired = [k for k, v in self._entries.items() if now >= v]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def exists(self, key: str) -> bool:
        """Check if key exists and not expired."""
        with self._lock:
            return self._alive(key, self._time.now_utc())

    def add(self, key: str, ttl_seconds: int) -> bool:
        """Add key with TTL. Returns True if new."""
        with self._lock:
            now = self._time.now_utc()
            self._adds += 1
            if self._adds % self._prune_every == 0:
                removed = self._prune_locked(now)
                if removed:
                    logger.debug("Pruned %d expired dedupe keys", removed)
            if self._alive(key, now):
                return False
            self._entries[key] = now + timedelta(seconds=ttl_seconds)
            return True

    def discard_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
            return len(doomed)

    def cleanup_expired(self) -> int:
        """Remove expired entries."""
        with self._lock:
            return self._prune_locked(self._time.now_utc())

    def clear(self) -> None:
        """Clear all entries (for testing)."""
        with self._lock:
            self._entries.clear()


# --- Dedupe Service ---


class DedupeService:
    """
    Deduplication service.

    Each check_* method records the key as a side effect and answers
    whether this call is the first one inside the window.
    """

    def __init__(
        self,
        store: DedupeStorePort | None = None,
        config: DedupeConfig | None = None,
    ) -> None:
        """Initialize service."""
        self._store = store or InMemoryDedupeStore()
        self._config = config or DEFAULT_CONFIG

    def is_duplicate_navigation(self, visitor_id: str, path: str) -> bool:
        """True when the visitor already loaded this path inside the window."""
        if not self._config.enabled or self._config.navigation_window_seconds <= 0:
            return False
        key = navigation_key(visitor_id, path)
        return not self._store.add(key, self._config.navigation_window_seconds)

    def first_scroll(self, post_id: str, view_key: str | None, threshold: int) -> bool:
        """True the first time a view reaches a threshold."""
        if not self._config.enabled or not view_key:
            return True
        key = scroll_key(post_id, view_key, threshold)
        return self._store.add(key, self._config.scroll_ttl_seconds)

    def first_visit(self, post_id: str, visitor_id: str | None) -> bool:
        """True when the visitor has not been seen on the post within the TTL."""
        if not visitor_id:
            return False
        key = visitor_seen_key(post_id, visitor_id)
        return self._store.add(key, self._config.unique_visitor_ttl_seconds)

    def forget_post(self, post_id: str) -> int:
        """Drop scroll and visitor keys of a post (administrative reset)."""
        return sum(self._store.discard_prefix(p) for p in post_prefixes(post_id))

    def cleanup(self) -> int:
        """Cleanup expired dedupe entries."""
        return self._store.cleanup_expired()


# --- Factory ---


def create_dedupe_service(
    store: DedupeStorePort | None = None,
    config: DedupeConfig | None = None,
    time_port: TimePort | None = None,
) -> DedupeService:
    """Create a DedupeService."""
    return DedupeService(store=store or InMemoryDedupeStore(time_port), config=config)
