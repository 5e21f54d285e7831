"""
Per-route-class request budgets (sliding window log).

A bucket is (route_class, client identifier). Each bucket keeps the
timestamps of its accepted requests inside the window; a request is
accepted while fewer than max_requests remain in the log.
"""

import logging
import math
from datetime import UTC, datetime, timedelta
from threading import Lock

from blogpulse.core.ports.time import TimePort
from blogpulse.rules.models import RateLimitRules, RateLimitWindow

logger = logging.getLogger(__name__)

# Sweep idle buckets every N checks
PRUNE_EVERY = 1000


class SystemTimeAdapter:
    """Production time adapter using system clock."""

    def now_utc(self) -> datetime:
        return datetime.now(UTC)


class RateLimitExceeded(Exception):
    """Raised when a bucket is over budget."""

    def __init__(self, route_class: str, retry_after: int, silent: bool = False):
        super().__init__(f"Rate limit exceeded for {route_class}")
        self.route_class = route_class
        self.retry_after = retry_after
        self.silent = silent


class RateLimiter:
    def __init__(
        self,
        rules: RateLimitRules,
        time_port: TimePort | None = None,
        enabled: bool | None = None,
    ):
        self.rules = rules
        self._time = time_port if time_port is not None else SystemTimeAdapter()
        self._enabled = rules.enabled if enabled is None else enabled
        self._history: dict[str, list[datetime]] = {}
        self._lock = Lock()
        self._checks = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    def _cleanup(self, key: str, window: int) -> None:
        now = self._time.now_utc()
        cutoff = now - timedelta(seconds=window)
        if key in self._history:
            self._history[key] = [t for t in self._history[key] if t > cutoff]
            if not self._history[key]:
                del self._history[key]

    def allow(self, bucket_key: str, limit_config: RateLimitWindow) -> bool:
        """
        Check if request is allowed.
        If allowed, records the attempt and returns True.
        If denied, returns False (denied attempts are not recorded).
        Always True when the limiter is disabled.
        """
        if not self._enabled:
            return True

        with self._lock:
            self._checks += 1
            if self._checks % PRUNE_EVERY == 0:
                self._prune_locked()

            self._cleanup(bucket_key, limit_config.window_seconds)
            current_count = len(self._history.get(bucket_key, []))

            if current_count >= limit_config.max_requests:
                return False

            self._history.setdefault(bucket_key, []).append(self._time.now_utc())
            return True

    def retry_after(self, bucket_key: str, limit_config: RateLimitWindow) -> int:
        """Seconds until the oldest logged request leaves the window."""
        with self._lock:
            history = self._history.get(bucket_key)
            if not history:
                return 0
            expires = history[0] + timedelta(seconds=limit_config.window_seconds)
            remaining = (expires - self._time.now_utc()).total_seconds()
            return max(1, math.ceil(remaining))

    def classify_path(self, path: str) -> str | None:
        """Map a request path to its route class; None for exempt paths."""
        for exempt in self.rules.exempt_paths:
            if path == exempt or path.startswith(exempt.rstrip("/") + "/"):
                return None
        for route in self.rules.routes:
            if path == route.prefix or path.startswith(route.prefix.rstrip("/") + "/"):
                return route.route_class
        return self.rules.default_class

    def limit_for(self, route_class: str) -> RateLimitWindow:
        cfg = self.rules.classes.get(route_class)
        if cfg is None:
            cfg = self.rules.classes[self.rules.default_class]
        return cfg

    def check(self, route_class: str, client_id: str) -> None:
        """Record a request; raise RateLimitExceeded when over budget."""
        cfg = self.limit_for(route_class)
        key = f"{route_class}:{client_id}"
        if self.allow(key, cfg):
            return

        retry = self.retry_after(key, cfg)
        logger.warning(
            "Rate limit exceeded: class=%s client=%s retry_after=%ss",
            route_class,
            client_id,
            retry,
        )
        raise RateLimitExceeded(route_class, retry, silent=cfg.silent)

    def check_request(self, path: str, client_id: str) -> None:
        """Classify and check a request path."""
        if not self._enabled:
            return
        route_class = self.classify_path(path)
        if route_class is None:
            return
        self.check(route_class, client_id)

    def _prune_locked(self) -> None:
        now = self._time.now_utc()
        longest = max((c.window_seconds for c in self.rules.classes.values()), default=0)
        cutoff = now - timedelta(seconds=longest)
        for key in [k for k, v in self._history.items() if not v or v[-1] <= cutoff]:
            del self._history[key]

    def reset(self) -> None:
        """Forget all buckets."""
        with self._lock:
            self._history.clear()
