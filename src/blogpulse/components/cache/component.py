"""
Cache component - key naming and pattern matching.

Keys are colon separated, coarse to fine: "<area>:<view>[:<qualifier>]".
Patterns use shell-style wildcards ("traffic:*").
"""

from __future__ import annotations

from fnmatch import fnmatchcase

# Invalidation topics -> patterns
TOPICS: dict[str, tuple[str, ...]] = {
    "dashboard": ("dashboard:*",),
    "traffic": ("traffic:*",),
    "sessions": ("sessions:*",),
    "blog": ("blog:*",),
    "all": ("*",),
}


class CacheKeys:
    """Key builders for the cached admin views."""

    DASHBOARD_METRICS = "dashboard:metrics"
    SESSIONS_RECENT = "sessions:recent"
    BLOG_OVERVIEW = "blog:overview"
    BLOG_LEADERBOARD = "blog:leaderboard"

    @staticmethod
    def traffic_summary(range_label: str) -> str:
        return f"traffic:summary:{range_label}"

    @staticmethod
    def blog_post(post_id: str) -> str:
        return f"blog:post:{post_id}"


def is_pattern(key_or_pattern: str) -> bool:
    return any(ch in key_or_pattern for ch in "*?[")


def matches(key: str, pattern: str) -> bool:
    """Case-sensitive shell-style match."""
    return fnmatchcase(key, pattern)


def topic_patterns(topic: str) -> tuple[str, ...]:
    """Patterns for a topic name; unknown topics raise KeyError."""
    return TOPICS[topic]
