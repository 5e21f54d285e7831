"""
Time range normalization for admin queries.

Accepted: 1h, 24h/1d, 7d/week, 30d/month, 90d/quarter, 365d/year, or a
bare number of days (capped at 365). Anything else is 7 days.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

MAX_RANGE_DAYS = 365
DEFAULT_RANGE = "7d"

_NAMED_RANGES: dict[str, tuple[str, timedelta]] = {
    "1h": ("1h", timedelta(hours=1)),
    "24h": ("24h", timedelta(days=1)),
    "1d": ("24h", timedelta(days=1)),
    "7d": ("7d", timedelta(days=7)),
    "week": ("7d", timedelta(days=7)),
    "30d": ("30d", timedelta(days=30)),
    "month": ("30d", timedelta(days=30)),
    "90d": ("90d", timedelta(days=90)),
    "quarter": ("90d", timedelta(days=90)),
    "365d": ("365d", timedelta(days=365)),
    "year": ("365d", timedelta(days=365)),
}


@dataclass(frozen=True)
class TimeRange:
    """A normalized lookback window; label is stable and used in cache keys."""

    label: str
    span: timedelta

    def since(self, now: datetime) -> datetime:
        return now - self.span


def normalize_range(value: str | int | None) -> TimeRange:
    """Normalize a user supplied range."""
    if value is None:
        return TimeRange(*_NAMED_RANGES[DEFAULT_RANGE])

    text = str(value).strip().lower()
    if text in _NAMED_RANGES:
        return TimeRange(*_NAMED_RANGES[text])

    if text.endswith("d"):
        text = text[:-1]
    if text.isascii() and text.isdecimal():
        days = int(text)
        if days > 0:
            days = min(days, MAX_RANGE_DAYS)
            return TimeRange(f"{days}d", timedelta(days=days))

    return TimeRange(*_NAMED_RANGES[DEFAULT_RANGE])
