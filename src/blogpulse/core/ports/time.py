"""
Time port.

All timestamps handled by the pipeline are timezone-aware UTC.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol


class TimePort(Protocol):
    """Time provider interface (enables deterministic tests)."""

    def now_utc(self) -> datetime:
        """Get current UTC time."""
        ...
