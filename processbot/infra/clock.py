"""Injectable time source for escalation tick computation."""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Default clock: timezone-aware wall-clock time in UTC."""
    return datetime.now(UTC)
