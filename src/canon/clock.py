"""Time sources for event timestamps and durations."""

from __future__ import annotations

import time
from datetime import datetime, timezone
from typing import Protocol


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


def iso_timestamp(now: datetime | None = None) -> str:
    """Format as ISO 8601 UTC with millisecond precision, e.g. ``2024-01-15T10:30:00.000Z``."""
    ts = (now or utc_now()).astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class Clock(Protocol):
    """Wall clock for the event timestamp plus a monotonic clock for durations."""

    def now(self) -> datetime:
        """Current wall-clock time (timezone-aware)."""

    def monotonic(self) -> float:
        """Monotonic seconds; only differences are meaningful."""


class SystemClock:
    def now(self) -> datetime:
        return utc_now()

    def monotonic(self) -> float:
        return time.perf_counter()


def duration_ms(start: float, end: float) -> float:
    """Milliseconds between two monotonic readings, rounded to 0.01 ms and never negative."""
    return max(0.0, round((end - start) * 1000.0, 2))
