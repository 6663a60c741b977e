"""Injectable wall-clock used for every elapsed-time computation."""

from __future__ import annotations

from datetime import datetime, timezone


class Clock:
    """Source of the current UTC instant."""

    def now(self) -> datetime:  # pragma: no cover - interface
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes and normalise aware ones to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def elapsed_seconds(start: datetime, now: datetime) -> int:
    """Whole seconds between ``start`` and ``now``, never negative."""

    delta = ensure_utc(now) - ensure_utc(start)
    return max(0, int(delta.total_seconds()))


__all__ = ["Clock", "SystemClock", "elapsed_seconds", "ensure_utc"]
