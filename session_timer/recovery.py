"""Rebuild the timer registry from persisted active sessions."""

from __future__ import annotations

import logging

from .clock import Clock, elapsed_seconds
from .registry import TimerRegistry
from .store import SessionStore

logger = logging.getLogger("mockmate.timer.recovery")


def recover_active_sessions(
    registry: TimerRegistry,
    store: SessionStore,
    clock: Clock,
    *,
    default_estimated_minutes: int = 60,
) -> int:
    """Seed ``registry`` with every active session found in ``store``.

    Recovery itself never writes. The checkpoint starts at the persisted
    duration, capped by the elapsed minutes, so the first tick writes only
    minutes the store has not yet seen.
    Returns the number of timers added.
    """

    now = clock.now()
    recovered = 0
    for record in store.find_active_sessions_with_owner_balance():
        elapsed = elapsed_seconds(record.start_time, now)
        checkpoint = min(elapsed // 60, max(0, record.duration_minutes))
        metadata = {"job_title": record.job_title} if record.job_title else None
        added = registry.start(
            record.session_id,
            record.account_id,
            record.start_time,
            record.estimated_minutes or default_estimated_minutes,
            metadata=metadata,
            last_checkpoint_minute=checkpoint,
            last_known_balance=record.balance,
        )
        if not added:
            continue
        recovered += 1
        logger.info(
            "Loaded active session timer %s (%sm elapsed, %sm persisted)",
            record.session_id,
            elapsed // 60,
            record.duration_minutes,
        )
    return recovered


__all__ = ["recover_active_sessions"]
