"""Structured session lifecycle events."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable

logger = logging.getLogger("mockmate.timer.events")

TIMER_STARTED = "BACKGROUND_TIMER_STARTED"
TIMER_STOPPED = "BACKGROUND_TIMER_STOPPED"
DURATION_WARNING = "SESSION_DURATION_WARNING"
AUTO_STOPPED = "SESSION_AUTO_STOPPED"


@dataclass(frozen=True)
class SessionEvent:
    event: str
    session_id: str
    account_id: str
    timestamp: datetime
    details: Dict[str, object] = field(default_factory=dict)


EventListener = Callable[[SessionEvent], None]


def log_session_event(
    event: str,
    session_id: str,
    account_id: str,
    *,
    listeners: Iterable[EventListener] = (),
    timestamp: datetime | None = None,
    **details: object,
) -> SessionEvent:
    """Log a lifecycle event and hand it to every registered listener."""

    record = SessionEvent(
        event=event,
        session_id=session_id,
        account_id=account_id,
        timestamp=timestamp or datetime.now(timezone.utc),
        details=dict(details),
    )
    logger.info(
        "Session event %s for session %s (account %s): %s",
        event,
        session_id,
        account_id,
        record.details,
    )
    for listener in listeners:
        try:
            listener(record)
        except Exception:
            logger.exception("Session event listener failed for %s", event)
    return record


__all__ = [
    "AUTO_STOPPED",
    "DURATION_WARNING",
    "EventListener",
    "SessionEvent",
    "TIMER_STARTED",
    "TIMER_STOPPED",
    "log_session_event",
]
