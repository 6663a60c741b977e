"""In-memory registry of tracked session timers."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Dict, Iterator, List, Mapping, Optional

from .clock import Clock, SystemClock, elapsed_seconds, ensure_utc
from .models import LongestSession, StopResult, TimerEntry, TimerSnapshot, TimerStats

logger = logging.getLogger("mockmate.timer.registry")

_MAX_SESSION_ID_LENGTH = 128
_MAX_METADATA_ITEMS = 16
_MAX_METADATA_KEY_LENGTH = 64
_MAX_METADATA_VALUE_LENGTH = 512


def _normalise_session_id(session_id: str) -> str:
    value = str(session_id).strip()
    if not value:
        raise ValueError("Session identifier must not be empty")
    if len(value) > _MAX_SESSION_ID_LENGTH:
        raise ValueError("Session identifier is too long")
    return value


def _lookup_key(session_id: object) -> str:
    return str(session_id).strip()


def normalise_metadata(metadata: Mapping[str, object] | None) -> Dict[str, str]:
    if metadata is None:
        return {}
    if len(metadata) > _MAX_METADATA_ITEMS:
        raise ValueError("Too many metadata entries provided")
    cleaned: Dict[str, str] = {}
    for key, value in metadata.items():
        if value is None:
            continue
        key_text = str(key).strip()
        value_text = str(value).strip()
        if not key_text:
            raise ValueError("Metadata keys must not be empty")
        if len(key_text) > _MAX_METADATA_KEY_LENGTH:
            raise ValueError("Metadata keys must be 64 characters or fewer")
        if len(value_text) > _MAX_METADATA_VALUE_LENGTH:
            raise ValueError("Metadata values must be 512 characters or fewer")
        cleaned[key_text] = value_text
    return cleaned


class TimerRegistry:
    """Authoritative map from session identifier to :class:`TimerEntry`.

    Removal through :meth:`stop` is atomic: when two callers race to stop the
    same session exactly one receives a :class:`StopResult`, the other ``None``.
    """

    def __init__(self, *, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._entries: Dict[str, TimerEntry] = {}
        self._lock = threading.RLock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return _lookup_key(session_id) in self._entries

    def start(
        self,
        session_id: str,
        account_id: str,
        start_time: datetime,
        estimated_minutes: int,
        *,
        metadata: Mapping[str, object] | None = None,
        last_checkpoint_minute: int = 0,
        last_known_balance: Optional[int] = None,
    ) -> bool:
        """Track a session; returns ``False`` if it is already tracked."""

        normalised_id = _normalise_session_id(session_id)
        if estimated_minutes <= 0:
            raise ValueError("Estimated duration must be positive")
        cleaned_metadata = normalise_metadata(metadata)
        start = ensure_utc(start_time)
        now = self._clock.now()

        with self._lock:
            if normalised_id in self._entries:
                logger.warning("Timer already exists for session %s", normalised_id)
                return False
            elapsed = elapsed_seconds(start, now)
            self._entries[normalised_id] = TimerEntry(
                session_id=normalised_id,
                account_id=str(account_id),
                start_time=start,
                estimated_duration_minutes=int(estimated_minutes),
                last_credit_check=now,
                elapsed_seconds=elapsed,
                last_checkpoint_minute=max(0, int(last_checkpoint_minute)),
                last_known_balance=last_known_balance,
                metadata=cleaned_metadata,
            )
            return True

    def stop(self, session_id: str, reason: str) -> Optional[StopResult]:
        """Remove a session and report its elapsed time at this instant."""

        now = self._clock.now()
        with self._lock:
            entry = self._entries.pop(_lookup_key(session_id), None)
        if entry is None:
            logger.info("No active timer found for session %s", session_id)
            return None

        elapsed = elapsed_seconds(entry.start_time, now)
        entry.elapsed_seconds = elapsed
        return StopResult(
            session_id=entry.session_id,
            elapsed_seconds=elapsed,
            elapsed_minutes=elapsed // 60,
            stopped_at=now,
            reason=reason,
        )

    def get(self, session_id: str) -> Optional[TimerEntry]:
        """Return the live entry, for mutation by the reconciliation loop."""

        with self._lock:
            return self._entries.get(_lookup_key(session_id))

    def pop(self, session_id: str) -> Optional[TimerEntry]:
        with self._lock:
            return self._entries.pop(_lookup_key(session_id), None)

    def session_ids(self) -> List[str]:
        with self._lock:
            return list(self._entries)

    def drain(self) -> Iterator[TimerEntry]:
        """Remove and yield every entry."""

        with self._lock:
            drained = list(self._entries.values())
            self._entries.clear()
        yield from drained

    def query(self, session_id: str) -> Optional[TimerSnapshot]:
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(_lookup_key(session_id))
            if entry is None:
                return None
            return self._snapshot(entry, now)

    def list_all(self) -> List[TimerSnapshot]:
        now = self._clock.now()
        with self._lock:
            return [self._snapshot(entry, now) for entry in self._entries.values()]

    def stats(self, *, is_running: bool) -> TimerStats:
        snapshots = self.list_all()
        longest: Optional[LongestSession] = None
        total = 0
        for snapshot in snapshots:
            total += snapshot.elapsed_minutes
            longest_minutes = longest.elapsed_minutes if longest is not None else 0
            if snapshot.elapsed_minutes > longest_minutes:
                longest = LongestSession(
                    session_id=snapshot.session_id,
                    elapsed_minutes=snapshot.elapsed_minutes,
                    job_title=snapshot.job_title,
                )
        return TimerStats(
            is_running=is_running,
            active_timers=len(snapshots),
            total_elapsed_minutes=total,
            longest_session=longest,
        )

    @staticmethod
    def _snapshot(entry: TimerEntry, now: datetime) -> TimerSnapshot:
        elapsed = elapsed_seconds(entry.start_time, now)
        return TimerSnapshot(
            session_id=entry.session_id,
            account_id=entry.account_id,
            start_time=entry.start_time,
            elapsed_seconds=elapsed,
            elapsed_minutes=elapsed // 60,
            estimated_duration_minutes=entry.estimated_duration_minutes,
            job_title=entry.job_title,
            last_known_balance=entry.last_known_balance,
        )


__all__ = ["TimerRegistry", "normalise_metadata"]
