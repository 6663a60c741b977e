"""Background session timer with durable checkpoints and credit enforcement."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, List, Mapping, Optional

from .clock import Clock, SystemClock, elapsed_seconds
from .config import TimerSettings
from .credits import CreditEnforcement
from .errors import AccessDenied, SessionNotActive, SessionNotFound
from .events import (
    AUTO_STOPPED,
    DURATION_WARNING,
    TIMER_STARTED,
    TIMER_STOPPED,
    EventListener,
    log_session_event,
)
from .models import (
    InactiveTimer,
    SessionStarted,
    SessionStatus,
    StopResult,
    TimerEntry,
    TimerSnapshot,
    TimerStats,
)
from .recovery import recover_active_sessions
from .registry import TimerRegistry
from .store import AccountLedger, SessionStore

logger = logging.getLogger("mockmate.timer.engine")


def _annotation(timestamp: datetime, message: str) -> str:
    return f"\n[{timestamp.isoformat()}] {message}"


class SessionTimerEngine:
    """Tracks active interview sessions independently of client connections.

    A single reconciliation thread walks the registry every
    ``tick_interval_seconds``. Per entry it checkpoints whole minutes to the
    session store, re-reads the owner's balance every
    ``credit_check_interval_seconds`` and warns once when a session overruns
    its estimate. Lifecycle calls and per-entry processing share one lock, so
    store writes for a given session are never interleaved.
    """

    def __init__(
        self,
        store: SessionStore,
        ledger: AccountLedger,
        *,
        clock: Clock | None = None,
        settings: TimerSettings | None = None,
        registry: TimerRegistry | None = None,
        listeners: Optional[List[EventListener]] = None,
    ) -> None:
        self._store = store
        self._clock = clock or SystemClock()
        self._settings = settings or TimerSettings()
        self._registry = registry or TimerRegistry(clock=self._clock)
        self._credits = CreditEnforcement(ledger)
        self._listeners: List[EventListener] = list(listeners or [])
        self._lock = threading.RLock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def registry(self) -> TimerRegistry:
        return self._registry

    @property
    def settings(self) -> TimerSettings:
        return self._settings

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def add_listener(self, listener: EventListener) -> None:
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Startup and shutdown
    # ------------------------------------------------------------------
    def start(self) -> int:
        """Recover persisted sessions and launch the reconciliation thread."""

        if self.is_running:
            logger.warning("Timer loop already running")
            return 0

        with self._lock:
            recovered = recover_active_sessions(
                self._registry,
                self._store,
                self._clock,
                default_estimated_minutes=self._settings.default_estimated_minutes,
            )

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="SessionTimerLoop",
            daemon=True,
        )
        self._thread.start()
        logger.info(
            "Session timer started with %s active timer(s) (%ss interval)",
            len(self._registry),
            self._settings.tick_interval_seconds,
        )
        return recovered

    def stop_loop(self) -> None:
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self._settings.tick_interval_seconds + self._settings.io_timeout_seconds)
        self._thread = None
        logger.info("Session timer loop stopped")

    def shutdown(self) -> None:
        """Stop the loop, flush every tracked session and clear the registry."""

        logger.info("Shutting down session timer")
        self.stop_loop()

        now = self._clock.now()
        with self._lock:
            for entry in self._registry.drain():
                minutes = elapsed_seconds(entry.start_time, now) // 60
                try:
                    self._store.update_duration(entry.session_id, minutes)
                except Exception:
                    logger.exception("Failed to save timer state for session %s", entry.session_id)
                    continue
                logger.info("Saved final timer state for session %s: %sm", entry.session_id, minutes)
        logger.info("Session timer shutdown complete")

    def _run(self) -> None:
        if self._stop_event.wait(self._settings.startup_delay_seconds):
            return
        while True:
            try:
                self.tick()
            except Exception:
                logger.exception("Reconciliation tick failed")
            if self._stop_event.wait(self._settings.tick_interval_seconds):
                return

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def tick(self) -> int:
        """Reconcile every tracked session once; returns the number processed."""

        session_ids = self._registry.session_ids()
        if not session_ids:
            return 0

        logger.debug("Processing %s active session timer(s)", len(session_ids))
        now = self._clock.now()
        processed = 0
        for session_id in session_ids:
            with self._lock:
                entry = self._registry.get(session_id)
                if entry is None:
                    continue
                try:
                    self._process_entry(entry, now)
                except Exception:
                    logger.exception("Removing timer for session %s after a processing error", session_id)
                    self._registry.pop(session_id)
                    continue
                processed += 1
        return processed

    def _process_entry(self, entry: TimerEntry, now: datetime) -> None:
        entry.elapsed_seconds = elapsed_seconds(entry.start_time, now)
        current_minute = entry.elapsed_minutes

        if current_minute > entry.last_checkpoint_minute:
            updated = self._store.update_duration(entry.session_id, current_minute)
            if not updated:
                logger.debug("Checkpoint for session %s matched no active record", entry.session_id)
            entry.last_checkpoint_minute = current_minute

        credit_interval = self._settings.credit_check_interval_seconds
        if (now - entry.last_credit_check).total_seconds() >= credit_interval:
            try:
                if self._enforce_credits(entry, now):
                    return
            finally:
                entry.last_credit_check = max(entry.last_credit_check, now)

        threshold = entry.estimated_duration_minutes * self._settings.overrun_multiplier
        if current_minute >= threshold:
            self._handle_overrun(entry, current_minute, threshold)

    def _enforce_credits(self, entry: TimerEntry, now: datetime) -> bool:
        """Return ``True`` when the session was terminated."""

        result = self._credits.check(entry.account_id)
        if result.balance is not None:
            entry.last_known_balance = result.balance
        if not result.should_terminate:
            return False

        reason = result.reason or "Insufficient credits"
        stopped = self._registry.stop(entry.session_id, reason)
        if stopped is None:
            return True

        self._store.complete_session(
            entry.session_id,
            stopped.elapsed_minutes,
            _annotation(now, f"Session auto-stopped: {reason}"),
        )
        logger.info("Session %s auto-stopped due to: %s", entry.session_id, reason)
        self._log_stopped(entry.account_id, stopped)
        self._emit(
            AUTO_STOPPED,
            entry,
            reason=reason,
            elapsed_minutes=stopped.elapsed_minutes,
            balance=result.balance,
        )
        return True

    def _handle_overrun(self, entry: TimerEntry, current_minute: int, threshold: float) -> None:
        logger.warning(
            "Session %s has exceeded estimated duration: %sm / %sm allowed",
            entry.session_id,
            current_minute,
            threshold,
        )
        self._emit(
            DURATION_WARNING,
            entry,
            elapsed_minutes=current_minute,
            estimated_duration=entry.estimated_duration_minutes,
            max_allowed_minutes=threshold,
        )
        entry.estimated_duration_minutes = max(
            entry.estimated_duration_minutes * 2,
            current_minute + self._settings.overrun_grace_minutes,
        )

    # ------------------------------------------------------------------
    # Lifecycle API
    # ------------------------------------------------------------------
    def handle_session_start(
        self,
        session_id: str,
        account_id: str,
        estimated_duration: Optional[int] = None,
        metadata: Optional[Mapping[str, Any]] = None,
        *,
        start_time: Optional[datetime] = None,
    ) -> SessionStarted:
        """Begin tracking a session; repeated calls keep the original start."""

        start = start_time or self._clock.now()
        estimate = estimated_duration or self._settings.default_estimated_minutes

        with self._lock:
            added = self._registry.start(session_id, account_id, start, estimate, metadata=metadata)
            entry = self._registry.get(session_id)

        if entry is None:
            return SessionStarted(session_id=session_id, start_time=start)
        if added:
            logger.info("Started background timer for session %s", entry.session_id)
            self._emit(
                TIMER_STARTED,
                entry,
                start_time=entry.start_time.isoformat(),
                estimated_duration=estimate,
            )
        return SessionStarted(session_id=entry.session_id, start_time=entry.start_time)

    def handle_manual_stop(
        self,
        session_id: str,
        account_id: str,
        reason: str = "Manual stop",
    ) -> StopResult:
        """Stop a session on behalf of its owner.

        Raises :class:`SessionNotFound`, :class:`AccessDenied` or
        :class:`SessionNotActive` without mutating anything.
        """

        record = self._store.get_session(session_id)
        if record is None:
            raise SessionNotFound(session_id, "Session not found")
        if record.account_id != account_id:
            logger.warning("Account %s attempted to stop session %s owned by another account", account_id, session_id)
            raise AccessDenied(session_id, "Session is owned by a different account")
        if record.status != SessionStatus.ACTIVE:
            raise SessionNotActive(session_id, record.status.value)

        with self._lock:
            result = self._registry.stop(session_id, reason)
            if result is None:
                raise SessionNotFound(session_id, "No active timer found for session")
            self._store.complete_session(
                session_id,
                result.elapsed_minutes,
                _annotation(result.stopped_at, f"Session manually stopped: {reason}"),
            )

        self._log_stopped(account_id, result)
        return result

    def handle_session_end(self, session_id: str, reason: str = "External completion") -> Optional[StopResult]:
        """Stop tracking a session whose own workflow has completed it."""

        with self._lock:
            entry = self._registry.get(session_id)
            result = self._registry.stop(session_id, reason)
        if result is not None and entry is not None:
            self._log_stopped(entry.account_id, result)
        return result

    def get_timer_status(self, session_id: str) -> TimerSnapshot | InactiveTimer:
        snapshot = self._registry.query(session_id)
        if snapshot is None:
            return InactiveTimer(session_id=session_id)
        return snapshot

    def list_timers(self) -> List[TimerSnapshot]:
        return self._registry.list_all()

    def get_stats(self) -> TimerStats:
        return self._registry.stats(is_running=self.is_running)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------
    def _log_stopped(self, account_id: str, result: StopResult) -> None:
        logger.info(
            "Stopped background timer for session %s (%sm elapsed, reason: %s)",
            result.session_id,
            result.elapsed_minutes,
            result.reason,
        )
        log_session_event(
            TIMER_STOPPED,
            result.session_id,
            account_id,
            listeners=self._listeners,
            timestamp=result.stopped_at,
            elapsed_minutes=result.elapsed_minutes,
            elapsed_seconds=result.elapsed_seconds,
            reason=result.reason,
        )

    def _emit(self, event: str, entry: TimerEntry, **details: object) -> None:
        log_session_event(
            event,
            entry.session_id,
            entry.account_id,
            listeners=self._listeners,
            timestamp=self._clock.now(),
            **details,
        )


__all__ = ["SessionTimerEngine"]
