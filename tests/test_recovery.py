from __future__ import annotations

from datetime import timedelta

from session_timer.config import TimerSettings
from session_timer.database import Database
from session_timer.engine import SessionTimerEngine
from session_timer.recovery import recover_active_sessions
from session_timer.registry import TimerRegistry


def _active_session(database: Database, clock, *, minutes_ago: float, persisted: int, estimate=None, credits: int = 3):
    account = database.create_account("Recovered", credits=credits)
    session = database.create_session(account.id, job_title="Frontend Engineer", estimated_duration_minutes=estimate)
    database.activate_session(session.id, clock.now() - timedelta(minutes=minutes_ago))
    database.update_duration(session.id, persisted)
    return account, session


def test_recovery_seeds_registry_without_writing(database: Database, clock) -> None:
    account, session = _active_session(database, clock, minutes_ago=37, persisted=36, estimate=45)
    registry = TimerRegistry(clock=clock)

    assert recover_active_sessions(registry, database, clock) == 1

    entry = registry.get(session.id)
    assert entry.account_id == account.id
    assert entry.elapsed_seconds == 37 * 60
    assert entry.last_checkpoint_minute == 36
    assert entry.estimated_duration_minutes == 45
    assert entry.last_known_balance == 2
    assert entry.job_title == "Frontend Engineer"
    assert database.get_session(session.id).total_duration_minutes == 36


def test_recovery_then_one_tick_persists_current_minute(database: Database, clock, settings) -> None:
    _, session = _active_session(database, clock, minutes_ago=37, persisted=36)
    engine = SessionTimerEngine(database, database, clock=clock, settings=settings)

    assert engine.start() == 1
    try:
        engine.tick()
        assert database.get_session(session.id).total_duration_minutes == 37
    finally:
        engine.shutdown()

    assert database.get_session(session.id).total_duration_minutes == 37


def test_recovery_is_idempotent(database: Database, clock) -> None:
    _active_session(database, clock, minutes_ago=5, persisted=5)
    registry = TimerRegistry(clock=clock)

    assert recover_active_sessions(registry, database, clock) == 1
    assert recover_active_sessions(registry, database, clock) == 0
    assert len(registry) == 1


def test_recovery_uses_default_estimate(database: Database, clock) -> None:
    _, session = _active_session(database, clock, minutes_ago=1, persisted=0)
    registry = TimerRegistry(clock=clock)

    recover_active_sessions(registry, database, clock, default_estimated_minutes=TimerSettings().default_estimated_minutes)

    assert registry.get(session.id).estimated_duration_minutes == 60


def test_recovery_skips_inactive_sessions(database: Database, clock) -> None:
    account = database.create_account("Idle", credits=1)
    database.create_session(account.id)
    registry = TimerRegistry(clock=clock)

    assert recover_active_sessions(registry, database, clock) == 0
