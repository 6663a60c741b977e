from __future__ import annotations

import threading
from datetime import datetime, timezone

import pytest

from session_timer.database import Database
from session_timer.models import SessionStatus


def test_create_account_and_read_balance(database: Database) -> None:
    account = database.create_account("Candidate", "Candidate@Example.com", credits=3)

    assert account.email == "candidate@example.com"
    assert database.get_balance(account.id) == 3
    assert database.get_balance("missing") is None


def test_account_email_must_be_unique(database: Database) -> None:
    database.create_account("First", "dup@example.com")
    with pytest.raises(ValueError):
        database.create_account("Second", "dup@example.com")


def test_adjust_credits_allows_negative_balance(database: Database) -> None:
    account = database.create_account("Debtor", credits=1)

    assert database.adjust_credits(account.id, -3) == -2
    with pytest.raises(ValueError):
        database.adjust_credits("missing", 1)


def test_activate_session_deducts_start_credit(database: Database) -> None:
    account = database.create_account("Starter", credits=2)
    session = database.create_session(account.id, job_title="Backend Engineer", estimated_duration_minutes=45)
    assert session.status is SessionStatus.CREATED

    started_at = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
    active = database.activate_session(session.id, started_at)

    assert active.status is SessionStatus.ACTIVE
    assert active.started_at == started_at
    assert database.get_balance(account.id) == 1

    with pytest.raises(ValueError):
        database.activate_session(session.id)


def test_activate_session_requires_a_credit(database: Database) -> None:
    account = database.create_account("Broke", credits=0)
    session = database.create_session(account.id)

    with pytest.raises(ValueError, match="Insufficient credits"):
        database.activate_session(session.id)
    assert database.get_session(session.id).status is SessionStatus.CREATED


def test_concurrent_activation_charges_one_credit(database: Database) -> None:
    account = database.create_account("Racer", credits=5)
    session = database.create_session(account.id)
    barrier = threading.Barrier(2)
    outcomes: list[str] = []

    def activate() -> None:
        barrier.wait()
        try:
            database.activate_session(session.id)
        except ValueError:
            outcomes.append("rejected")
        else:
            outcomes.append("activated")

    workers = [threading.Thread(target=activate) for _ in range(2)]
    for worker in workers:
        worker.start()
    for worker in workers:
        worker.join()

    assert sorted(outcomes) == ["activated", "rejected"]
    assert database.get_balance(account.id) == 4
    assert database.get_session(session.id).status is SessionStatus.ACTIVE


def test_activate_unknown_session_raises_key_error(database: Database) -> None:
    with pytest.raises(KeyError):
        database.activate_session("missing")


def test_database_uses_configured_timeout(tmp_path) -> None:
    assert Database(tmp_path / "timer.sqlite3", timeout=2.5).timeout == 2.5


def test_active_sessions_include_owner_balance(database: Database) -> None:
    account = database.create_account("Owner", credits=5)
    active = database.create_session(account.id, job_title="SRE", estimated_duration_minutes=30)
    database.activate_session(active.id)
    database.create_session(account.id)

    records = database.find_active_sessions_with_owner_balance()

    assert [record.session_id for record in records] == [active.id]
    assert records[0].balance == 4
    assert records[0].estimated_minutes == 30
    assert records[0].job_title == "SRE"


def test_guarded_writes_ignore_inactive_sessions(database: Database) -> None:
    account = database.create_account("Guarded", credits=1)
    session = database.create_session(account.id)
    database.activate_session(session.id)

    assert database.update_duration(session.id, 4) is True
    database.set_session_status(session.id, SessionStatus.COMPLETED)

    assert database.update_duration(session.id, 5) is False
    assert database.complete_session(session.id, 5, "\nlate note") is False
    stored = database.get_session(session.id)
    assert stored.total_duration_minutes == 4
    assert stored.session_notes is None


def test_complete_session_appends_notes(database: Database) -> None:
    account = database.create_account("Notes", credits=1)
    session = database.create_session(account.id)
    database.activate_session(session.id)

    assert database.complete_session(session.id, 12, "\n[t] Session manually stopped: done") is True

    stored = database.get_session(session.id)
    assert stored.status is SessionStatus.COMPLETED
    assert stored.total_duration_minutes == 12
    assert stored.ended_at is not None
    assert stored.session_notes == "\n[t] Session manually stopped: done"
