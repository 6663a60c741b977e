from __future__ import annotations

import threading

import pytest

from session_timer.registry import TimerRegistry


def test_start_is_idempotent(clock) -> None:
    registry = TimerRegistry(clock=clock)
    first_start = clock.now()

    assert registry.start("s-1", "acct", first_start, 30) is True
    clock.advance(minutes=5)
    assert registry.start("s-1", "acct", clock.now(), 90) is False

    snapshot = registry.query("s-1")
    assert snapshot.start_time == first_start
    assert snapshot.estimated_duration_minutes == 30
    assert len(registry) == 1


def test_query_computes_elapsed_without_mutating_entry(clock) -> None:
    registry = TimerRegistry(clock=clock)
    registry.start("s-1", "acct", clock.now(), 30, metadata={"job_title": "Data Scientist"})
    clock.advance(minutes=2, seconds=15)

    snapshot = registry.query("s-1")

    assert snapshot.elapsed_seconds == 135
    assert snapshot.elapsed_minutes == 2
    assert snapshot.job_title == "Data Scientist"
    assert registry.get("s-1").last_checkpoint_minute == 0
    assert registry.query("unknown") is None


def test_stop_reports_elapsed_at_call_time(clock) -> None:
    registry = TimerRegistry(clock=clock)
    registry.start("s-1", "acct", clock.now(), 30)
    clock.advance(minutes=7, seconds=59)

    result = registry.stop("s-1", "Manual stop")

    assert result.elapsed_seconds == 479
    assert result.elapsed_minutes == 7
    assert result.reason == "Manual stop"
    assert "s-1" not in registry
    assert registry.stop("s-1", "again") is None


def test_concurrent_stops_have_a_single_winner(clock) -> None:
    registry = TimerRegistry(clock=clock)
    registry.start("s-1", "acct", clock.now(), 30)
    barrier = threading.Barrier(8)
    results = []

    def worker() -> None:
        barrier.wait()
        results.append(registry.stop("s-1", "race"))

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sum(result is not None for result in results) == 1


def test_rejects_invalid_input(clock) -> None:
    registry = TimerRegistry(clock=clock)

    with pytest.raises(ValueError):
        registry.start("  ", "acct", clock.now(), 30)
    with pytest.raises(ValueError):
        registry.start("s-1", "acct", clock.now(), 0)
    with pytest.raises(ValueError):
        registry.start("s-1", "acct", clock.now(), 30, metadata={"": "value"})


def test_stats_summarise_tracked_sessions(clock) -> None:
    registry = TimerRegistry(clock=clock)
    registry.start("short", "a", clock.now(), 30)
    clock.advance(minutes=20)
    registry.start("long-start", "b", clock.now(), 30, metadata={"job_title": "PM"})
    clock.advance(minutes=5)

    stats = registry.stats(is_running=True)

    assert stats.active_timers == 2
    assert stats.total_elapsed_minutes == 30
    assert stats.longest_session.session_id == "short"
    assert stats.longest_session.elapsed_minutes == 25


def test_stats_for_empty_registry(clock) -> None:
    stats = TimerRegistry(clock=clock).stats(is_running=False)

    assert stats.active_timers == 0
    assert stats.total_elapsed_minutes == 0
    assert stats.longest_session is None


def test_padded_session_ids_resolve_to_the_tracked_entry(clock) -> None:
    registry = TimerRegistry(clock=clock)
    assert registry.start("  s-1 ", "acct", clock.now(), 30) is True

    assert " s-1" in registry
    assert registry.query("s-1 ") is not None
    assert registry.start("s-1", "acct", clock.now(), 30) is False

    clock.advance(minutes=3)
    result = registry.stop(" s-1 ", "Manual stop")

    assert result is not None
    assert result.session_id == "s-1"
    assert result.elapsed_minutes == 3
    assert len(registry) == 0
