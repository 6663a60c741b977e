import logging

from session_timer.events import DURATION_WARNING, SessionEvent, log_session_event


def test_event_reaches_listeners_and_log(caplog) -> None:
    received: list[SessionEvent] = []

    with caplog.at_level(logging.INFO, logger="mockmate.timer.events"):
        record = log_session_event(
            DURATION_WARNING,
            "session-1",
            "account-1",
            listeners=[received.append],
            elapsed_minutes=45,
        )

    assert received == [record]
    assert record.details == {"elapsed_minutes": 45}
    assert "SESSION_DURATION_WARNING" in caplog.text


def test_failing_listener_does_not_block_others(caplog) -> None:
    received: list[SessionEvent] = []

    def broken(event: SessionEvent) -> None:
        raise RuntimeError("sink offline")

    with caplog.at_level(logging.ERROR, logger="mockmate.timer.events"):
        log_session_event(DURATION_WARNING, "session-1", "account-1", listeners=[broken, received.append])

    assert len(received) == 1
    assert "listener failed" in caplog.text
