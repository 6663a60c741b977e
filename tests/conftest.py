from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from session_timer.clock import Clock
from session_timer.config import TimerSettings
from session_timer.database import Database


class ManualClock(Clock):
    """Clock that only moves when a test advances it."""

    def __init__(self, start: datetime | None = None) -> None:
        self._now = start or datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self._now

    def advance(self, *, minutes: float = 0, seconds: float = 0) -> datetime:
        self._now = self._now + timedelta(minutes=minutes, seconds=seconds)
        return self._now


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture()
def database(tmp_path: Path) -> Database:
    db = Database(tmp_path / "timer.sqlite3")
    db.initialize()
    return db


@pytest.fixture()
def settings() -> TimerSettings:
    # Long startup delay keeps the background thread idle while tests drive ticks.
    return TimerSettings(startup_delay_seconds=3600, tick_interval_seconds=3600)
