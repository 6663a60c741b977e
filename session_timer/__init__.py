"""Background session timing and credit enforcement for MockMate interviews."""

from __future__ import annotations

from typing import Any

from .clock import Clock, SystemClock
from .config import TimerSettings, load_settings
from .database import Database, resolve_database_path
from .engine import SessionTimerEngine
from .registry import TimerRegistry


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the timer HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "Clock",
    "Database",
    "SessionTimerEngine",
    "SystemClock",
    "TimerRegistry",
    "TimerSettings",
    "create_app",
    "load_settings",
    "resolve_database_path",
]
