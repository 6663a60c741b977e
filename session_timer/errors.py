"""Typed failures returned by the lifecycle operations."""

from __future__ import annotations


class TimerError(Exception):
    """Base class for lifecycle failures."""

    code = "timer_error"

    def __init__(self, session_id: str, message: str) -> None:
        super().__init__(message)
        self.session_id = session_id
        self.message = message

    def __str__(self) -> str:
        return self.message


class SessionNotFound(TimerError, KeyError):
    code = "not_found"


class AccessDenied(TimerError, PermissionError):
    code = "access_denied"


class SessionNotActive(TimerError, ValueError):
    code = "not_active"

    def __init__(self, session_id: str, status: str) -> None:
        super().__init__(session_id, f"Cannot stop session with status: {status}")
        self.status = status


__all__ = ["AccessDenied", "SessionNotActive", "SessionNotFound", "TimerError"]
