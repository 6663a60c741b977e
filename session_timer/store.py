"""Persistence contracts consumed by the timer engine."""

from __future__ import annotations

from typing import List, Optional, Protocol

from .models import ActiveSessionRecord, StoredSession


class SessionStore(Protocol):
    """Durable session records.

    Every write is guarded by ``status = 'active'`` and reports whether a row
    was changed; a write that matches nothing is not an error.
    """

    def find_active_sessions_with_owner_balance(self) -> List[ActiveSessionRecord]:
        ...

    def get_session(self, session_id: str) -> Optional[StoredSession]:
        ...

    def update_duration(self, session_id: str, minutes: int) -> bool:
        ...

    def complete_session(self, session_id: str, minutes: int, note_append: str) -> bool:
        ...


class AccountLedger(Protocol):
    def get_balance(self, account_id: str) -> Optional[int]:
        ...


__all__ = ["AccountLedger", "SessionStore"]
