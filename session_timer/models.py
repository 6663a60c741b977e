"""Domain models shared by the timer engine and its persistence layer."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, Optional


class SessionStatus(str, Enum):
    """Lifecycle state of a persisted interview session."""

    CREATED = "created"
    ACTIVE = "active"
    COMPLETED = "completed"


@dataclass(frozen=True)
class Account:
    """Represents an account and its credit balance."""

    id: str
    name: str
    email: Optional[str]
    credits: int
    created_at: datetime


@dataclass(frozen=True)
class StoredSession:
    """A row of the ``sessions`` table."""

    id: str
    account_id: str
    status: SessionStatus
    job_title: Optional[str]
    started_at: Optional[datetime]
    ended_at: Optional[datetime]
    total_duration_minutes: int
    estimated_duration_minutes: Optional[int]
    session_notes: Optional[str]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ActiveSessionRecord:
    """An active session joined with its owner's current balance."""

    session_id: str
    account_id: str
    start_time: datetime
    duration_minutes: int
    estimated_minutes: Optional[int]
    job_title: Optional[str]
    balance: Optional[int]


@dataclass
class TimerEntry:
    """In-memory tracking state for one active session."""

    session_id: str
    account_id: str
    start_time: datetime
    estimated_duration_minutes: int
    last_credit_check: datetime
    elapsed_seconds: int = 0
    last_checkpoint_minute: int = 0
    last_known_balance: Optional[int] = None
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def elapsed_minutes(self) -> int:
        return self.elapsed_seconds // 60

    @property
    def job_title(self) -> Optional[str]:
        return self.metadata.get("job_title") or None


@dataclass(frozen=True)
class TimerSnapshot:
    session_id: str
    account_id: str
    start_time: datetime
    elapsed_seconds: int
    elapsed_minutes: int
    estimated_duration_minutes: int
    job_title: Optional[str] = None
    last_known_balance: Optional[int] = None
    is_active: bool = True

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class InactiveTimer:
    """Status returned for sessions the engine is not tracking."""

    session_id: str
    is_active: bool = False

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


@dataclass(frozen=True)
class StopResult:
    """Final elapsed measurement reported when a timer is removed."""

    session_id: str
    elapsed_seconds: int
    elapsed_minutes: int
    stopped_at: datetime
    reason: str


@dataclass(frozen=True)
class SessionStarted:
    session_id: str
    start_time: datetime


@dataclass(frozen=True)
class LongestSession:
    session_id: str
    elapsed_minutes: int
    job_title: Optional[str]


@dataclass(frozen=True)
class TimerStats:
    """Operational summary of the registry; never used for control flow."""

    is_running: bool
    active_timers: int
    total_elapsed_minutes: int
    longest_session: Optional[LongestSession]

    def to_dict(self) -> Dict[str, object]:
        return asdict(self)


__all__ = [
    "Account",
    "ActiveSessionRecord",
    "InactiveTimer",
    "LongestSession",
    "SessionStarted",
    "SessionStatus",
    "StopResult",
    "StoredSession",
    "TimerEntry",
    "TimerSnapshot",
    "TimerStats",
]
