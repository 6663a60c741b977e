"""SQLite-backed persistence for accounts and interview sessions."""
from __future__ import annotations

import sqlite3
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from .models import Account, ActiveSessionRecord, SessionStatus, StoredSession


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def resolve_database_path(env_value: Optional[str]) -> Path:
    """Resolve the on-disk path for the application database."""

    if env_value:
        return Path(env_value).expanduser().resolve(strict=False)
    base_dir = Path(__file__).resolve().parent.parent / "data"
    return (base_dir / "timer.sqlite3").resolve(strict=False)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _serialize_datetime(value: datetime) -> str:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat()


def _parse_datetime(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _parse_optional_datetime(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    return _parse_datetime(value)


class Database:
    """Simple wrapper around SQLite for persisting accounts and sessions.

    Implements both the session store and the account ledger used by
    :class:`~session_timer.engine.SessionTimerEngine`.
    """

    def __init__(self, path: Path, *, timeout: float = 10.0) -> None:
        _ensure_directory(path)
        self._path = path
        self._timeout = timeout

    @property
    def path(self) -> Path:
        return self._path

    @property
    def timeout(self) -> float:
        return self._timeout

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._path, timeout=self._timeout, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    def initialize(self) -> None:
        """Create the required tables if they do not already exist."""

        with self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS accounts (
                    id TEXT PRIMARY KEY,
                    name TEXT NOT NULL,
                    email TEXT UNIQUE,
                    credits INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS sessions (
                    id TEXT PRIMARY KEY,
                    account_id TEXT NOT NULL REFERENCES accounts(id) ON DELETE CASCADE,
                    status TEXT NOT NULL DEFAULT 'created',
                    job_title TEXT,
                    started_at TEXT,
                    ended_at TEXT,
                    total_duration_minutes INTEGER NOT NULL DEFAULT 0,
                    estimated_duration_minutes INTEGER,
                    session_notes TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_sessions_account_id ON sessions(account_id);
                CREATE INDEX IF NOT EXISTS idx_sessions_status ON sessions(status);
                """
            )

    # ------------------------------------------------------------------
    # Account ledger
    # ------------------------------------------------------------------
    def create_account(self, name: str, email: Optional[str] = None, *, credits: int = 0) -> Account:
        normalized_name = name.strip()
        if not normalized_name:
            raise ValueError("Name must not be empty")
        if credits < 0:
            raise ValueError("Initial credits must not be negative")

        account_id = uuid.uuid4().hex
        normalized_email = email.strip().lower() if email else None
        created_at = _current_timestamp()

        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO accounts (id, name, email, credits, created_at)
                    VALUES (?, ?, ?, ?, ?)
                    """,
                    (account_id, normalized_name, normalized_email, credits, _serialize_datetime(created_at)),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("An account with that email already exists") from exc

        return Account(
            id=account_id,
            name=normalized_name,
            email=normalized_email,
            credits=credits,
            created_at=created_at,
        )

    def list_accounts(self) -> List[Account]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM accounts ORDER BY created_at").fetchall()
        return [self._row_to_account(row) for row in rows]

    def get_balance(self, account_id: str) -> Optional[int]:
        with self._connect() as conn:
            row = conn.execute("SELECT credits FROM accounts WHERE id = ?", (account_id,)).fetchone()
        if row is None:
            return None
        return int(row["credits"])

    def adjust_credits(self, account_id: str, delta: int) -> int:
        """Add ``delta`` (which may be negative) to a balance and return the result."""

        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE accounts SET credits = credits + ? WHERE id = ?",
                (delta, account_id),
            )
            if cursor.rowcount == 0:
                raise ValueError("Account not found")
            row = conn.execute("SELECT credits FROM accounts WHERE id = ?", (account_id,)).fetchone()
        return int(row["credits"])

    # ------------------------------------------------------------------
    # Session records
    # ------------------------------------------------------------------
    def create_session(
        self,
        account_id: str,
        *,
        job_title: Optional[str] = None,
        estimated_duration_minutes: Optional[int] = None,
    ) -> StoredSession:
        if estimated_duration_minutes is not None and estimated_duration_minutes <= 0:
            raise ValueError("Estimated duration must be positive")

        session_id = uuid.uuid4().hex
        now = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            try:
                conn.execute(
                    """
                    INSERT INTO sessions (
                        id,
                        account_id,
                        status,
                        job_title,
                        estimated_duration_minutes,
                        created_at,
                        updated_at
                    )
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        session_id,
                        account_id,
                        SessionStatus.CREATED.value,
                        job_title,
                        estimated_duration_minutes,
                        now,
                        now,
                    ),
                )
            except sqlite3.IntegrityError as exc:
                raise ValueError("Account not found") from exc

        created = self.get_session(session_id)
        if created is None:  # pragma: no cover - inserted above
            raise ValueError("Session not found")
        return created

    def activate_session(self, session_id: str, started_at: Optional[datetime] = None) -> StoredSession:
        """Deduct the start credit and move a ``created`` session to ``active``.

        The guarded status update claims the session before any credit moves,
        so concurrent activations of one session charge a single credit.
        """

        started = started_at or _current_timestamp()
        with self._connect() as conn:
            claimed = conn.execute(
                """
                UPDATE sessions
                   SET status = ?, started_at = ?, updated_at = ?
                 WHERE id = ? AND status = ?
                """,
                (
                    SessionStatus.ACTIVE.value,
                    _serialize_datetime(started),
                    _serialize_datetime(_current_timestamp()),
                    session_id,
                    SessionStatus.CREATED.value,
                ),
            )
            if claimed.rowcount == 0:
                row = conn.execute("SELECT status FROM sessions WHERE id = ?", (session_id,)).fetchone()
                if row is None:
                    raise KeyError("Session not found")
                raise ValueError(f"Cannot start session with status: {row['status']}")

            charged = conn.execute(
                """
                UPDATE accounts
                   SET credits = credits - 1
                 WHERE id = (SELECT account_id FROM sessions WHERE id = ?)
                   AND credits >= 1
                """,
                (session_id,),
            )
            if charged.rowcount == 0:
                # Raising inside the connection context rolls back the claim.
                raise ValueError("Insufficient credits to start a session")

        activated = self.get_session(session_id)
        if activated is None:  # pragma: no cover - checked above
            raise KeyError("Session not found")
        return activated

    def get_session(self, session_id: str) -> Optional[StoredSession]:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM sessions WHERE id = ?", (session_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    def set_session_status(self, session_id: str, status: SessionStatus) -> bool:
        """Unconditionally set a session's status, as external workflows do."""

        with self._connect() as conn:
            cursor = conn.execute(
                "UPDATE sessions SET status = ?, updated_at = ? WHERE id = ?",
                (status.value, _serialize_datetime(_current_timestamp()), session_id),
            )
        return cursor.rowcount > 0

    def find_active_sessions_with_owner_balance(self) -> List[ActiveSessionRecord]:
        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT s.id, s.account_id, s.started_at, s.total_duration_minutes,
                       s.estimated_duration_minutes, s.job_title, a.credits
                  FROM sessions s
                  LEFT JOIN accounts a ON a.id = s.account_id
                 WHERE s.status = ? AND s.started_at IS NOT NULL
                """,
                (SessionStatus.ACTIVE.value,),
            ).fetchall()

        return [
            ActiveSessionRecord(
                session_id=row["id"],
                account_id=row["account_id"],
                start_time=_parse_datetime(row["started_at"]),
                duration_minutes=int(row["total_duration_minutes"] or 0),
                estimated_minutes=row["estimated_duration_minutes"],
                job_title=row["job_title"],
                balance=int(row["credits"]) if row["credits"] is not None else None,
            )
            for row in rows
        ]

    def update_duration(self, session_id: str, minutes: int) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                   SET total_duration_minutes = ?, updated_at = ?
                 WHERE id = ? AND status = ?
                """,
                (
                    minutes,
                    _serialize_datetime(_current_timestamp()),
                    session_id,
                    SessionStatus.ACTIVE.value,
                ),
            )
        return cursor.rowcount > 0

    def complete_session(self, session_id: str, minutes: int, note_append: str) -> bool:
        now = _serialize_datetime(_current_timestamp())
        with self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE sessions
                   SET status = ?,
                       ended_at = ?,
                       updated_at = ?,
                       total_duration_minutes = ?,
                       session_notes = COALESCE(session_notes, '') || ?
                 WHERE id = ? AND status = ?
                """,
                (
                    SessionStatus.COMPLETED.value,
                    now,
                    now,
                    minutes,
                    note_append,
                    session_id,
                    SessionStatus.ACTIVE.value,
                ),
            )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _row_to_account(row: sqlite3.Row) -> Account:
        return Account(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            credits=int(row["credits"]),
            created_at=_parse_datetime(row["created_at"]),
        )

    @staticmethod
    def _row_to_session(row: sqlite3.Row) -> StoredSession:
        return StoredSession(
            id=row["id"],
            account_id=row["account_id"],
            status=SessionStatus(row["status"]),
            job_title=row["job_title"],
            started_at=_parse_optional_datetime(row["started_at"]),
            ended_at=_parse_optional_datetime(row["ended_at"]),
            total_duration_minutes=int(row["total_duration_minutes"] or 0),
            estimated_duration_minutes=row["estimated_duration_minutes"],
            session_notes=row["session_notes"],
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


__all__ = ["Database", "resolve_database_path"]
