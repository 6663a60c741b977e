"""HTTP API exposing the session timer lifecycle to the request-handling layer."""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Dict, Iterable, List, Mapping, Optional

from fastapi import Depends, FastAPI, HTTPException, Request, status
from pydantic import BaseModel, Field, field_validator

from .config import TimerSettings, load_settings, resolve_config_path
from .database import Database, resolve_database_path
from .engine import SessionTimerEngine
from .errors import AccessDenied, SessionNotActive, SessionNotFound
from .models import InactiveTimer, SessionStatus, StopResult, TimerSnapshot, TimerStats
from .registry import normalise_metadata
from .security import ServiceTokenAuth, load_tokens_from_env, parse_service_tokens

logger = logging.getLogger("mockmate.timer.service")


class SessionStartRequest(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=128)
    estimated_duration: Optional[int] = Field(default=None, ge=1, le=24 * 60)
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("metadata")
    @classmethod
    def _normalise_metadata(cls, value: Dict[str, str]) -> Dict[str, str]:
        return normalise_metadata(value)


class SessionStartResponse(BaseModel):
    session_id: str
    start_time: datetime
    status: str


class ManualStopRequest(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=128)
    reason: str = Field(default="Manual stop from web app", min_length=1, max_length=256)


class SessionEndRequest(BaseModel):
    reason: str = Field(default="External completion", min_length=1, max_length=256)


class StopResponse(BaseModel):
    session_id: str
    elapsed_seconds: int
    elapsed_minutes: int
    stopped_at: datetime
    reason: str


class TimerStatusResponse(BaseModel):
    session_id: str
    is_active: bool
    account_id: Optional[str] = None
    start_time: Optional[datetime] = None
    elapsed_seconds: Optional[int] = None
    elapsed_minutes: Optional[int] = None
    estimated_duration_minutes: Optional[int] = None
    job_title: Optional[str] = None
    last_known_balance: Optional[int] = None


class TimerListResponse(BaseModel):
    timers: List[TimerStatusResponse]


class LongestSessionView(BaseModel):
    session_id: str
    elapsed_minutes: int
    job_title: Optional[str] = None


class TimerStatsResponse(BaseModel):
    is_running: bool
    active_timers: int
    total_elapsed_minutes: int
    longest_session: Optional[LongestSessionView] = None


def _stop_to_response(result: StopResult) -> StopResponse:
    return StopResponse(
        session_id=result.session_id,
        elapsed_seconds=result.elapsed_seconds,
        elapsed_minutes=result.elapsed_minutes,
        stopped_at=result.stopped_at,
        reason=result.reason,
    )


def _status_to_response(timer: TimerSnapshot | InactiveTimer) -> TimerStatusResponse:
    return TimerStatusResponse(**timer.to_dict())


def _stats_to_response(stats: TimerStats) -> TimerStatsResponse:
    longest = None
    if stats.longest_session is not None:
        longest = LongestSessionView(
            session_id=stats.longest_session.session_id,
            elapsed_minutes=stats.longest_session.elapsed_minutes,
            job_title=stats.longest_session.job_title,
        )
    return TimerStatsResponse(
        is_running=stats.is_running,
        active_timers=stats.active_timers,
        total_elapsed_minutes=stats.total_elapsed_minutes,
        longest_session=longest,
    )


def register_api_routes(
    app: FastAPI,
    database: Database,
    engine: SessionTimerEngine,
    *,
    dependencies: Iterable[Callable[..., object]] = (),
) -> None:
    """Expose the lifecycle endpoints on the provided FastAPI application."""

    guards = [Depends(dependency) for dependency in dependencies]

    @app.get("/healthz")
    def healthcheck() -> Dict[str, object]:
        return {"status": "ok", "timer_loop": engine.is_running}

    @app.post(
        "/v1/sessions/{session_id}/start",
        response_model=SessionStartResponse,
        dependencies=guards,
    )
    def start_session(session_id: str, request: SessionStartRequest, http_request: Request) -> SessionStartResponse:
        record = database.get_session(session_id)
        if record is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Session not found")
        if record.account_id != request.account_id:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Session is owned by a different account")

        # Validate everything the timer needs before the start credit is spent.
        metadata = dict(request.metadata)
        if record.job_title and "job_title" not in metadata:
            metadata["job_title"] = record.job_title
        try:
            metadata = normalise_metadata(metadata)
        except ValueError as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
        estimate = request.estimated_duration or record.estimated_duration_minutes

        if record.status == SessionStatus.CREATED:
            try:
                record = database.activate_session(session_id)
            except ValueError as exc:
                raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        elif record.status != SessionStatus.ACTIVE:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail=f"Cannot start session with status: {record.status.value}",
            )

        started = engine.handle_session_start(
            session_id,
            record.account_id,
            estimate,
            metadata,
            start_time=record.started_at,
        )

        logger.info(
            "Session %s started for account %s (caller: %s)",
            session_id,
            record.account_id,
            getattr(http_request.state, "caller", "anonymous"),
        )
        return SessionStartResponse(
            session_id=started.session_id,
            start_time=started.start_time,
            status=SessionStatus.ACTIVE.value,
        )

    @app.post(
        "/v1/sessions/{session_id}/stop",
        response_model=StopResponse,
        dependencies=guards,
    )
    def stop_session(session_id: str, request: ManualStopRequest, http_request: Request) -> StopResponse:
        try:
            result = engine.handle_manual_stop(session_id, request.account_id, request.reason)
        except SessionNotFound as exc:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
        except AccessDenied as exc:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
        except SessionNotActive as exc:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
        logger.info(
            "Session %s stopped on behalf of account %s (caller: %s)",
            session_id,
            request.account_id,
            getattr(http_request.state, "caller", "anonymous"),
        )
        return _stop_to_response(result)

    @app.post(
        "/v1/sessions/{session_id}/end",
        response_model=StopResponse,
        dependencies=guards,
    )
    def end_session(session_id: str, request: SessionEndRequest) -> StopResponse:
        result = engine.handle_session_end(session_id, request.reason)
        if result is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No active timer found for session")
        return _stop_to_response(result)

    @app.get(
        "/v1/sessions/{session_id}/timer",
        response_model=TimerStatusResponse,
        dependencies=guards,
    )
    def timer_status(session_id: str) -> TimerStatusResponse:
        return _status_to_response(engine.get_timer_status(session_id))

    @app.get("/v1/timers", response_model=TimerListResponse, dependencies=guards)
    def list_timers() -> TimerListResponse:
        return TimerListResponse(timers=[_status_to_response(timer) for timer in engine.list_timers()])

    @app.get("/v1/timers/stats", response_model=TimerStatsResponse, dependencies=guards)
    def timer_stats() -> TimerStatsResponse:
        return _stats_to_response(engine.get_stats())


def create_app(
    *,
    database: Database | None = None,
    engine: SessionTimerEngine | None = None,
    settings: TimerSettings | None = None,
    api_tokens: Mapping[str, str] | Iterable[str] | None = None,
) -> FastAPI:
    """Instantiate the FastAPI application and bind the engine to its lifespan."""

    timer_settings = settings or load_settings(resolve_config_path(os.getenv("TIMER_CONFIG_PATH")))
    db = database or Database(
        resolve_database_path(os.getenv("TIMER_DB_PATH")),
        timeout=timer_settings.io_timeout_seconds,
    )
    db.initialize()

    timer_engine = engine or SessionTimerEngine(db, db, settings=timer_settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        recovered = timer_engine.start()
        logger.info("Recovered %s active session timer(s)", recovered)
        try:
            yield
        finally:
            timer_engine.shutdown()

    app = FastAPI(
        title="MockMate Session Timer",
        version="0.1.0",
        description="Background session timing and credit enforcement.",
        lifespan=lifespan,
    )

    if api_tokens is None:
        tokens = load_tokens_from_env()
    elif isinstance(api_tokens, Mapping):
        tokens = dict(api_tokens)
    else:
        tokens = parse_service_tokens(api_tokens)
    dependencies: List[Callable[..., object]] = []
    if tokens:
        auth = ServiceTokenAuth(tokens)
        dependencies.append(auth)
        logger.info("Timer API accepts tokens for: %s", ", ".join(auth.callers))
    else:
        logger.warning("No API tokens configured; the timer API is unauthenticated.")

    app.state.database = db
    app.state.engine = timer_engine

    register_api_routes(app, db, timer_engine, dependencies=dependencies)
    return app


__all__ = ["create_app", "register_api_routes"]
