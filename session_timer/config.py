"""Configuration management for the session timer engine."""
from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Dict, Mapping, Optional

import yaml

_ENV_OVERRIDES = {
    "tick_interval_seconds": "TIMER_TICK_SECONDS",
    "startup_delay_seconds": "TIMER_STARTUP_DELAY_SECONDS",
    "credit_check_interval_seconds": "TIMER_CREDIT_CHECK_SECONDS",
    "overrun_multiplier": "TIMER_OVERRUN_MULTIPLIER",
    "overrun_grace_minutes": "TIMER_OVERRUN_GRACE_MINUTES",
    "default_estimated_minutes": "TIMER_DEFAULT_ESTIMATE_MINUTES",
    "io_timeout_seconds": "TIMER_IO_TIMEOUT_SECONDS",
}


@dataclass(frozen=True)
class TimerSettings:
    """Tunables for the reconciliation loop and credit enforcement."""

    tick_interval_seconds: float = 30.0
    startup_delay_seconds: float = 1.0
    credit_check_interval_seconds: float = 300.0
    overrun_multiplier: float = 1.5
    overrun_grace_minutes: int = 30
    default_estimated_minutes: int = 60
    io_timeout_seconds: float = 10.0

    def __post_init__(self) -> None:
        if self.tick_interval_seconds <= 0:
            raise ValueError("tick_interval_seconds must be positive")
        if self.startup_delay_seconds < 0:
            raise ValueError("startup_delay_seconds must not be negative")
        if self.credit_check_interval_seconds <= 0:
            raise ValueError("credit_check_interval_seconds must be positive")
        if self.overrun_multiplier <= 1:
            raise ValueError("overrun_multiplier must be greater than 1")
        if self.overrun_grace_minutes < 0:
            raise ValueError("overrun_grace_minutes must not be negative")
        if self.default_estimated_minutes <= 0:
            raise ValueError("default_estimated_minutes must be positive")
        if self.io_timeout_seconds <= 0:
            raise ValueError("io_timeout_seconds must be positive")

    @staticmethod
    def from_dict(data: Mapping[str, object]) -> "TimerSettings":
        """Create :class:`TimerSettings` from raw dictionary data."""
        known = {item.name for item in fields(TimerSettings)}
        unknown = set(data.keys()) - known
        if unknown:
            raise ValueError(f"Unknown timer configuration fields: {', '.join(sorted(unknown))}")

        values: Dict[str, object] = {}
        for name, raw in data.items():
            values[name] = _coerce(name, raw)
        return TimerSettings(**values)

    def with_env_overrides(self, environ: Optional[Mapping[str, str]] = None) -> "TimerSettings":
        env = os.environ if environ is None else environ
        overrides: Dict[str, object] = {}
        for name, variable in _ENV_OVERRIDES.items():
            raw = env.get(variable)
            if raw is None or not raw.strip():
                continue
            overrides[name] = _coerce(name, raw.strip())
        if not overrides:
            return self
        return replace(self, **overrides)


def _coerce(name: str, raw: object) -> object:
    integer_fields = {"overrun_grace_minutes", "default_estimated_minutes"}
    try:
        if name in integer_fields:
            return int(raw)  # type: ignore[arg-type]
        return float(raw)  # type: ignore[arg-type]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from exc


def load_settings(config_path: Path, environ: Optional[Mapping[str, str]] = None) -> TimerSettings:
    """Load timer settings from a YAML file, falling back to defaults."""
    raw: Mapping[str, object] = {}
    if config_path.exists():
        with config_path.open("r", encoding="utf-8") as handle:
            raw = yaml.safe_load(handle) or {}
        if not isinstance(raw, Mapping):
            raise ValueError("Timer configuration must be a mapping")
        raw = raw.get("timer", raw)  # type: ignore[assignment]
        if not isinstance(raw, Mapping):
            raise ValueError("The 'timer' section must be a mapping")

    return TimerSettings.from_dict(raw).with_env_overrides(environ)


def resolve_config_path(env_value: Optional[str]) -> Path:
    """Resolve the path to the configuration file."""
    if env_value:
        candidate = Path(env_value).expanduser().resolve(strict=False)
    else:
        candidate = (Path(__file__).resolve().parent.parent / "config" / "timer.yaml").resolve(strict=False)
    return candidate


__all__ = ["TimerSettings", "load_settings", "resolve_config_path"]
