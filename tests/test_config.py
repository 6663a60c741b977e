from __future__ import annotations

from pathlib import Path

import pytest

from session_timer.config import TimerSettings, load_settings, resolve_config_path


def test_defaults_match_reference_behaviour() -> None:
    settings = TimerSettings()

    assert settings.tick_interval_seconds == 30
    assert settings.credit_check_interval_seconds == 300
    assert settings.overrun_multiplier == 1.5
    assert settings.default_estimated_minutes == 60


def test_missing_file_yields_defaults(tmp_path: Path) -> None:
    assert load_settings(tmp_path / "absent.yaml", environ={}) == TimerSettings()


def test_yaml_section_and_env_overrides(tmp_path: Path) -> None:
    config = tmp_path / "timer.yaml"
    config.write_text("timer:\n  tick_interval_seconds: 10\n  overrun_grace_minutes: 15\n", encoding="utf-8")

    settings = load_settings(config, environ={"TIMER_CREDIT_CHECK_SECONDS": "120"})

    assert settings.tick_interval_seconds == 10
    assert settings.overrun_grace_minutes == 15
    assert settings.credit_check_interval_seconds == 120


def test_unknown_fields_are_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown timer configuration fields"):
        TimerSettings.from_dict({"tick_seconds": 5})


@pytest.mark.parametrize(
    "field,value",
    [
        ("tick_interval_seconds", 0),
        ("credit_check_interval_seconds", -1),
        ("overrun_multiplier", 1),
        ("default_estimated_minutes", 0),
    ],
)
def test_invalid_values_are_rejected(field: str, value: float) -> None:
    with pytest.raises(ValueError):
        TimerSettings.from_dict({field: value})


def test_resolve_config_path_prefers_environment(tmp_path: Path) -> None:
    custom = tmp_path / "custom.yaml"
    assert resolve_config_path(str(custom)) == custom.resolve()
    assert resolve_config_path(None).name == "timer.yaml"
