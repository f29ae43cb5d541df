from pathlib import Path

import pytest

from config import load_config

_VARS = (
    "ALARM_STORAGE_PATH",
    "ALARM_FIRE_TOLERANCE_SECONDS",
    "ALARM_CHECK_INTERVAL_MS",
    "ALARM_DEFAULT_SNOOZE_MIN",
    "ALARM_TIMEZONE",
    "ALARM_USE_24H",
    "LOG_LEVEL",
    "DEBUG",
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    for name in _VARS:
        # setenv first so teardown restores the original state
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return tmp_path / "missing.env"


def test_defaults(clean_env):
    cfg = load_config(clean_env)
    assert cfg.alarms_path == Path("data/alarms.json")
    assert cfg.fire_tolerance_seconds == 30.0
    assert cfg.check_interval_ms == 500
    assert cfg.default_snooze_min == 10
    assert cfg.timezone_name is None
    assert cfg.use_24h is True
    assert cfg.log_level == "INFO"


def test_env_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("ALARM_STORAGE_PATH", "/tmp/x.json")
    monkeypatch.setenv("ALARM_FIRE_TOLERANCE_SECONDS", "5.5")
    monkeypatch.setenv("ALARM_CHECK_INTERVAL_MS", "10")
    monkeypatch.setenv("ALARM_TIMEZONE", "Europe/Moscow")
    monkeypatch.setenv("ALARM_USE_24H", "no")
    monkeypatch.setenv("LOG_LEVEL", "warning")
    cfg = load_config(clean_env)
    assert cfg.alarms_path == Path("/tmp/x.json")
    assert cfg.fire_tolerance_seconds == 5.5
    assert cfg.check_interval_ms == 50
    assert cfg.timezone_name == "Europe/Moscow"
    assert cfg.use_24h is False
    assert cfg.log_level == "WARNING"


def test_debug_forces_debug_level(clean_env, monkeypatch):
    monkeypatch.setenv("DEBUG", "1")
    monkeypatch.setenv("LOG_LEVEL", "ERROR")
    cfg = load_config(clean_env)
    assert cfg.debug is True
    assert cfg.log_level == "DEBUG"


@pytest.mark.parametrize(
    "name,value",
    [
        ("ALARM_FIRE_TOLERANCE_SECONDS", "-1"),
        ("ALARM_FIRE_TOLERANCE_SECONDS", "soon"),
        ("ALARM_CHECK_INTERVAL_MS", "fast"),
        ("ALARM_DEFAULT_SNOOZE_MIN", "0"),
        ("ALARM_DEFAULT_SNOOZE_MIN", "61"),
    ],
)
def test_invalid_values(clean_env, monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ValueError):
        load_config(clean_env)


def test_reads_dotenv_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("ALARM_DEFAULT_SNOOZE_MIN=15\nALARM_TIMEZONE=UTC\n", encoding="utf-8")
    cfg = load_config(env_file)
    assert cfg.default_snooze_min == 15
    assert cfg.timezone_name == "UTC"
