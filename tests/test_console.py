import io
from datetime import datetime, timedelta, timezone

from alarm_console import ConsoleRuntime
from config import Config
from time_utils import ensure_tz, format_tz_offset, resolve_timezone


def _config(tmp_path) -> Config:
    return Config(
        alarms_path=tmp_path / "alarms.json",
        fire_tolerance_seconds=30.0,
        check_interval_ms=50,
        default_snooze_min=10,
        timezone_name="UTC",
        use_24h=True,
        debug=False,
        log_level="INFO",
    )


def test_console_session_persists_alarms(tmp_path, capsys):
    runtime = ConsoleRuntime(_config(tmp_path))
    runtime.start()
    try:
        runtime.run(io.StringIO("add 23:59 Late\n\nlist\nquit\nlist\n"))
    finally:
        runtime.shutdown()

    out = capsys.readouterr().out
    assert "Alarm console ready (UTC+00:00)" in out
    assert "Alarm set for" in out
    assert "1) 23:59 Late [once] armed" in out
    assert out.rstrip().endswith("Bye.")

    again = ConsoleRuntime(_config(tmp_path))
    restored = again.alarm_manager.start()
    assert len(restored) == 1
    assert [a.label for a in again.alarm_manager.list_all()] == ["Late"]


def test_fired_alarm_is_announced(tmp_path, capsys):
    runtime = ConsoleRuntime(_config(tmp_path))
    runtime.start()
    try:
        alarm = runtime.router.handle_text("add 07:00 Wake", now=runtime.now()).alarm
        runtime.notifier.fire_due(alarm.pending_trigger_at + timedelta(seconds=1))
    finally:
        runtime.shutdown()
    assert "Alarm! Wake (07:00). Type 'snooze' or 'dismiss'." in capsys.readouterr().out


def test_time_utils():
    utc = resolve_timezone("UTC")
    assert format_tz_offset(utc) == "+00:00"
    naive = datetime(2025, 10, 20, 8, 0)
    assert ensure_tz(naive, utc).tzinfo is utc
    aware = datetime(2025, 10, 20, 8, 0, tzinfo=timezone(timedelta(hours=3)))
    assert ensure_tz(aware, utc).hour == 5
