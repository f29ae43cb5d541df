import json
from datetime import timedelta

import pytest

from alarmcore.errors import PersistenceFailed
from alarmcore.storage import AlarmRecord, JsonAlarmStore, MemoryAlarmStore, load_alarms
from alarmcore.timecalc import TimeOfDay

from conftest import MONDAY_0800


def _record(alarm_id="al_1", **overrides) -> AlarmRecord:
    fields = dict(
        id=alarm_id,
        time_of_day=TimeOfDay(7, 30),
        created_at=MONDAY_0800,
        updated_at=MONDAY_0800,
        repeat_days=frozenset({"Wed", "Mon"}),
        label="Work",
        pending_trigger="ntf_abc",
        pending_trigger_at=MONDAY_0800 + timedelta(days=2),
    )
    fields.update(overrides)
    return AlarmRecord(**fields)


def test_json_store_round_trip(tmp_path):
    path = tmp_path / "data" / "alarms.json"
    store = JsonAlarmStore(path)
    original = [_record(), _record("al_2", enabled=False, pending_trigger=None, pending_trigger_at=None)]
    store.save_all(original)

    loaded = store.load_all()
    assert loaded == original
    raw = json.loads(path.read_text(encoding="utf-8"))
    assert raw[0]["time"] == "07:30"
    assert raw[0]["repeat_days"] == ["Mon", "Wed"]
    assert not (tmp_path / "data" / "alarms.json.tmp").exists()


def test_missing_file_means_no_alarms(tmp_path):
    assert JsonAlarmStore(tmp_path / "nope.json").load_all() == []


def test_corrupt_file_raises(tmp_path):
    path = tmp_path / "alarms.json"
    path.write_text("{not json", encoding="utf-8")
    with pytest.raises(PersistenceFailed):
        load_alarms(path)

    path.write_text('{"id": "al_1"}', encoding="utf-8")
    with pytest.raises(PersistenceFailed):
        load_alarms(path)


def test_malformed_items_are_skipped(tmp_path):
    path = tmp_path / "alarms.json"
    good = _record().to_dict()
    path.write_text(
        json.dumps([good, {"id": "al_bad", "time": "99:99", "created_at": "2025-10-20T08:00:00"}, {"label": "x"}, 7]),
        encoding="utf-8",
    )
    loaded = load_alarms(path)
    assert [a.id for a in loaded] == ["al_1"]


def test_out_of_range_snooze_length_is_skipped(tmp_path):
    path = tmp_path / "alarms.json"
    path.write_text(
        json.dumps([_record().to_dict(), dict(_record("al_long").to_dict(), snooze_duration_minutes=90)]),
        encoding="utf-8",
    )
    assert [a.id for a in load_alarms(path)] == ["al_1"]


def test_from_dict_fills_defaults():
    record = AlarmRecord.from_dict({"id": "al_9", "time": "6:05", "created_at": "2025-10-20T08:00:00+00:00"})
    assert record.time_of_day == TimeOfDay(6, 5)
    assert record.enabled is True
    assert record.label == "Alarm"
    assert record.snooze_duration_minutes == 10
    assert record.updated_at == record.created_at
    assert record.repeat_days == frozenset()


def test_memory_store_returns_fresh_copies():
    store = MemoryAlarmStore([_record()])
    first = store.load_all()
    first[0].label = "changed"
    assert store.load_all()[0].label == "Work"
    store.save_all(first)
    assert store.save_count == 1
    assert store.load_all()[0].label == "changed"
