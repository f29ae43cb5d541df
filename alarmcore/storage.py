from __future__ import annotations

import copy
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from threading import Lock
from typing import FrozenSet, List, Optional

from .errors import PersistenceFailed
from .timecalc import TimeOfDay, normalize_repeat_days, parse_time_of_day, sort_days

logger = logging.getLogger(__name__)

DEFAULT_SNOOZE_MINUTES = 10
MIN_SNOOZE_MINUTES = 1
MAX_SNOOZE_MINUTES = 60


@dataclass
class AlarmRecord:
    id: str
    time_of_day: TimeOfDay
    created_at: datetime
    updated_at: datetime
    repeat_days: FrozenSet[str] = field(default_factory=frozenset)
    enabled: bool = True
    label: str = "Alarm"
    description: Optional[str] = None
    snooze_enabled: bool = True
    snooze_duration_minutes: int = DEFAULT_SNOOZE_MINUTES
    pending_trigger: Optional[str] = None
    pending_trigger_at: Optional[datetime] = None
    is_snooze_instance: bool = False
    last_fired_at: Optional[datetime] = None

    @property
    def is_repeating(self) -> bool:
        return bool(self.repeat_days)

    def copy(self) -> "AlarmRecord":
        return copy.copy(self)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "time": str(self.time_of_day),
            "repeat_days": sort_days(self.repeat_days),
            "enabled": self.enabled,
            "label": self.label,
            "description": self.description,
            "snooze_enabled": self.snooze_enabled,
            "snooze_duration_minutes": self.snooze_duration_minutes,
            "pending_trigger": self.pending_trigger,
            "pending_trigger_at": _iso(self.pending_trigger_at),
            "is_snooze_instance": self.is_snooze_instance,
            "last_fired_at": _iso(self.last_fired_at),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AlarmRecord":
        alarm_id = data.get("id")
        time_raw = data.get("time")
        created_raw = data.get("created_at")
        if not alarm_id or not time_raw or not created_raw:
            raise ValueError("Alarm payload missing id/time/created_at fields")
        created_at = datetime.fromisoformat(created_raw)
        updated_raw = data.get("updated_at")
        snooze_minutes = int(data.get("snooze_duration_minutes") or DEFAULT_SNOOZE_MINUTES)
        if not MIN_SNOOZE_MINUTES <= snooze_minutes <= MAX_SNOOZE_MINUTES:
            raise ValueError(f"Snooze duration {snooze_minutes} outside [{MIN_SNOOZE_MINUTES}, {MAX_SNOOZE_MINUTES}]")
        return cls(
            id=str(alarm_id),
            time_of_day=parse_time_of_day(time_raw),
            repeat_days=normalize_repeat_days(data.get("repeat_days") or []),
            enabled=bool(data.get("enabled", True)),
            label=str(data.get("label") or "Alarm"),
            description=data.get("description"),
            snooze_enabled=bool(data.get("snooze_enabled", True)),
            snooze_duration_minutes=snooze_minutes,
            pending_trigger=data.get("pending_trigger"),
            pending_trigger_at=_parse_iso(data.get("pending_trigger_at")),
            is_snooze_instance=bool(data.get("is_snooze_instance", False)),
            last_fired_at=_parse_iso(data.get("last_fired_at")),
            created_at=created_at,
            updated_at=datetime.fromisoformat(updated_raw) if updated_raw else created_at,
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_iso(value) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def load_alarms(path: Path) -> List[AlarmRecord]:
    if not path.exists():
        return []
    try:
        with path.open("r", encoding="utf-8") as f:
            payload = json.load(f)
    except (OSError, ValueError) as exc:
        # Refuse to start from an empty list: the next save would wipe the file.
        raise PersistenceFailed(f"Failed to load alarms from {path}: {exc}") from exc
    if payload is not None and not isinstance(payload, list):
        raise PersistenceFailed(f"Alarm file {path} does not contain a list")
    alarms: List[AlarmRecord] = []
    for item in payload or []:
        try:
            alarms.append(AlarmRecord.from_dict(item))
        except (ValueError, TypeError, AttributeError) as exc:
            logger.warning("Skipping alarm item due to parse error: %s", exc)
    return alarms


def save_alarms(path: Path, alarms: List[AlarmRecord]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    serializable = [a.to_dict() for a in alarms]
    tmp = path.with_name(path.name + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(serializable, f, ensure_ascii=False, indent=2)
    os.replace(tmp, path)


class JsonAlarmStore:
    """Whole-collection JSON file store."""

    def __init__(self, path: Path):
        self.path = Path(path)
        self._lock = Lock()

    def load_all(self) -> List[AlarmRecord]:
        with self._lock:
            alarms = load_alarms(self.path)
        logger.info("Loaded %s alarms from %s", len(alarms), self.path)
        return alarms

    def save_all(self, alarms: List[AlarmRecord]) -> None:
        with self._lock:
            try:
                save_alarms(self.path, alarms)
            except OSError as exc:
                raise PersistenceFailed(f"Failed to save alarms to {self.path}: {exc}") from exc
        logger.debug("Saved %s alarms to %s", len(alarms), self.path)


class MemoryAlarmStore:
    """Keeps serialized snapshots in memory, mostly for tests and dry runs."""

    def __init__(self, alarms: Optional[List[AlarmRecord]] = None):
        self._rows = [a.to_dict() for a in alarms or []]
        self.save_count = 0

    def load_all(self) -> List[AlarmRecord]:
        return [AlarmRecord.from_dict(row) for row in self._rows]

    def save_all(self, alarms: List[AlarmRecord]) -> None:
        self._rows = [a.to_dict() for a in alarms]
        self.save_count += 1
