"""Alarm scheduling core: trigger-time math and the alarm lifecycle."""

from .errors import AlarmError, AlarmNotFound, InvalidTimeFormat, PersistenceFailed, SchedulingFailed
from .manager import AlarmInput, AlarmLifecycleManager, AlarmState, AlarmUpdate, FireEvent
from .notifier import ThreadNotifier, TriggerPayload
from .storage import AlarmRecord, JsonAlarmStore, MemoryAlarmStore
from .timecalc import compute_next_trigger, describe_next_occurrence
