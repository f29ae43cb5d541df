from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock, RLock
from typing import Callable, Dict, Iterable, List, Optional

from .errors import (
    AlarmError,
    AlarmNotFound,
    InvalidSnoozeDuration,
    MaxAlarmsReached,
    PersistenceFailed,
    SchedulingFailed,
    SnoozeDisabled,
)
from .notifier import Notifier, TriggerPayload
from .storage import (
    DEFAULT_SNOOZE_MINUTES,
    MAX_SNOOZE_MINUTES,
    MIN_SNOOZE_MINUTES,
    AlarmRecord,
)
from .timecalc import TimeLike, coerce_time_of_day, compute_next_trigger, normalize_repeat_days

logger = logging.getLogger(__name__)

MAX_ALARMS = 100
DEFAULT_FIRE_TOLERANCE_SECONDS = 30.0

# Changing any of these replaces the pending trigger
_SCHEDULE_FIELDS = ("time_of_day", "repeat_days", "enabled", "snooze_enabled", "snooze_duration_minutes")


class AlarmState(Enum):
    DISABLED = "disabled"
    ARMED = "armed"
    SNOOZED = "snoozed"
    RINGING = "ringing"


def alarm_state(alarm: AlarmRecord) -> AlarmState:
    if not alarm.enabled:
        return AlarmState.DISABLED
    if alarm.pending_trigger is None:
        return AlarmState.RINGING
    if alarm.is_snooze_instance:
        return AlarmState.SNOOZED
    return AlarmState.ARMED


@dataclass
class AlarmInput:
    time_of_day: TimeLike
    repeat_days: Iterable[str] = ()
    enabled: bool = True
    label: str = "Alarm"
    description: Optional[str] = None
    snooze_enabled: bool = True
    snooze_duration_minutes: Optional[int] = None


@dataclass
class AlarmUpdate:
    time_of_day: Optional[TimeLike] = None
    repeat_days: Optional[Iterable[str]] = None
    enabled: Optional[bool] = None
    label: Optional[str] = None
    description: Optional[str] = None
    snooze_enabled: Optional[bool] = None
    snooze_duration_minutes: Optional[int] = None


@dataclass(frozen=True)
class FireEvent:
    alarm: AlarmRecord
    token: str
    expected_trigger_at: datetime
    fired_at: datetime
    is_snooze: bool


def validate_snooze_minutes(minutes) -> int:
    if isinstance(minutes, bool) or not isinstance(minutes, int):
        raise InvalidSnoozeDuration(f"Snooze duration must be an integer, got {minutes!r}")
    if not (MIN_SNOOZE_MINUTES <= minutes <= MAX_SNOOZE_MINUTES):
        raise InvalidSnoozeDuration(
            f"Snooze duration {minutes} outside [{MIN_SNOOZE_MINUTES}, {MAX_SNOOZE_MINUTES}]"
        )
    return minutes


class AlarmLifecycleManager:
    """Owns alarm records and keeps exactly one notifier registration per armed alarm.

    Every mutating call for a given alarm id runs under that id's lock, so a
    fire callback arriving on the notifier thread never interleaves with a
    user-initiated edit of the same alarm. Calls for different ids run
    concurrently.
    """

    def __init__(
        self,
        notifier: Notifier,
        store,
        fire_tolerance_seconds: float = DEFAULT_FIRE_TOLERANCE_SECONDS,
        default_snooze_minutes: int = DEFAULT_SNOOZE_MINUTES,
        on_alarm_fired: Optional[Callable[[FireEvent], None]] = None,
        timezone=None,
        clock: Optional[Callable[[], datetime]] = None,
        max_alarms: int = MAX_ALARMS,
    ):
        if fire_tolerance_seconds < 0:
            raise ValueError("fire_tolerance_seconds must be non-negative")
        self.notifier = notifier
        self.store = store
        self.fire_tolerance = timedelta(seconds=fire_tolerance_seconds)
        self.default_snooze_minutes = validate_snooze_minutes(default_snooze_minutes)
        self.on_alarm_fired = on_alarm_fired
        self.tzinfo = timezone or datetime.now().astimezone().tzinfo
        self.clock = clock or (lambda: datetime.now(self.tzinfo))
        self.max_alarms = max_alarms

        self._alarms: Dict[str, AlarmRecord] = {}
        self._tokens: Dict[str, str] = {}
        self._id_locks: Dict[str, RLock] = {}
        self._lock = Lock()
        self._persist_lock = Lock()
        self._reserved = 0

    def start(self) -> Dict[str, str]:
        """Load stored alarms, hook into the notifier and re-arm enabled alarms."""
        try:
            loaded = self.store.load_all()
        except PersistenceFailed:
            raise
        except Exception as exc:
            raise PersistenceFailed(f"Failed to load alarms: {exc}") from exc

        with self._lock:
            self._alarms = {}
            self._tokens = {}
            for alarm in loaded:
                if not alarm.enabled:
                    _clear_pending(alarm)
                self._alarms[alarm.id] = alarm
                if alarm.pending_trigger:
                    self._tokens[alarm.pending_trigger] = alarm.id
        logger.info("Loaded %s alarms", len(loaded))

        self.notifier.set_fire_handler(self.on_fire)
        restored = self.reschedule_all()
        logger.info("Restored %s armed alarms", len(restored))
        return restored

    def get_by_id(self, alarm_id: str) -> AlarmRecord:
        with self._lock:
            alarm = self._alarms.get(alarm_id)
            if alarm is None:
                raise AlarmNotFound(alarm_id)
            return alarm.copy()

    def list_all(self) -> List[AlarmRecord]:
        with self._lock:
            return [a.copy() for a in sorted(self._alarms.values(), key=lambda a: (a.created_at, a.id))]

    def state_of(self, alarm_id: str) -> AlarmState:
        return alarm_state(self.get_by_id(alarm_id))

    def ringing_alarms(self) -> List[AlarmRecord]:
        return [a for a in self.list_all() if alarm_state(a) is AlarmState.RINGING]

    @property
    def is_ringing(self) -> bool:
        return bool(self.ringing_alarms())

    def next_alarm(self) -> Optional[AlarmRecord]:
        armed = [a for a in self.list_all() if a.pending_trigger and a.pending_trigger_at]
        if not armed:
            return None
        return min(armed, key=lambda a: a.pending_trigger_at)

    def create(self, alarm_input: AlarmInput) -> AlarmRecord:
        """Store a new alarm and arm it when enabled.

        A ``PersistenceFailed`` raised here comes after the record was committed
        and registered, so the alarm is armed in memory and the next successful
        save writes it out.
        """
        time_of_day = coerce_time_of_day(alarm_input.time_of_day)
        repeat_days = normalize_repeat_days(alarm_input.repeat_days)
        snooze_minutes = alarm_input.snooze_duration_minutes
        if snooze_minutes is None:
            snooze_minutes = self.default_snooze_minutes
        snooze_minutes = validate_snooze_minutes(snooze_minutes)
        with self._lock:
            # Slots held by creates that have not committed yet count too
            if len(self._alarms) + self._reserved >= self.max_alarms:
                raise MaxAlarmsReached(f"Cannot keep more than {self.max_alarms} alarms")
            self._reserved += 1
        try:
            return self._create(alarm_input, time_of_day, repeat_days, snooze_minutes)
        finally:
            with self._lock:
                self._reserved -= 1

    def _create(self, alarm_input: AlarmInput, time_of_day, repeat_days, snooze_minutes: int) -> AlarmRecord:
        now = self._now()
        record = AlarmRecord(
            id=f"al_{uuid.uuid4().hex[:8]}",
            time_of_day=time_of_day,
            repeat_days=repeat_days,
            enabled=bool(alarm_input.enabled),
            label=alarm_input.label or "Alarm",
            description=alarm_input.description,
            snooze_enabled=bool(alarm_input.snooze_enabled),
            snooze_duration_minutes=snooze_minutes,
            created_at=now,
            updated_at=now,
        )
        with self._id_lock(record.id):
            if record.enabled:
                self._arm_or_disable(record, now)
            self._commit(record)
            self._persist()
        logger.info("Created alarm %s at %s (enabled=%s)", record.id, record.time_of_day, record.enabled)
        return record.copy()

    def edit(self, alarm_id: str, updates: AlarmUpdate) -> AlarmRecord:
        with self._id_lock(alarm_id):
            current = self._require(alarm_id)
            record = current.copy()
            if updates.time_of_day is not None:
                record.time_of_day = coerce_time_of_day(updates.time_of_day)
            if updates.repeat_days is not None:
                record.repeat_days = normalize_repeat_days(updates.repeat_days)
            if updates.enabled is not None:
                record.enabled = bool(updates.enabled)
            if updates.snooze_enabled is not None:
                record.snooze_enabled = bool(updates.snooze_enabled)
            if updates.snooze_duration_minutes is not None:
                record.snooze_duration_minutes = validate_snooze_minutes(updates.snooze_duration_minutes)
            if updates.label is not None:
                record.label = updates.label or "Alarm"
            if updates.description is not None:
                record.description = updates.description or None

            now = self._now()
            record.updated_at = now
            if any(getattr(record, name) != getattr(current, name) for name in _SCHEDULE_FIELDS):
                self._cancel(record)
                if record.enabled:
                    self._arm_or_disable(record, now)
            self._commit(record)
            self._persist()
        logger.info("Edited alarm %s", alarm_id)
        return record.copy()

    def set_enabled(self, alarm_id: str, enabled: bool) -> AlarmRecord:
        with self._id_lock(alarm_id):
            record = self._require(alarm_id).copy()
            if enabled and record.enabled and record.pending_trigger:
                return record
            if not enabled and not record.enabled and not record.pending_trigger:
                return record

            now = self._now()
            self._cancel(record)
            record.enabled = enabled
            record.updated_at = now
            if enabled:
                self._arm_or_disable(record, now)
            self._commit(record)
            self._persist()
        logger.info("Alarm %s %s", alarm_id, "enabled" if enabled else "disabled")
        return record.copy()

    def toggle(self, alarm_id: str) -> AlarmRecord:
        with self._id_lock(alarm_id):
            return self.set_enabled(alarm_id, not self._require(alarm_id).enabled)

    def delete(self, alarm_id: str) -> AlarmRecord:
        with self._id_lock(alarm_id):
            record = self._require(alarm_id).copy()
            self._cancel(record)
            with self._lock:
                removed = self._alarms.pop(alarm_id)
                if removed.pending_trigger:
                    self._tokens.pop(removed.pending_trigger, None)
            self._persist()
        with self._lock:
            self._id_locks.pop(alarm_id, None)
        logger.info("Deleted alarm %s", alarm_id)
        return record

    def on_fire(
        self,
        token: str,
        payload: TriggerPayload,
        actual_invocation_time: Optional[datetime] = None,
    ) -> Optional[FireEvent]:
        """Handle a wake-up from the notifier.

        Unknown tokens, tokens that no longer match the alarm's pending trigger
        and callbacks arriving earlier than ``expected_trigger_at`` minus the
        tolerance are ignored and return ``None``. Some notification backends
        invoke the callback at registration time; those calls land here.
        """
        actual = actual_invocation_time or self._now()
        with self._lock:
            alarm_id = self._tokens.get(token)
        if alarm_id is None:
            logger.debug("Ignoring fire for unknown or stale token %s", token)
            return None
        if payload.alarm_id != alarm_id:
            logger.warning("Ignoring fire %s: payload names %s, token belongs to %s", token, payload.alarm_id, alarm_id)
            return None

        with self._id_lock(alarm_id):
            with self._lock:
                current = self._alarms.get(alarm_id)
            if current is None or current.pending_trigger != token:
                logger.debug("Ignoring fire for superseded token %s", token)
                return None
            earliest = payload.expected_trigger_at - self.fire_tolerance
            if actual < earliest:
                logger.info(
                    "Ignoring premature fire for alarm %s: expected %s, invoked %s",
                    alarm_id,
                    payload.expected_trigger_at.isoformat(),
                    actual.isoformat(),
                )
                return None

            record = current.copy()
            _clear_pending(record)
            record.last_fired_at = payload.expected_trigger_at
            record.updated_at = actual
            self._commit(record)
            try:
                self._persist()
            except PersistenceFailed:
                # The alarm still rings; the next mutation rewrites the store.
                logger.error("Failed to persist fired alarm %s", alarm_id, exc_info=True)

        event = FireEvent(
            alarm=record.copy(),
            token=token,
            expected_trigger_at=payload.expected_trigger_at,
            fired_at=actual,
            is_snooze=payload.is_snooze,
        )
        logger.info("Alarm %s fired (snooze=%s, label=%s)", alarm_id, payload.is_snooze, record.label)
        if self.on_alarm_fired:
            try:
                self.on_alarm_fired(event)
            except Exception:
                logger.error("on_alarm_fired callback failed", exc_info=True)
        return event

    def snooze(self, alarm_id: str, duration_minutes: Optional[int] = None) -> AlarmRecord:
        """Re-arm ``alarm_id`` as a one-off wake-up ``duration_minutes`` from now.

        As with :meth:`create`, ``PersistenceFailed`` leaves the snooze armed in
        memory; only the store is behind.
        """
        with self._id_lock(alarm_id):
            record = self._require(alarm_id).copy()
            if not record.snooze_enabled:
                raise SnoozeDisabled(f"Snooze is disabled for alarm {alarm_id}")
            minutes = validate_snooze_minutes(
                record.snooze_duration_minutes if duration_minutes is None else duration_minutes
            )
            now = self._now()
            self._cancel(record)
            record.enabled = True
            record.updated_at = now
            try:
                self._register(record, now + timedelta(minutes=minutes), is_snooze=True)
            except SchedulingFailed as exc:
                self._disarm_after_failure(record, exc)
            self._commit(record)
            self._persist()
        logger.info("Alarm %s snoozed for %s minutes", alarm_id, minutes)
        return record.copy()

    def dismiss(self, alarm_id: str) -> AlarmRecord:
        with self._id_lock(alarm_id):
            record = self._require(alarm_id).copy()
            now = self._now()
            self._cancel(record)
            record.updated_at = now
            if record.is_repeating and record.enabled:
                self._arm_or_disable(record, now)
            else:
                record.enabled = False
            self._commit(record)
            self._persist()
        logger.info("Alarm %s dismissed (%s)", alarm_id, alarm_state(record).value)
        return record.copy()

    def reschedule_all(self, alarms: Optional[Iterable[AlarmRecord]] = None) -> Dict[str, str]:
        """(Re)arm every enabled alarm; returns ``{alarm_id: token}`` for the ones that succeeded.

        A snooze still in the future is restored as a snooze. Failures are
        logged per alarm, leave that alarm disabled and never stop the rest of
        the batch.
        """
        if alarms is None:
            alarms = self.list_all()
        targets = [a.id for a in alarms if a.enabled]
        results: Dict[str, str] = {}
        for alarm_id in targets:
            try:
                with self._id_lock(alarm_id):
                    record = self._require(alarm_id).copy()
                    if not record.enabled:
                        continue
                    now = self._now()
                    snooze_at = record.pending_trigger_at if record.is_snooze_instance else None
                    self._cancel(record)
                    try:
                        if snooze_at is not None and snooze_at > now:
                            self._register(record, snooze_at, is_snooze=True)
                        else:
                            self._arm(record, now)
                    except SchedulingFailed:
                        record.enabled = False
                        _clear_pending(record)
                        raise
                    finally:
                        self._commit(record)
                results[alarm_id] = record.pending_trigger
            except AlarmError as exc:
                logger.error("Failed to reschedule alarm %s: %s", alarm_id, exc, exc_info=True)
        try:
            self._persist()
        except PersistenceFailed:
            logger.error("Failed to persist alarms after rescheduling", exc_info=True)
        logger.info("Rescheduled %s of %s enabled alarms", len(results), len(targets))
        return results

    def _now(self) -> datetime:
        return self.clock()

    def _id_lock(self, alarm_id: str) -> RLock:
        with self._lock:
            lock = self._id_locks.get(alarm_id)
            if lock is None:
                lock = self._id_locks[alarm_id] = RLock()
            return lock

    def _require(self, alarm_id: str) -> AlarmRecord:
        with self._lock:
            alarm = self._alarms.get(alarm_id)
        if alarm is None:
            raise AlarmNotFound(alarm_id)
        return alarm

    def _commit(self, record: AlarmRecord) -> None:
        with self._lock:
            previous = self._alarms.get(record.id)
            if previous and previous.pending_trigger:
                self._tokens.pop(previous.pending_trigger, None)
            if record.pending_trigger:
                self._tokens[record.pending_trigger] = record.id
            self._alarms[record.id] = record.copy()

    def _persist(self) -> None:
        with self._persist_lock:
            snapshot = self.list_all()
            try:
                self.store.save_all(snapshot)
            except PersistenceFailed:
                raise
            except Exception as exc:
                raise PersistenceFailed(f"Failed to save alarms: {exc}") from exc

    def _cancel(self, record: AlarmRecord) -> None:
        token = record.pending_trigger
        if token:
            try:
                self.notifier.cancel(token)
            except Exception as exc:
                raise SchedulingFailed(f"Failed to cancel wake-up {token}: {exc}") from exc
            logger.debug("Cancelled trigger %s for alarm %s", token, record.id)
        _clear_pending(record)

    def _register(self, record: AlarmRecord, trigger_at: datetime, is_snooze: bool) -> None:
        payload = TriggerPayload(alarm_id=record.id, expected_trigger_at=trigger_at, is_snooze=is_snooze)
        try:
            token = self.notifier.schedule(trigger_at, payload)
        except Exception as exc:
            raise SchedulingFailed(f"Failed to schedule alarm {record.id}: {exc}") from exc
        record.pending_trigger = token
        record.pending_trigger_at = trigger_at
        record.is_snooze_instance = is_snooze
        logger.info(
            "Alarm %s armed for %s (token=%s, snooze=%s)", record.id, trigger_at.isoformat(), token, is_snooze
        )

    def _arm(self, record: AlarmRecord, now: datetime) -> None:
        reference = now
        if record.last_fired_at and record.last_fired_at > now:
            reference = record.last_fired_at
        trigger_at = compute_next_trigger(record.time_of_day, record.repeat_days, reference)
        self._register(record, trigger_at, is_snooze=False)

    def _arm_or_disable(self, record: AlarmRecord, now: datetime) -> None:
        try:
            self._arm(record, now)
        except SchedulingFailed as exc:
            self._disarm_after_failure(record, exc)

    def _disarm_after_failure(self, record: AlarmRecord, exc: SchedulingFailed) -> None:
        record.enabled = False
        _clear_pending(record)
        self._commit(record)
        try:
            self._persist()
        except PersistenceFailed:
            logger.error("Failed to persist disarmed alarm %s", record.id, exc_info=True)
        logger.warning("Alarm %s left disabled: %s", record.id, exc)
        raise SchedulingFailed(str(exc), alarm=record.copy()) from exc


def _clear_pending(record: AlarmRecord) -> None:
    record.pending_trigger = None
    record.pending_trigger_at = None
    record.is_snooze_instance = False
