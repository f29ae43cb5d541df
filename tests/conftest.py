import itertools
from datetime import datetime, timedelta, timezone

import pytest

from alarmcore.manager import AlarmLifecycleManager
from alarmcore.storage import MemoryAlarmStore


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeNotifier:
    """Records registrations instead of waking anything up."""

    def __init__(self):
        self.scheduled = {}
        self.cancelled = []
        self.handler = None
        self.fail_schedule = False
        self.fail_for = set()
        self._ids = itertools.count(1)

    def set_fire_handler(self, handler):
        self.handler = handler

    def schedule(self, trigger_at, payload):
        if self.fail_schedule or payload.alarm_id in self.fail_for:
            raise RuntimeError("platform refused the wake-up")
        token = f"tok{next(self._ids)}"
        self.scheduled[token] = (trigger_at, payload)
        return token

    def cancel(self, token):
        self.cancelled.append(token)
        self.scheduled.pop(token, None)

    def tokens_for(self, alarm_id):
        return [t for t, (_, p) in list(self.scheduled.items()) if p.alarm_id == alarm_id]

    def fire(self, token, at):
        trigger_at, payload = self.scheduled.pop(token)
        return self.handler(token, payload, at)


class FailingStore(MemoryAlarmStore):
    def __init__(self):
        super().__init__()
        self.fail = True

    def save_all(self, alarms):
        if self.fail:
            raise OSError("disk full")
        super().save_all(alarms)


# Monday
MONDAY_0800 = datetime(2025, 10, 20, 8, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FakeClock(MONDAY_0800)


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def store():
    return MemoryAlarmStore()


@pytest.fixture
def fired():
    return []


@pytest.fixture
def manager(notifier, store, clock, fired):
    mgr = AlarmLifecycleManager(
        notifier=notifier,
        store=store,
        fire_tolerance_seconds=30,
        on_alarm_fired=fired.append,
        timezone=timezone.utc,
        clock=clock,
    )
    notifier.set_fire_handler(mgr.on_fire)
    return mgr
