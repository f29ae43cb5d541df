from datetime import datetime, timedelta, timezone

import pytest

from alarmcore.command_router import CommandRouter, format_trigger
from alarmcore.manager import AlarmState


@pytest.fixture
def router(manager):
    return CommandRouter(manager, use_24h=True)


def test_add_and_list(router, clock):
    result = router.handle_text("add 09:00 Work", now=clock.now)
    assert result.handled
    assert result.response_text == "Alarm set for today at 09:00."
    assert result.alarm.label == "Work"

    listing = router.handle_text("list", now=clock.now)
    assert listing.response_text == "Your alarms:\n1) 09:00 Work [once] armed, rings today at 09:00"


def test_blank_line_returns_none(router, clock):
    assert router.handle_text("  ", now=clock.now) is None


def test_empty_list(router, clock):
    assert router.handle_text("ls", now=clock.now).response_text == "No alarms yet."


def test_snooze_and_dismiss_ringing_alarm(router, manager, notifier, clock):
    alarm = router.handle_text("add 09:00", now=clock.now).alarm
    clock.now = alarm.pending_trigger_at
    notifier.fire(alarm.pending_trigger, clock.now)

    snoozed = router.handle_text("snooze 5m", now=clock.now)
    assert snoozed.response_text == "Snoozed until today at 09:05."
    assert manager.state_of(alarm.id) is AlarmState.SNOOZED

    dismissed = router.handle_text("dismiss", now=clock.now)
    assert dismissed.response_text == "Dismissed."
    assert manager.state_of(alarm.id) is AlarmState.DISABLED


def test_dismiss_repeating_reports_next_time(router, notifier, clock):
    alarm = router.handle_text("add 09:00 mon,tue", now=clock.now).alarm
    clock.now = alarm.pending_trigger_at
    notifier.fire(alarm.pending_trigger, clock.now)
    result = router.handle_text("stop", now=clock.now)
    assert result.response_text == "Dismissed. Next time tomorrow at 09:00."


def test_nothing_ringing(router, clock):
    router.handle_text("add 09:00", now=clock.now)
    assert router.handle_text("snooze", now=clock.now).response_text == "Nothing is ringing, nothing to snooze."
    assert router.handle_text("dismiss", now=clock.now).response_text == "Nothing is ringing right now."


def test_failed_restore_is_not_treated_as_ringing(manager, notifier, clock):
    router = CommandRouter(manager)
    alarm = router.handle_text("add 09:00", now=clock.now).alarm
    notifier.fail_for.add(alarm.id)
    manager.reschedule_all()
    assert router.handle_text("dismiss", now=clock.now).response_text == "Nothing is ringing right now."
    assert router.handle_text("snooze", now=clock.now).response_text == "Nothing is ringing, nothing to snooze."
    assert router.handle_text("list", now=clock.now).response_text == "Your alarms:\n1) 09:00 Alarm [once] disabled"


def test_enable_disable_and_delete(router, clock):
    router.handle_text("add 07:00 Early", now=clock.now)
    assert router.handle_text("off 1", now=clock.now).response_text == "'Early' is off."
    assert router.handle_text("on 1", now=clock.now).response_text == "'Early' is on, rings tomorrow at 07:00."
    assert router.handle_text("delete 1", now=clock.now).response_text == "Deleted 'Early'."
    assert router.handle_text("delete 1", now=clock.now).response_text == "Could not find that alarm."


def test_resolve_by_id_prefix(router, clock):
    alarm = router.handle_text("add 07:00", now=clock.now).alarm
    result = router.handle_text(f"edit {alarm.id[:6]} label=Renamed", now=clock.now)
    assert result.response_text == "Updated 'Renamed'. Rings tomorrow at 07:00."


def test_scheduling_failure_is_reported(router, notifier, clock):
    notifier.fail_schedule = True
    result = router.handle_text("add 09:00", now=clock.now)
    assert result.response_text == "Could not schedule alarm. The alarm was saved but is turned off."
    assert result.alarm.enabled is False


def test_alarm_errors_use_user_message(router, clock):
    alarm = router.handle_text("add 09:00", now=clock.now).alarm
    router.handle_text("edit 1 snooze=off", now=clock.now)
    result = router.handle_text(f"snooze {alarm.id}", now=clock.now)
    assert result.response_text == "Snooze is turned off for this alarm."
    assert router.handle_text("edit 1 snooze=90", now=clock.now).response_text.startswith("Snooze duration")


def test_twelve_hour_listing(manager, clock):
    router = CommandRouter(manager, use_24h=False)
    router.handle_text("add 13:15 weekends Brunch", now=clock.now)
    listing = router.handle_text("list", now=clock.now)
    assert listing.response_text == "Your alarms:\n1) 1:15 PM Brunch [Weekends] armed, rings Sat at 1:15 PM"


def test_format_trigger():
    now = datetime(2025, 10, 20, 8, 0, tzinfo=timezone.utc)
    assert format_trigger(None, now) == "never"
    assert format_trigger(now + timedelta(days=2), now) == "Wed at 08:00"
    assert format_trigger(now + timedelta(days=9), now) == "29.10 at 08:00"
