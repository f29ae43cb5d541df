from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional

from .commands import AlarmCommand, parse_command
from .errors import AlarmError, AlarmNotFound, SchedulingFailed
from .manager import AlarmInput, AlarmLifecycleManager, AlarmState, AlarmUpdate, alarm_state
from .storage import AlarmRecord
from .timecalc import WEEKDAYS, format_repeat_days, format_time_of_day

logger = logging.getLogger(__name__)

HELP_TEXT = """Commands:
  add HH:MM [days] [label]     days: mon,wed | daily | weekdays | weekends
  list                         show alarms with their numbers
  next                         show the next alarm to ring
  enable N | disable N | toggle N
  edit N time=HH:MM days=... label=... note=... snooze=MIN|on|off
  delete N
  snooze [N] [MIN]             defaults to the ringing alarm and its snooze length
  dismiss [N]                  stop the ringing alarm
  quit"""


@dataclass
class CommandResult:
    handled: bool
    response_text: Optional[str] = None
    action: Optional[str] = None
    alarm: Optional[AlarmRecord] = None


class CommandRouter:
    def __init__(self, alarm_manager: AlarmLifecycleManager, use_24h: bool = True):
        self.alarm_manager = alarm_manager
        self.use_24h = use_24h

    def handle_text(self, text: str, now: datetime) -> Optional[CommandResult]:
        parsed = parse_command(text)
        if not parsed:
            return None
        logger.debug("Parsed command: %s", parsed)
        try:
            return self._dispatch(parsed, now)
        except SchedulingFailed as exc:
            logger.warning("Command %s could not schedule: %s", parsed.action, exc)
            resp = exc.user_message
            if exc.alarm is not None:
                resp += " The alarm was saved but is turned off."
            return CommandResult(handled=True, response_text=resp, action=parsed.action, alarm=exc.alarm)
        except AlarmError as exc:
            logger.info("Command %s failed: %s", parsed.action, exc)
            return CommandResult(handled=True, response_text=exc.user_message, action=parsed.action)

    def _dispatch(self, parsed: AlarmCommand, now: datetime) -> CommandResult:
        action = parsed.action
        if action == "unknown":
            return CommandResult(handled=True, response_text=parsed.error, action=action)
        if action == "help":
            return CommandResult(handled=True, response_text=HELP_TEXT, action=action)
        if action == "quit":
            return CommandResult(handled=True, response_text="Bye.", action=action)

        if action == "list":
            alarms = self.alarm_manager.list_all()
            if not alarms:
                return CommandResult(handled=True, response_text="No alarms yet.", action=action)
            lines = [self.format_alarm_line(idx, alarm, now) for idx, alarm in enumerate(alarms, start=1)]
            return CommandResult(handled=True, response_text="Your alarms:\n" + "\n".join(lines), action=action)

        if action == "next":
            upcoming = self.alarm_manager.next_alarm()
            if not upcoming:
                return CommandResult(handled=True, response_text="No alarm is armed.", action=action)
            resp = f"Next: {upcoming.label} {format_trigger(upcoming.pending_trigger_at, now, self.use_24h)}."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=upcoming)

        if action == "add":
            alarm = self.alarm_manager.create(
                AlarmInput(
                    time_of_day=parsed.time_of_day,
                    repeat_days=parsed.repeat_days or [],
                    label=parsed.label or "Alarm",
                )
            )
            resp = f"Alarm set for {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=alarm)

        if action in ("enable", "disable", "toggle"):
            target = self._resolve(parsed.target)
            if action == "toggle":
                alarm = self.alarm_manager.toggle(target.id)
            else:
                alarm = self.alarm_manager.set_enabled(target.id, action == "enable")
            if alarm.enabled:
                resp = f"'{alarm.label}' is on, rings {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}."
            else:
                resp = f"'{alarm.label}' is off."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=alarm)

        if action == "edit":
            target = self._resolve(parsed.target)
            alarm = self.alarm_manager.edit(target.id, AlarmUpdate(**parsed.updates))
            resp = f"Updated '{alarm.label}'."
            if alarm.pending_trigger_at:
                resp += f" Rings {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=alarm)

        if action == "delete":
            target = self._resolve(parsed.target)
            removed = self.alarm_manager.delete(target.id)
            return CommandResult(
                handled=True, response_text=f"Deleted '{removed.label}'.", action=action, alarm=removed
            )

        if action == "snooze":
            target = self._resolve(parsed.target) if parsed.target else self._active_alarm(include_snoozed=False)
            if not target:
                return CommandResult(handled=True, response_text="Nothing is ringing, nothing to snooze.", action=action)
            alarm = self.alarm_manager.snooze(target.id, parsed.snooze_minutes)
            resp = f"Snoozed until {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=alarm)

        if action == "dismiss":
            target = self._resolve(parsed.target) if parsed.target else self._active_alarm(include_snoozed=True)
            if not target:
                return CommandResult(handled=True, response_text="Nothing is ringing right now.", action=action)
            alarm = self.alarm_manager.dismiss(target.id)
            if alarm.enabled:
                resp = f"Dismissed. Next time {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}."
            else:
                resp = "Dismissed."
            return CommandResult(handled=True, response_text=resp, action=action, alarm=alarm)

        return CommandResult(handled=True, response_text=None, action=action)

    def format_alarm_line(self, idx: int, alarm: AlarmRecord, now: datetime) -> str:
        repeat = format_repeat_days(alarm.repeat_days) or "once"
        state = alarm_state(alarm)
        line = f"{idx}) {format_time_of_day(alarm.time_of_day, self.use_24h)} {alarm.label} [{repeat}] {state.value}"
        if alarm.pending_trigger_at:
            line += f", rings {format_trigger(alarm.pending_trigger_at, now, self.use_24h)}"
        return line

    def _resolve(self, target: Optional[str]) -> AlarmRecord:
        alarms = self.alarm_manager.list_all()
        if not target:
            raise AlarmNotFound("")
        if target.isdigit():
            index = int(target)
            if 1 <= index <= len(alarms):
                return alarms[index - 1]
            raise AlarmNotFound(target)
        matches = [a for a in alarms if a.id.startswith(target)]
        if len(matches) != 1:
            raise AlarmNotFound(target)
        return matches[0]

    def _active_alarm(self, include_snoozed: bool) -> Optional[AlarmRecord]:
        ringing: List[AlarmRecord] = self.alarm_manager.ringing_alarms()
        if ringing:
            return max(ringing, key=lambda a: a.updated_at)
        if include_snoozed:
            snoozed = [a for a in self.alarm_manager.list_all() if alarm_state(a) is AlarmState.SNOOZED]
            if snoozed:
                return min(snoozed, key=lambda a: a.pending_trigger_at)
        return None


def format_trigger(dt: Optional[datetime], now: datetime, use_24h: bool = True) -> str:
    if dt is None:
        return "never"
    time_part = format_time_of_day(f"{dt.hour:02d}:{dt.minute:02d}", use_24h)
    delta_days = (dt.date() - now.date()).days
    if delta_days == 0:
        return f"today at {time_part}"
    if delta_days == 1:
        return f"tomorrow at {time_part}"
    if 1 < delta_days < 7:
        return f"{WEEKDAYS[dt.weekday()]} at {time_part}"
    return f"{dt.strftime('%d.%m')} at {time_part}"
