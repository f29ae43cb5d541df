from __future__ import annotations

from typing import Optional


class AlarmError(Exception):
    """Base class for every failure the alarm core reports to its callers."""

    user_message = "Something went wrong with the alarm."

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.user_message)


class InvalidTimeFormat(AlarmError, ValueError):
    user_message = "Invalid time. Use HH:MM in 24-hour format."


class InvalidRepeatDays(AlarmError, ValueError):
    user_message = "Invalid repeat days. Use Mon..Sun, daily, weekdays or weekends."


class InvalidSnoozeDuration(AlarmError, ValueError):
    user_message = "Snooze duration must be between 1 and 60 minutes."


class InvalidPayload(AlarmError, ValueError):
    user_message = "Malformed trigger payload."


class AlarmNotFound(AlarmError, LookupError):
    user_message = "Could not find that alarm."

    def __init__(self, alarm_id: str):
        super().__init__(f"Alarm {alarm_id} not found")
        self.alarm_id = alarm_id


class SnoozeDisabled(AlarmError):
    user_message = "Snooze is turned off for this alarm."


class MaxAlarmsReached(AlarmError):
    user_message = "Too many alarms. Delete one first."


class SchedulingFailed(AlarmError):
    user_message = "Could not schedule alarm."

    def __init__(self, message: Optional[str] = None, alarm=None):
        super().__init__(message)
        # Record left behind in DISABLED state, if any
        self.alarm = alarm


class PersistenceFailed(AlarmError):
    user_message = "Could not save alarms."
