from __future__ import annotations

import re
import shlex
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from .errors import InvalidRepeatDays
from .timecalc import WEEKDAYS, is_valid_time_string, normalize_repeat_days, sort_days

ALIASES = {
    "new": "add",
    "set": "add",
    "ls": "list",
    "on": "enable",
    "off": "disable",
    "rm": "delete",
    "remove": "delete",
    "stop": "dismiss",
    "exit": "quit",
    "?": "help",
}

DAY_GROUPS = {
    "daily": list(WEEKDAYS),
    "everyday": list(WEEKDAYS),
    "weekdays": list(WEEKDAYS[:5]),
    "weekends": list(WEEKDAYS[5:]),
    "once": [],
    "none": [],
}

SIMPLE_ACTIONS = {"list", "next", "help", "quit"}
TARGET_ACTIONS = {"enable", "disable", "toggle", "delete"}

_MINUTES_RE = re.compile(r"^(\d+)\s*m(?:in(?:utes?)?)?$")


@dataclass
class AlarmCommand:
    action: str
    target: Optional[str] = None
    time_of_day: Optional[str] = None
    repeat_days: Optional[List[str]] = None
    label: Optional[str] = None
    snooze_minutes: Optional[int] = None
    updates: Dict[str, object] = field(default_factory=dict)
    error: Optional[str] = None
    raw_text: str = ""


def parse_command(text: str) -> Optional[AlarmCommand]:
    """Parse one console line into a structured command, or ``None`` for blank input."""
    cleaned = text.strip()
    if not cleaned:
        return None
    try:
        tokens = shlex.split(cleaned)
    except ValueError:
        return _unknown(cleaned, "Unbalanced quotes in command.")
    if not tokens:
        return None

    verb = tokens[0].lower()
    verb = ALIASES.get(verb, verb)
    args = tokens[1:]

    if verb in SIMPLE_ACTIONS:
        return AlarmCommand(action=verb, raw_text=cleaned)
    if verb in TARGET_ACTIONS:
        if not args:
            return _unknown(cleaned, f"Which alarm should I {verb}? Give its number from 'list'.")
        return AlarmCommand(action=verb, target=args[0], raw_text=cleaned)
    if verb == "add":
        return _parse_add(args, cleaned)
    if verb == "edit":
        return _parse_edit(args, cleaned)
    if verb == "snooze":
        return _parse_snooze(args, cleaned)
    if verb == "dismiss":
        return AlarmCommand(action="dismiss", target=args[0] if args else None, raw_text=cleaned)
    return _unknown(cleaned, f"Unknown command '{tokens[0]}'. Type 'help' for the list.")


def parse_days(value: str) -> Optional[List[str]]:
    """``mon,wed`` / ``daily`` / ``weekdays`` -> sorted labels; ``None`` when the value names no days."""
    key = value.strip().lower()
    if key in DAY_GROUPS:
        return list(DAY_GROUPS[key])
    try:
        days = normalize_repeat_days(part for part in key.split(",") if part)
    except InvalidRepeatDays:
        return None
    if not days:
        return None
    return sort_days(days)


def _parse_add(args: List[str], cleaned: str) -> AlarmCommand:
    if not args or not is_valid_time_string(args[0]):
        return _unknown(cleaned, "Didn't understand the time. Use HH:MM, for example 'add 07:30'.")
    command = AlarmCommand(action="add", time_of_day=args[0], repeat_days=[], raw_text=cleaned)
    rest = args[1:]
    if rest:
        days = parse_days(rest[0])
        if days is not None:
            command.repeat_days = days
            rest = rest[1:]
    if rest:
        command.label = " ".join(rest)
    return command


def _parse_edit(args: List[str], cleaned: str) -> AlarmCommand:
    if not args:
        return _unknown(cleaned, "Which alarm should I edit?")
    command = AlarmCommand(action="edit", target=args[0], raw_text=cleaned)
    for item in args[1:]:
        key, sep, value = item.partition("=")
        key = key.lower()
        if not sep:
            return _unknown(cleaned, f"Expected key=value, got '{item}'.")
        if key == "time":
            if not is_valid_time_string(value):
                return _unknown(cleaned, f"Invalid time '{value}', use HH:MM.")
            command.updates["time_of_day"] = value
        elif key == "days":
            days = parse_days(value)
            if days is None:
                return _unknown(cleaned, f"Invalid days '{value}'.")
            command.updates["repeat_days"] = days
        elif key == "label":
            command.updates["label"] = value
        elif key == "note":
            command.updates["description"] = value
        elif key == "snooze":
            if value.lower() in ("off", "no"):
                command.updates["snooze_enabled"] = False
            elif value.lower() in ("on", "yes"):
                command.updates["snooze_enabled"] = True
            elif value.isdigit():
                command.updates["snooze_enabled"] = True
                command.updates["snooze_duration_minutes"] = int(value)
            else:
                return _unknown(cleaned, f"Invalid snooze value '{value}'.")
        else:
            return _unknown(cleaned, f"Unknown field '{key}'.")
    if not command.updates:
        return _unknown(cleaned, "Nothing to change. Use time=, days=, label=, note= or snooze=.")
    return command


def _parse_snooze(args: List[str], cleaned: str) -> AlarmCommand:
    command = AlarmCommand(action="snooze", raw_text=cleaned)
    bare: List[str] = []
    for item in args:
        match = _MINUTES_RE.match(item.lower())
        if match:
            command.snooze_minutes = int(match.group(1))
        else:
            bare.append(item)
    if bare:
        command.target = bare[0]
    if len(bare) > 1:
        if not bare[1].isdigit():
            return _unknown(cleaned, f"Invalid snooze minutes '{bare[1]}'.")
        command.snooze_minutes = int(bare[1])
    return command


def _unknown(cleaned: str, error: str) -> AlarmCommand:
    return AlarmCommand(action="unknown", error=error, raw_text=cleaned)
