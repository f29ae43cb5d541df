from alarmcore.storage import JsonAlarmStore
from alarmcore.timecalc import compute_next_trigger, describe_alarm, format_repeat_days
from config import load_config
from time_utils import now_in_tz, resolve_timezone


def main():
    cfg = load_config()
    tz = resolve_timezone(cfg.timezone_name)
    now = now_in_tz(tz)
    alarms = JsonAlarmStore(cfg.alarms_path).load_all()
    if not alarms:
        print(f"No alarms in {cfg.alarms_path}")
        return

    print(f"Now: {now.isoformat(timespec='minutes')}")
    for alarm in alarms:
        repeat = format_repeat_days(alarm.repeat_days) or "once"
        status = "on " if alarm.enabled else "off"
        trigger = compute_next_trigger(alarm.time_of_day, alarm.repeat_days, now)
        print(
            f"[{status}] {alarm.id} {alarm.label!r} {alarm.time_of_day} ({repeat}) -> "
            f"{trigger.isoformat(timespec='minutes')} ({describe_alarm(alarm.time_of_day, alarm.repeat_days, now, cfg.use_24h)})"
        )


if __name__ == "__main__":
    main()
