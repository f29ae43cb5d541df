import logging
import signal
import sys
from threading import Lock

from alarmcore.command_router import CommandRouter
from alarmcore.errors import PersistenceFailed
from alarmcore.manager import AlarmLifecycleManager, FireEvent
from alarmcore.notifier import ThreadNotifier
from alarmcore.storage import JsonAlarmStore
from alarmcore.timecalc import format_time_of_day
from config import Config, load_config, setup_logging
from time_utils import ensure_tz, format_tz_offset, now_in_tz, resolve_timezone

logger = logging.getLogger("alarmcore.console")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class ConsoleRuntime:
    def __init__(self, config: Config):
        self.config = config
        self.tzinfo = resolve_timezone(config.timezone_name)
        self._print_lock = Lock()

        self.notifier = ThreadNotifier(check_interval=config.check_interval_ms / 1000.0, clock=self.now)
        self.store = JsonAlarmStore(config.alarms_path)
        self.alarm_manager = AlarmLifecycleManager(
            notifier=self.notifier,
            store=self.store,
            fire_tolerance_seconds=config.fire_tolerance_seconds,
            default_snooze_minutes=config.default_snooze_min,
            on_alarm_fired=self._on_alarm_fired,
            timezone=self.tzinfo,
            clock=self.now,
        )
        self.router = CommandRouter(self.alarm_manager, use_24h=config.use_24h)

    def now(self):
        return now_in_tz(self.tzinfo)

    def start(self) -> None:
        self.alarm_manager.start()
        self.notifier.start()

    def shutdown(self) -> None:
        self.notifier.shutdown()

    def say(self, text: str) -> None:
        with self._print_lock:
            print(text, flush=True)

    def run(self, stream=sys.stdin) -> None:
        self.say(f"Alarm console ready (UTC{format_tz_offset(self.tzinfo)}). Type 'help' for commands.")
        for line in stream:
            result = self.router.handle_text(line, now=self.now())
            if not result:
                continue
            if result.response_text:
                self.say(result.response_text)
            if result.action == "quit":
                break

    def _on_alarm_fired(self, event: FireEvent) -> None:
        when = ensure_tz(event.expected_trigger_at, self.tzinfo)
        hhmm = format_time_of_day(f"{when.hour:02d}:{when.minute:02d}", self.config.use_24h)
        prefix = "Snoozed alarm" if event.is_snooze else "Alarm"
        hint = "'snooze' or 'dismiss'" if event.alarm.snooze_enabled else "'dismiss'"
        self.say(f"\n{prefix}! {event.alarm.label} ({hhmm}). Type {hint}.")


def main() -> None:
    config = load_config()
    setup_logging(config.log_level)
    signal.signal(signal.SIGTERM, graceful_exit)
    logger.info("Starting alarm console (storage=%s)", config.alarms_path)

    runtime = ConsoleRuntime(config)
    try:
        runtime.start()
    except PersistenceFailed as exc:
        logger.error("Cannot start: %s", exc)
        sys.exit(1)
    try:
        runtime.run()
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
