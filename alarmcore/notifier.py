from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from threading import Event, Lock, Thread
from typing import Callable, Dict, List, Optional, Protocol, Tuple

from .errors import InvalidPayload

logger = logging.getLogger(__name__)

FireHandler = Callable[[str, "TriggerPayload", datetime], None]


@dataclass(frozen=True)
class TriggerPayload:
    alarm_id: str
    expected_trigger_at: datetime
    is_snooze: bool

    def to_dict(self) -> dict:
        return {
            "alarm_id": self.alarm_id,
            "expected_trigger_at": self.expected_trigger_at.isoformat(),
            "is_snooze": self.is_snooze,
        }

    @classmethod
    def from_dict(cls, data) -> "TriggerPayload":
        """Validate a raw payload coming back from a notification backend."""
        if not isinstance(data, dict):
            raise InvalidPayload(f"Payload must be a mapping, got {type(data).__name__}")
        alarm_id = data.get("alarm_id")
        expected_raw = data.get("expected_trigger_at")
        is_snooze = data.get("is_snooze")
        if not isinstance(alarm_id, str) or not alarm_id:
            raise InvalidPayload("Payload missing alarm_id")
        if not isinstance(is_snooze, bool):
            raise InvalidPayload("Payload is_snooze must be a boolean")
        if isinstance(expected_raw, datetime):
            expected = expected_raw
        elif isinstance(expected_raw, str):
            try:
                expected = datetime.fromisoformat(expected_raw)
            except ValueError as exc:
                raise InvalidPayload(f"Bad expected_trigger_at {expected_raw!r}") from exc
        else:
            raise InvalidPayload("Payload missing expected_trigger_at")
        return cls(alarm_id=alarm_id, expected_trigger_at=expected, is_snooze=is_snooze)


class Notifier(Protocol):
    def schedule(self, trigger_at: datetime, payload: TriggerPayload) -> str:
        ...

    def cancel(self, token: str) -> None:
        ...

    def set_fire_handler(self, handler: FireHandler) -> None:
        ...


class ThreadNotifier:
    """In-process one-shot wake-ups driven by a polling daemon thread.

    Payloads are stored in serialized form, the way a platform notification
    backend would keep them, and validated again on the way out.
    """

    def __init__(self, check_interval: float = 0.5, clock: Optional[Callable[[], datetime]] = None):
        self.check_interval = max(0.05, check_interval)
        self.clock = clock or (lambda: datetime.now().astimezone())
        self._handler: Optional[FireHandler] = None
        self._pending: Dict[str, Tuple[datetime, dict]] = {}
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def set_fire_handler(self, handler: FireHandler) -> None:
        if self._handler is not None and self._handler is not handler:
            logger.warning("Replacing previously registered fire handler")
        self._handler = handler

    def schedule(self, trigger_at: datetime, payload: TriggerPayload) -> str:
        token = f"ntf_{uuid.uuid4().hex[:12]}"
        with self._lock:
            self._pending[token] = (trigger_at, payload.to_dict())
        logger.info("Registered wake-up %s at %s (alarm=%s)", token, trigger_at.isoformat(), payload.alarm_id)
        return token

    def cancel(self, token: str) -> None:
        with self._lock:
            removed = self._pending.pop(token, None)
        if removed:
            logger.info("Cancelled wake-up %s", token)
        else:
            logger.debug("Cancel for unknown or already fired wake-up %s", token)

    def pending_tokens(self) -> List[str]:
        with self._lock:
            return list(self._pending)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="alarm-notifier", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def fire_due(self, now: Optional[datetime] = None) -> int:
        """Deliver every registration due at ``now``; returns how many fired."""
        now = now or self.clock()
        due = self._pop_due(now)
        for token, raw in due:
            self._deliver(token, raw, now)
        return len(due)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.fire_due()
            except Exception:  # pragma: no cover - keep the wake-up thread alive
                logger.error("Notifier loop iteration failed", exc_info=True)
            self._stop_event.wait(self.check_interval)

    def _pop_due(self, now: datetime) -> List[Tuple[str, dict]]:
        with self._lock:
            due = sorted(
                ((at, token) for token, (at, _) in self._pending.items() if at <= now),
                key=lambda item: item[0],
            )
            return [(token, self._pending.pop(token)[1]) for _, token in due]

    def _deliver(self, token: str, raw: dict, now: datetime) -> None:
        try:
            payload = TriggerPayload.from_dict(raw)
        except InvalidPayload as exc:
            logger.warning("Dropping wake-up %s with invalid payload: %s", token, exc)
            return
        if not self._handler:
            logger.warning("Wake-up %s fired with no handler registered", token)
            return
        try:
            self._handler(token, payload, now)
        except Exception:
            logger.error("Fire handler failed for wake-up %s", token, exc_info=True)
