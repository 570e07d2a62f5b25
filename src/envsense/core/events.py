"""Session notifications: observer protocol and synchronous fan-out."""

from __future__ import annotations

import logging
import threading
from typing import Iterable, List, Protocol, runtime_checkable

from .models import Sample

logger = logging.getLogger(__name__)


@runtime_checkable
class SessionObserver(Protocol):
    """Callbacks fired after the corresponding operation's effect is durable."""

    def on_session_started(self, session_id: str) -> None:  # pragma: no cover - protocol
        ...

    def on_sample_received(self, session_id: str, sample: Sample) -> None:  # pragma: no cover - protocol
        ...

    def on_warning_raised(self, session_id: str, message: str) -> None:  # pragma: no cover - protocol
        ...

    def on_session_completed(self, session_id: str) -> None:  # pragma: no cover - protocol
        ...


class NullObserver:
    """No-op observer; subclass and override only the hooks you need."""

    def on_session_started(self, session_id: str) -> None:
        return

    def on_sample_received(self, session_id: str, sample: Sample) -> None:
        return

    def on_warning_raised(self, session_id: str, message: str) -> None:
        return

    def on_session_completed(self, session_id: str) -> None:
        return


class LoggingObserver(NullObserver):
    """Writes every session event to the log, one line per event."""

    def __init__(self, log: logging.Logger | None = None) -> None:
        self._log = log or logging.getLogger("envsense.events")

    def on_session_started(self, session_id: str) -> None:
        self._log.info("[EVENT] Transfer started: %s", session_id)

    def on_sample_received(self, session_id: str, sample: Sample) -> None:
        self._log.info("[EVENT] Sample received: %s @ %s", session_id, sample.timestamp.isoformat())

    def on_warning_raised(self, session_id: str, message: str) -> None:
        self._log.warning("[WARNING] Session %s: %s", session_id, message)

    def on_session_completed(self, session_id: str) -> None:
        self._log.info("[EVENT] Transfer completed: %s", session_id)


class SessionEvents:
    """
    Fan out session notifications to registered observers.

    Observers run synchronously on the calling thread. A failing observer is
    logged and skipped; it never changes the outcome of the operation that
    fired the event.
    """

    def __init__(self, observers: Iterable[SessionObserver] = ()) -> None:
        self._observers: List[SessionObserver] = list(observers)
        self._lock = threading.Lock()

    def subscribe(self, observer: SessionObserver) -> None:
        with self._lock:
            self._observers.append(observer)

    def unsubscribe(self, observer: SessionObserver) -> None:
        with self._lock:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

    def _snapshot(self) -> List[SessionObserver]:
        with self._lock:
            return list(self._observers)

    def _emit(self, hook: str, *args: object) -> None:
        for observer in self._snapshot():
            callback = getattr(observer, hook, None)
            if callback is None:
                continue
            try:
                callback(*args)
            except Exception:
                logger.exception("Observer %r failed in %s", observer, hook)

    def session_started(self, session_id: str) -> None:
        self._emit("on_session_started", session_id)

    def sample_received(self, session_id: str, sample: Sample) -> None:
        self._emit("on_sample_received", session_id, sample)

    def warning_raised(self, session_id: str, message: str) -> None:
        self._emit("on_warning_raised", session_id, message)

    def session_completed(self, session_id: str) -> None:
        self._emit("on_session_completed", session_id)
