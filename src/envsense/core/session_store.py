"""Thread-safe registry of open sessions keyed by session identifier."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple

from .analyzer import StreamingAnalyzer
from .models import SessionStatus

if TYPE_CHECKING:
    from ..dataio.session_log import DurableSessionLog

SessionResources = Tuple["DurableSessionLog", StreamingAnalyzer]


class SessionExistsError(KeyError):
    """Raised by :meth:`SessionStore.create` when the id is already registered."""


@dataclass(eq=False)
class Session:
    """
    One open session: its log writer, its analyzer and its lock.

    Every lifecycle operation on the session runs while holding ``lock``.
    The lock is reentrant, so an observer fired under it may call back into
    the manager for the same session. ``status`` becomes ``COMPLETED`` under
    that lock before the session leaves the store, so late callers can tell
    it is gone.
    """

    session_id: str
    log: Optional[DurableSessionLog] = None
    analyzer: Optional[StreamingAnalyzer] = None
    status: SessionStatus = SessionStatus.IN_PROGRESS
    lock: threading.RLock = field(default_factory=threading.RLock, repr=False)

    @property
    def is_open(self) -> bool:
        return self.status is SessionStatus.IN_PROGRESS and self.log is not None


class SessionStore:
    """Mapping of session id -> :class:`Session`.

    The registry lock only guards the dict itself and is never held while a
    session does I/O, so sessions with different ids do not block each other.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, Session] = {}
        self._lock = threading.Lock()

    def create(
        self,
        session_id: str,
        open_resources: Callable[[], SessionResources],
        on_opened: Optional[Callable[[Session], None]] = None,
    ) -> Session:
        """
        Register ``session_id`` and build its resources.

        The new session's lock is taken *before* it becomes visible, so
        concurrent lookups wait until ``open_resources`` has finished. If that
        callable raises, the id is released again and the error propagates.
        ``on_opened`` runs once the resources are attached, still under the
        session lock.
        """
        session = Session(session_id)
        with session.lock:
            with self._lock:
                if session_id in self._sessions:
                    raise SessionExistsError(session_id)
                self._sessions[session_id] = session
            try:
                session.log, session.analyzer = open_resources()
            except BaseException:
                session.status = SessionStatus.COMPLETED
                self._discard(session_id, session)
                raise
            if on_opened is not None:
                on_opened(session)
        return session

    def get(self, session_id: str) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def remove(self, session_id: str) -> Optional[Session]:
        """Detach and return the session; ``None`` if it was already gone."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def _discard(self, session_id: str, session: Session) -> None:
        with self._lock:
            if self._sessions.get(session_id) is session:
                del self._sessions[session_id]

    def ids(self) -> List[str]:
        """Return a snapshot list of registered session ids."""
        with self._lock:
            return list(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)
