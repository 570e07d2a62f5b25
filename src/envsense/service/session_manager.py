"""Coordinator for the session lifecycle: start, push samples, end."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional

from ..config.runtime import ServiceConfig
from ..core.analyzer import StreamingAnalyzer
from ..core.events import SessionEvents, SessionObserver
from ..core.models import (
    MalformedRequestError,
    OperationResult,
    ResultKind,
    Sample,
    SampleValidationError,
    SessionMeta,
    SessionStatus,
)
from ..core.session_store import Session, SessionExistsError, SessionResources, SessionStore
from ..core.validation import validate_meta, validate_sample
from ..dataio import file_paths
from ..dataio.session_log import DurableSessionLog

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _result(
    success: bool,
    message: str,
    status: SessionStatus,
    kind: ResultKind,
    field_name: Optional[str] = None,
) -> OperationResult:
    return OperationResult(success=success, message=message, status=status, kind=kind, field_name=field_name)


class SessionManager:
    """
    Public start/push/end operations over concurrently open sessions.

    Parameters
    ----------
    config:
        Storage root and analyzer thresholds. The storage root is created
        here; failing to create it is the one fatal error (``OSError``).
    store:
        Registry of open sessions. A fresh :class:`SessionStore` by default.
    observers:
        Notification callbacks, see :class:`~envsense.core.events.SessionObserver`.
    clock:
        Source of "now" for the future-timestamp check.
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        *,
        store: SessionStore | None = None,
        observers: Iterable[SessionObserver] = (),
        clock: Clock | None = None,
    ) -> None:
        self.config = (config or ServiceConfig()).sanitized()
        self.store = store or SessionStore()
        self.events = SessionEvents(observers)
        self._clock = clock or _utc_now
        self._max_future_skew = timedelta(seconds=self.config.max_future_skew_seconds)
        self.config.storage_root.mkdir(parents=True, exist_ok=True)

    # ------------------------------------------------------------------ start
    def start_session(self, meta: Optional[SessionMeta]) -> OperationResult:
        try:
            validate_meta(meta)
        except MalformedRequestError as exc:
            return _result(False, str(exc), SessionStatus.IN_PROGRESS, ResultKind.MALFORMED)
        assert meta is not None
        session_id = meta.session_id

        if not file_paths.is_safe_session_id(session_id):
            return _result(
                False,
                "session_id may only contain letters, digits, '_', '.' and '-'",
                SessionStatus.IN_PROGRESS,
                ResultKind.VALIDATION,
                field_name="session_id",
            )

        try:
            self.store.create(
                session_id,
                lambda: self._open_resources(meta),
                on_opened=lambda session: self.events.session_started(session.session_id),
            )
        except SessionExistsError:
            return _result(False, "Session already exists", SessionStatus.IN_PROGRESS, ResultKind.ALREADY_EXISTS)
        except OSError as exc:
            logger.exception("Failed to open storage for session %s", session_id)
            return _result(
                False, f"Failed to open session storage: {exc}", SessionStatus.IN_PROGRESS, ResultKind.INTERNAL_ERROR
            )

        return _result(True, "Session started", SessionStatus.IN_PROGRESS, ResultKind.OK)

    def _open_resources(self, meta: SessionMeta) -> SessionResources:
        # runs under the new session lock, before any push can see it
        session_dir = file_paths.session_directory(meta.session_id, self.config.storage_root)
        log = DurableSessionLog(session_dir, fsync=self.config.fsync)
        analyzer = StreamingAnalyzer(self.config.thresholds())
        logger.info(
            "Session %s started in %s (start_time=%s baseline pressure=%s co=%s no2=%s volume=%s)",
            meta.session_id,
            session_dir,
            meta.start_time.isoformat() if meta.start_time else "-",
            meta.pressure,
            meta.co,
            meta.no2,
            meta.volume,
        )
        return log, analyzer

    # ------------------------------------------------------------------- push
    def push_sample(self, sample: Optional[Sample]) -> OperationResult:
        try:
            validate_sample(sample, self._clock(), max_future_skew=self._max_future_skew)
        except MalformedRequestError as exc:
            return _result(False, str(exc), SessionStatus.IN_PROGRESS, ResultKind.MALFORMED)
        except SampleValidationError as exc:
            return _result(
                False, str(exc), SessionStatus.IN_PROGRESS, ResultKind.VALIDATION, field_name=exc.field_name
            )
        assert sample is not None

        session = self.store.get(sample.session_id)
        if session is None:
            return _not_found(SessionStatus.IN_PROGRESS)

        with session.lock:
            if not session.is_open:
                return _not_found(SessionStatus.IN_PROGRESS)
            try:
                return self._process(session, sample)
            except Exception as exc:
                logger.exception("Failed to process sample for session %s", session.session_id)
                self._record_internal_error(session, sample, exc)
                return _result(
                    False, f"Failed to store sample: {exc}", SessionStatus.IN_PROGRESS, ResultKind.INTERNAL_ERROR
                )

    def _process(self, session: Session, sample: Sample) -> OperationResult:
        assert session.log is not None and session.analyzer is not None
        warnings = session.analyzer.process(sample)
        if warnings:
            messages: List[str] = [w.message for w in warnings]
            session.log.append_reject(sample, messages)
            for message in messages:
                self.events.warning_raised(session.session_id, message)
            return _result(False, "; ".join(messages), SessionStatus.IN_PROGRESS, ResultKind.ANOMALY)

        session.log.append_sample(sample)
        self.events.sample_received(session.session_id, sample)
        return _result(True, "Sample accepted", SessionStatus.IN_PROGRESS, ResultKind.OK)

    @staticmethod
    def _record_internal_error(session: Session, sample: Sample, exc: Exception) -> None:
        if session.log is None:
            return
        try:
            session.log.append_internal_error(sample, exc)
        except Exception:
            logger.exception("Could not record internal error for session %s", session.session_id)

    # -------------------------------------------------------------------- end
    def end_session(self, session_id: Optional[str]) -> OperationResult:
        session = self.store.get(session_id) if isinstance(session_id, str) else None
        if session is None:
            return _not_found(SessionStatus.COMPLETED)

        with session.lock:
            if not session.is_open:
                return _not_found(SessionStatus.COMPLETED)
            assert session.log is not None
            session.log.close()
            session.status = SessionStatus.COMPLETED
            logger.info("Session %s completed", session_id)
            self.events.session_completed(session_id)
            self.store.remove(session_id)

        return _result(True, "Session completed", SessionStatus.COMPLETED, ResultKind.OK)

    # ---------------------------------------------------------------- helpers
    def open_session_ids(self) -> List[str]:
        return self.store.ids()

    def close_all(self) -> None:
        """End every open session, e.g. on service shutdown."""
        for session_id in self.store.ids():
            self.end_session(session_id)


def _not_found(status: SessionStatus) -> OperationResult:
    return _result(False, "Session not found", status, ResultKind.NOT_FOUND)
