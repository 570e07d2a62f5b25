"""Core session pieces: sample models, validation, analysis, and the registry.

This package holds everything a session is made of. The orchestration of
start/push/end lives one level up in :mod:`envsense.service`, which composes
these parts with the on-disk logs from :mod:`envsense.dataio`.
"""

# Data structures shared by every layer
from .models import (
    AnomalyWarning,
    EnvSenseFault,
    MalformedRequestError,
    OperationResult,
    ResultKind,
    Sample,
    SampleValidationError,
    SessionMeta,
    SessionStatus,
    WarningKind,
)
from .validation import validate_meta, validate_sample

# Per-session state (analyzer must load before the store)
from .analyzer import AnalyzerThresholds, RunningStatistics, StreamingAnalyzer
from .session_store import Session, SessionExistsError, SessionStore
from .events import LoggingObserver, NullObserver, SessionEvents, SessionObserver

__all__ = [
    "AnomalyWarning",
    "EnvSenseFault",
    "MalformedRequestError",
    "OperationResult",
    "ResultKind",
    "Sample",
    "SampleValidationError",
    "SessionMeta",
    "SessionStatus",
    "WarningKind",
    "validate_meta",
    "validate_sample",
    "AnalyzerThresholds",
    "RunningStatistics",
    "StreamingAnalyzer",
    "Session",
    "SessionExistsError",
    "SessionStore",
    "LoggingObserver",
    "NullObserver",
    "SessionEvents",
    "SessionObserver",
]
