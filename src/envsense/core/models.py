"""Shared dataclasses for EnvSense sessions, samples and operation results."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


# Measurement attribute names in persisted column order (after SessionId/Timestamp).
MEASUREMENT_FIELDS: tuple[str, ...] = (
    "volume",
    "light_level",
    "temp_dht",
    "pressure",
    "temp_bmp",
    "humidity",
    "air_quality",
    "co",
    "no2",
)


@dataclass
class Sample:
    """One environmental sensor reading belonging to a session."""

    session_id: str
    timestamp: datetime
    volume: float
    light_level: float
    temp_dht: float
    pressure: float
    temp_bmp: float
    humidity: float
    air_quality: float
    co: float
    no2: float

    def measurements(self) -> tuple[float, ...]:
        return tuple(getattr(self, name) for name in MEASUREMENT_FIELDS)


@dataclass
class SessionMeta:
    """Request payload for opening a session."""

    session_id: str
    start_time: Optional[datetime] = None
    volume: float = 0.0
    co: float = 0.0
    no2: float = 0.0
    pressure: float = 0.0


class SessionStatus(str, Enum):
    IN_PROGRESS = "IN_PROGRESS"
    COMPLETED = "COMPLETED"


class ResultKind(str, Enum):
    OK = "ok"
    ALREADY_EXISTS = "already_exists"
    NOT_FOUND = "not_found"
    ANOMALY = "anomaly"
    INTERNAL_ERROR = "internal_error"
    MALFORMED = "malformed"
    VALIDATION = "validation"


_FAULT_KINDS = frozenset({ResultKind.MALFORMED, ResultKind.VALIDATION})


class EnvSenseFault(Exception):
    """Base class for the two fault categories surfaced to callers."""


class MalformedRequestError(EnvSenseFault):
    """Required structure is missing (no meta, no sample, empty session id)."""


class SampleValidationError(EnvSenseFault):
    """Well-formed input that breaks a field rule."""

    def __init__(self, message: str, field_name: Optional[str] = None) -> None:
        super().__init__(message)
        self.field_name = field_name


@dataclass(frozen=True)
class OperationResult:
    """
    Outcome of a lifecycle operation.

    ``kind`` tells callers *why* an operation did not succeed. Only
    ``MALFORMED`` and ``VALIDATION`` are faults; the rest are ordinary
    negative results.
    """

    success: bool
    message: str
    status: SessionStatus
    kind: ResultKind = ResultKind.OK
    field_name: Optional[str] = None

    @property
    def is_fault(self) -> bool:
        return self.kind in _FAULT_KINDS

    def raise_for_fault(self) -> None:
        """Raise the matching :class:`EnvSenseFault` for fault results."""
        if self.kind is ResultKind.MALFORMED:
            raise MalformedRequestError(self.message)
        if self.kind is ResultKind.VALIDATION:
            raise SampleValidationError(self.message, self.field_name)


class WarningKind(str, Enum):
    PRESSURE_SPIKE = "pressure_spike"
    OUT_OF_BAND = "out_of_band"
    CO_SPIKE = "co_spike"
    NO2_SPIKE = "no2_spike"


@dataclass(frozen=True)
class AnomalyWarning:
    kind: WarningKind
    message: str
    # |delta| for spikes, the offending pressure for band warnings
    value: float = field(default=0.0, compare=False)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return self.message
