"""Structural and range checks applied before a sample reaches the analyzer."""

from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from .models import (
    MEASUREMENT_FIELDS,
    MalformedRequestError,
    Sample,
    SampleValidationError,
    SessionMeta,
)

DEFAULT_MAX_FUTURE_SKEW = timedelta(days=1)

# (lower, upper, lower_inclusive); ``None`` leaves a side open.
_RANGES: dict[str, tuple[Optional[float], Optional[float], bool]] = {
    "volume": (0.0, None, True),
    "light_level": (0.0, None, True),
    "temp_dht": (-50.0, 100.0, True),
    "pressure": (0.0, None, False),
    "temp_bmp": (-50.0, 100.0, True),
    "humidity": (0.0, 100.0, True),
    "co": (0.0, None, True),
    "no2": (0.0, None, True),
}


def as_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime (naive values are taken as UTC)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def require_session_id(session_id: Any, what: str) -> str:
    if not isinstance(session_id, str) or not session_id.strip():
        raise MalformedRequestError(f"{what}: session_id required")
    return session_id


def validate_meta(meta: Optional[SessionMeta]) -> SessionMeta:
    if meta is None:
        raise MalformedRequestError("Meta is null")
    require_session_id(meta.session_id, "Meta")
    return meta


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _check_range(name: str, value: float) -> None:
    lower, upper, lower_inclusive = _RANGES[name]
    if lower is not None:
        if lower_inclusive and value < lower:
            raise SampleValidationError(f"{name} must be >= {lower:g} (got {value!r})", name)
        if not lower_inclusive and value <= lower:
            raise SampleValidationError(f"{name} must be > {lower:g} (got {value!r})", name)
    if upper is not None and value > upper:
        if lower is not None:
            rule = f"must be within [{lower:g}, {upper:g}]"
        else:
            rule = f"must be <= {upper:g}"
        raise SampleValidationError(f"{name} {rule} (got {value!r})", name)


def validate_sample(
    sample: Optional[Sample],
    now: datetime,
    *,
    max_future_skew: timedelta = DEFAULT_MAX_FUTURE_SKEW,
) -> Sample:
    """
    Check ``sample`` against the field rules and return it unchanged.

    Raises :class:`MalformedRequestError` when required structure is missing
    and :class:`SampleValidationError` naming the first broken rule otherwise.
    Values are never clamped or coerced.
    """
    if sample is None:
        raise MalformedRequestError("Sample is null")
    require_session_id(sample.session_id, "Sample")

    timestamp = sample.timestamp
    if not isinstance(timestamp, datetime):
        raise MalformedRequestError("Sample: timestamp required")

    for name in MEASUREMENT_FIELDS:
        if not _is_number(getattr(sample, name)):
            raise MalformedRequestError(f"Sample: {name} must be a number")

    if timestamp.replace(tzinfo=None) == datetime.min:
        raise SampleValidationError("timestamp must be set", "timestamp")
    try:
        too_late = as_utc(timestamp) > as_utc(now) + max_future_skew
    except OverflowError:
        raise SampleValidationError("timestamp is out of range", "timestamp") from None
    if too_late:
        raise SampleValidationError(
            f"timestamp must not be more than {max_future_skew} in the future", "timestamp"
        )

    for name in MEASUREMENT_FIELDS:
        try:
            value = float(getattr(sample, name))
        except OverflowError:
            raise SampleValidationError(f"{name} is out of range", name) from None
        if not math.isfinite(value):
            raise SampleValidationError(f"{name} must be finite (got {value!r})", name)
        if name in _RANGES:
            _check_range(name, value)
    return sample
