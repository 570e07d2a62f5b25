"""Utilities for loading sensor dataset CSV files into samples."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional, Sequence

from ..core.models import MEASUREMENT_FIELDS, Sample

DATASET_COLUMNS: tuple[str, ...] = (
    "Timestamp",
    "Volume",
    "LightLevel",
    "TempDHT",
    "Pressure",
    "TempBMP",
    "Humidity",
    "AirQuality",
    "CO",
    "NO2",
)


@dataclass
class DatasetRow:
    """One non-blank dataset line: either a parsed sample or the parse error."""

    line_no: int
    sample: Optional[Sample] = None
    error: Optional[str] = None


def parse_timestamp(text: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken as UTC."""
    value = text.strip()
    if value.endswith(("Z", "z")):
        value = value[:-1] + "+00:00"
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _looks_like_header(tokens: Sequence[str]) -> bool:
    """Heuristically decide if the first row is a header (no timestamp in column 0)."""
    if not tokens:
        return False
    try:
        parse_timestamp(tokens[0])
        return False
    except ValueError:
        return True


def parse_row(tokens: Sequence[str], session_id: str) -> Sample:
    """
    Build a :class:`Sample` from one dataset row.

    Raises ``ValueError`` describing the first problem found.
    """
    if len(tokens) < len(DATASET_COLUMNS):
        raise ValueError(
            f"Insufficient columns: expected {len(DATASET_COLUMNS)}, got {len(tokens)}"
        )
    try:
        timestamp = parse_timestamp(tokens[0])
    except ValueError as exc:
        raise ValueError(f"Parse error: Timestamp {tokens[0]!r}: {exc}") from exc

    values: List[float] = []
    for column, token in zip(DATASET_COLUMNS[1:], tokens[1:]):
        try:
            values.append(float(token))
        except ValueError as exc:
            raise ValueError(f"Parse error: {column} {token!r} is not a number") from exc

    return Sample(session_id, timestamp, **dict(zip(MEASUREMENT_FIELDS, values)))


def iter_dataset(path: Path, session_id: str) -> Iterator[DatasetRow]:
    """
    Yield one :class:`DatasetRow` per non-blank line of ``path``.

    An optional single header row is skipped automatically.
    """
    with Path(path).open("r", newline="", encoding="utf-8") as fh:
        reader = csv.reader(fh)
        first = True
        for tokens in reader:
            line_no = reader.line_num
            if not tokens or all(not t.strip() for t in tokens):
                continue
            if first:
                first = False
                if _looks_like_header(tokens):
                    continue
            try:
                sample = parse_row(tokens, session_id)
            except ValueError as exc:
                yield DatasetRow(line_no, error=str(exc))
                continue
            yield DatasetRow(line_no, sample=sample)

