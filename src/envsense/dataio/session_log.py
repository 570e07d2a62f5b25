"""Append-only CSV logs for accepted and rejected samples of one session."""

from __future__ import annotations

import csv
import logging
import os
import threading
from datetime import datetime
from pathlib import Path
from typing import IO, Any, List, Sequence

from ..core.models import Sample
from ..core.validation import as_utc
from . import file_paths

logger = logging.getLogger(__name__)

MEASUREMENT_HEADERS: tuple[str, ...] = (
    "SessionId",
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
REJECT_HEADERS: tuple[str, ...] = MEASUREMENT_HEADERS + ("Warnings",)
WARNING_DELIMITER = "|"
INTERNAL_ERROR_MARKER = "InternalError"


def format_timestamp(value: datetime) -> str:
    """Fixed-width ISO-8601 UTC form, so rows sort lexically by time."""
    return as_utc(value).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def sample_row(sample: Sample) -> List[Any]:
    return [sample.session_id, format_timestamp(sample.timestamp), *sample.measurements()]


class _CsvStream:
    """One append-mode CSV file plus its writer."""

    def __init__(self, path: Path, headers: Sequence[str], *, fsync: bool) -> None:
        self.path = path
        self._fsync = fsync
        self._fh: IO[str] = path.open("a", newline="", encoding="utf-8")
        self._writer = csv.writer(self._fh, lineterminator="\n")
        # header only when the file on disk is empty
        if os.fstat(self._fh.fileno()).st_size == 0:
            self.write(headers)

    def write(self, row: Sequence[Any]) -> None:
        self._writer.writerow(row)
        self._fh.flush()
        if self._fsync:
            os.fsync(self._fh.fileno())

    def close(self) -> None:
        fh = self._fh
        try:
            if not fh.closed:
                fh.flush()
        except (OSError, ValueError) as exc:
            logger.debug("Flush of %s failed during close: %r", self.path, exc)
        try:
            fh.close()
        except (OSError, ValueError) as exc:
            logger.debug("Close of %s failed: %r", self.path, exc)

    @property
    def closed(self) -> bool:
        return self._fh.closed


class DurableSessionLog:
    """
    Accepted-sample and rejected-sample CSV logs for one session.

    Both files are opened for append, so opening the same session directory
    again (for example after a restart) extends the existing logs. Every
    append is flushed, and by default fsynced, before it returns.
    """

    def __init__(self, session_dir: Path, *, fsync: bool = True) -> None:
        self.session_dir = Path(session_dir)
        self.session_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._accepted = _CsvStream(
            file_paths.measurements_path(self.session_dir), MEASUREMENT_HEADERS, fsync=fsync
        )
        try:
            self._rejected = _CsvStream(
                file_paths.rejects_path(self.session_dir), REJECT_HEADERS, fsync=fsync
            )
        except Exception:
            self._accepted.close()
            raise

    @property
    def measurements_file(self) -> Path:
        return self._accepted.path

    @property
    def rejects_file(self) -> Path:
        return self._rejected.path

    @property
    def closed(self) -> bool:
        return self._accepted.closed and self._rejected.closed

    def append_sample(self, sample: Sample) -> None:
        """Write one accepted sample; raises ``ValueError`` once closed."""
        row = sample_row(sample)
        with self._lock:
            self._accepted.write(row)

    def append_reject(self, sample: Sample, warnings: Sequence[str]) -> None:
        """Write a flagged sample together with its warning messages."""
        row = sample_row(sample)
        row.append(WARNING_DELIMITER.join(warnings))
        with self._lock:
            self._rejected.write(row)

    def append_internal_error(self, sample: Sample, error: BaseException | str) -> None:
        text = " ".join(str(error).split()) or type(error).__name__
        self.append_reject(sample, [f"{INTERNAL_ERROR_MARKER}: {text}"])

    def close(self) -> None:
        """Flush and close both files; safe to call repeatedly."""
        with self._lock:
            self._accepted.close()
            self._rejected.close()

    def __enter__(self) -> "DurableSessionLog":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
