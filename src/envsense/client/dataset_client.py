"""Drive a session from a dataset file: start, push each row, end."""

from __future__ import annotations

import csv
import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Optional

from ..core.models import OperationResult, ResultKind, SessionMeta
from ..dataio.dataset_loader import iter_dataset
from ..dataio.file_paths import CLIENT_REJECTS_FILENAME
from ..dataio.session_log import format_timestamp
from ..service.session_manager import SessionManager
from ..tools.debug import time_block

logger = logging.getLogger(__name__)

DEFAULT_ROWS_TO_SEND = 100
DEFAULT_DELAY_S = 0.05


@dataclass
class ClientOptions:
    dataset_path: Path
    session_id: str
    rows_to_send: int = DEFAULT_ROWS_TO_SEND
    delay_s: float = DEFAULT_DELAY_S
    client_log_dir: Optional[Path] = None


@dataclass
class ClientReport:
    """Counts of what happened to the rows the client read."""

    sent: int = 0
    accepted: int = 0
    flagged: int = 0
    failed: int = 0
    parse_errors: int = 0
    start_result: Optional[OperationResult] = None
    end_result: Optional[OperationResult] = None

    @property
    def session_open(self) -> bool:
        """True when pushes can follow the start (a new or already running session)."""
        result = self.start_result
        if result is None:
            return False
        return result.success or result.kind is ResultKind.ALREADY_EXISTS


class DatasetClient:
    """
    Feed a dataset CSV through a :class:`SessionManager`.

    Rows that cannot be parsed are appended to ``client_rejects.csv`` in the
    client log directory and are not sent. Pushes stop once
    ``rows_to_send`` samples have been sent.
    """

    def __init__(
        self,
        manager: SessionManager,
        options: ClientOptions,
        *,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._manager = manager
        self._options = options
        self._sleep = sleep

    def run(self) -> ClientReport:
        opts = self._options
        path = Path(opts.dataset_path)
        if not path.exists():
            raise FileNotFoundError(f"Dataset not found: {path}")

        report = ClientReport()
        meta = SessionMeta(session_id=opts.session_id, start_time=datetime.now(timezone.utc))
        report.start_result = self._manager.start_session(meta)
        logger.info(
            "StartSession: %s Status=%s",
            report.start_result.message,
            report.start_result.status.value,
        )
        if not report.session_open:
            return report

        for row in iter_dataset(path, opts.session_id):
            if report.sent >= opts.rows_to_send:
                break
            if row.sample is None:
                report.parse_errors += 1
                self._record_parse_error(row.line_no, row.error or "unknown error")
                continue

            with time_block(f"PushSample[{report.sent + 1}]"):
                result = self._manager.push_sample(row.sample)
            report.sent += 1
            self._tally(report, result)
            logger.info("PushSample[%d]: %s", report.sent, result.message)

            if opts.delay_s > 0:
                self._sleep(opts.delay_s)

        report.end_result = self._manager.end_session(opts.session_id)
        logger.info(
            "EndSession: %s Status=%s",
            report.end_result.message,
            report.end_result.status.value,
        )
        return report

    @staticmethod
    def _tally(report: ClientReport, result: OperationResult) -> None:
        if result.success:
            report.accepted += 1
        elif result.kind is ResultKind.ANOMALY:
            report.flagged += 1
        else:
            report.failed += 1

    def _record_parse_error(self, line_no: int, error: str) -> None:
        logger.warning("Dataset line %d skipped: %s", line_no, error)
        log_dir = self._options.client_log_dir
        if log_dir is None:
            return
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        with (log_dir / CLIENT_REJECTS_FILENAME).open("a", newline="", encoding="utf-8") as fh:
            csv.writer(fh, lineterminator="\n").writerow(
                [self._options.session_id, format_timestamp(datetime.now(timezone.utc)), error]
            )
