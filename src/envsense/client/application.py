"""Command-line entry point for the EnvSense dataset client.

This module wires up argument parsing, logging and configuration, builds a
:class:`~envsense.service.SessionManager` with a logging observer, and feeds
it one dataset file. Launches through ``python main.py``, the
``envsense-client`` script, or ``python -m envsense.client.application`` all
flow through ``main()`` here.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..config.app_config import AppPaths
from ..config.runtime import load_config
from ..core.events import LoggingObserver
from ..service.session_manager import SessionManager
from ..tools.debug import setup_logging
from .dataset_client import DEFAULT_DELAY_S, DEFAULT_ROWS_TO_SEND, ClientOptions, DatasetClient

logger = logging.getLogger(__name__)


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="EnvSense dataset client")
    parser.add_argument(
        "--dataset",
        required=True,
        help="CSV dataset to send (Timestamp,Volume,...,CO,NO2)",
    )
    parser.add_argument(
        "--session-id",
        required=True,
        help="Session identifier to open",
    )
    parser.add_argument(
        "--rows",
        type=int,
        default=DEFAULT_ROWS_TO_SEND,
        help=f"Maximum number of samples to send (default: {DEFAULT_ROWS_TO_SEND})",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=DEFAULT_DELAY_S,
        help=f"Seconds to wait between samples (default: {DEFAULT_DELAY_S})",
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Service YAML config (default: bundled service.yaml)",
    )
    parser.add_argument(
        "--storage-root",
        type=str,
        default=None,
        help="Override the storage root from the config",
    )
    parser.add_argument(
        "--client-log-dir",
        type=str,
        default=None,
        help="Directory for client_rejects.csv (default: <logs>/client)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help="Also write log output to this file",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    args = _build_arg_parser().parse_args(argv)
    setup_logging(log_file=args.log_file)

    paths = AppPaths()
    config_path = Path(args.config) if args.config else paths.default_config_file
    config = load_config(config_path)
    if args.storage_root:
        config.storage_root = Path(args.storage_root).expanduser()

    manager = SessionManager(config, observers=[LoggingObserver()])
    client_log_dir = Path(args.client_log_dir) if args.client_log_dir else paths.client_logs
    client = DatasetClient(
        manager,
        ClientOptions(
            dataset_path=Path(args.dataset).expanduser(),
            session_id=args.session_id,
            rows_to_send=max(0, int(args.rows)),
            delay_s=max(0.0, float(args.delay)),
            client_log_dir=client_log_dir,
        ),
    )
    try:
        report = client.run()
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return 1
    finally:
        manager.close_all()

    logger.info(
        "Done: sent=%d accepted=%d flagged=%d failed=%d parse_errors=%d",
        report.sent,
        report.accepted,
        report.flagged,
        report.failed,
        report.parse_errors,
    )
    if not report.session_open:
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
