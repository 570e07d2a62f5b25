"""Logging setup and opt-in debug/instrumentation hooks."""

from __future__ import annotations

import logging
import os
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator

DEBUG_ENVSENSE = os.getenv("ENVSENSE_DEBUG", "").lower() in {"1", "true", "yes", "on"}

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def debug_enabled() -> bool:
    """Return True when lightweight instrumentation should run."""
    return DEBUG_ENVSENSE


def setup_logging(
    level: int | None = None,
    log_file: str | Path | None = None,
    name: str = "envsense",
) -> logging.Logger:
    """
    Attach a console handler (and optionally a file handler) to ``name``.

    Calling this twice does not duplicate handlers. ``ENVSENSE_DEBUG`` forces
    DEBUG when ``level`` is not given.
    """
    if level is None:
        level = logging.DEBUG if debug_enabled() else logging.INFO

    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not logger.handlers:
        formatter = logging.Formatter(LOG_FORMAT)

        console_handler = logging.StreamHandler()
        console_handler.setLevel(level)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

        if log_file is not None:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)

    return logger


@contextmanager
def time_block(label: str, *, emitter: Callable[[str], None] | None = None) -> Iterator[None]:
    """
    Context manager that emits elapsed time when debugging is enabled.

    The overhead is essentially a couple of perf_counter() calls when disabled.
    """
    if not debug_enabled():
        yield
        return

    start = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - start) * 1000.0
        target = emitter or logging.getLogger("envsense.debug").debug
        target(f"{label} took {elapsed_ms:.3f} ms")
