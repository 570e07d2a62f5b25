"""Helpers for constructing standard file paths under the storage root."""

import re
from pathlib import Path

from ..config.app_config import AppPaths

MEASUREMENTS_FILENAME = "measurements_session.csv"
REJECTS_FILENAME = "rejects.csv"
CLIENT_REJECTS_FILENAME = "client_rejects.csv"

# Allow only alphanumerics, underscore, dot, and dash.
_SESSION_ID_RE = re.compile(r"[A-Za-z0-9_.-]+")


def is_safe_session_id(session_id: str) -> bool:
    """Return True if ``session_id`` can be used verbatim as one directory name."""
    if session_id in {".", ".."}:
        return False
    return _SESSION_ID_RE.fullmatch(session_id) is not None


def session_directory(session_id: str, base: Path | None = None) -> Path:
    """
    Return the directory holding one session's logs.

    The identifier is used as-is so that a restarted service reopens the
    same files; callers must check :func:`is_safe_session_id` first.
    """
    if not is_safe_session_id(session_id):
        raise ValueError(f"session id {session_id!r} is not a valid directory name")
    root = base or AppPaths().storage_root
    return root / session_id


def measurements_path(session_dir: Path) -> Path:
    return session_dir / MEASUREMENTS_FILENAME


def rejects_path(session_dir: Path) -> Path:
    return session_dir / REJECTS_FILENAME
