"""Default application paths for the EnvSense service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


@dataclass
class AppPaths:
    """
    Commonly used paths for the service and the dataset client.

    ``ENVSENSE_STORAGE_ROOT`` and ``ENVSENSE_LOG_DIR`` override the default
    ``data/sessions``/``logs`` folders relative to the repository root so that
    packaged installs and alternate layouts can store files elsewhere.
    """

    # repo_root points at the project root (one level above src/)
    repo_root: Path = Path(__file__).resolve().parents[3]
    data_root: Path = field(init=False)
    storage_root: Path = field(init=False)
    logs: Path = field(init=False)
    config_dir: Path = field(init=False)

    def __post_init__(self) -> None:
        self.data_root = self.repo_root / "data"

        env_storage_root = os.environ.get("ENVSENSE_STORAGE_ROOT")
        if env_storage_root:
            self.storage_root = Path(env_storage_root).expanduser()
        else:
            self.storage_root = self.data_root / "sessions"

        env_logs_dir = os.environ.get("ENVSENSE_LOG_DIR")
        if env_logs_dir:
            self.logs = Path(env_logs_dir).expanduser()
        else:
            self.logs = self.repo_root / "logs"

        self.config_dir = self.repo_root / "src" / "envsense" / "config"

    @property
    def default_config_file(self) -> Path:
        return self.config_dir / "service.yaml"

    @property
    def client_logs(self) -> Path:
        return self.logs / "client"
