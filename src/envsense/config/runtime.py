"""Runtime configuration for the session service."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, Mapping

import yaml

from ..core.analyzer import AnalyzerThresholds
from .app_config import AppPaths

logger = logging.getLogger(__name__)

# Optional top-level block that groups the service settings.
SECTION_KEY = "service"


def _default_storage_root() -> Path:
    return AppPaths().storage_root


def _non_negative(value: Any, fallback: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return fallback
    if not math.isfinite(number) or number < 0.0:
        return fallback
    return number


@dataclass(slots=True)
class ServiceConfig:
    """
    Storage location and anomaly thresholds consumed by the session manager.

    The defaults match the thresholds the field deployment was tuned with.
    """

    storage_root: Path = field(default_factory=_default_storage_root)
    pressure_delta_threshold: float = 2.0
    co_delta_threshold: float = 0.5
    no2_delta_threshold: float = 0.5
    percent_deviation: float = 25.0
    max_future_skew_seconds: float = 86400.0
    fsync: bool = True

    def sanitized(self) -> ServiceConfig:
        """Return a copy with paths expanded and invalid thresholds reset."""
        return ServiceConfig(
            storage_root=Path(self.storage_root).expanduser(),
            pressure_delta_threshold=_non_negative(self.pressure_delta_threshold, 2.0),
            co_delta_threshold=_non_negative(self.co_delta_threshold, 0.5),
            no2_delta_threshold=_non_negative(self.no2_delta_threshold, 0.5),
            percent_deviation=_non_negative(self.percent_deviation, 25.0),
            max_future_skew_seconds=_non_negative(self.max_future_skew_seconds, 86400.0),
            fsync=bool(self.fsync),
        )

    def thresholds(self) -> AnalyzerThresholds:
        return AnalyzerThresholds(
            pressure_delta_threshold=self.pressure_delta_threshold,
            co_delta_threshold=self.co_delta_threshold,
            no2_delta_threshold=self.no2_delta_threshold,
            percent_deviation=self.percent_deviation,
        )


def _normalize_mapping(data: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Turn a raw YAML mapping into :class:`ServiceConfig` keyword arguments.

    Keys under ``service:`` win over top-level ones and unknown keys are
    dropped. A null ``storage_root`` is removed so the default location
    applies; any other value becomes a ``Path``.
    """
    merged = {key: value for key, value in data.items() if key != SECTION_KEY}
    section = data.get(SECTION_KEY)
    if isinstance(section, Mapping):
        merged.update(section)

    known = {f.name for f in fields(ServiceConfig)}
    payload = {key: value for key, value in merged.items() if key in known}
    storage_root = payload.pop("storage_root", None)
    if storage_root is not None:
        payload["storage_root"] = Path(str(storage_root))
    return payload


def config_from_mapping(data: Mapping[str, Any] | None) -> ServiceConfig:
    """Build a sanitized :class:`ServiceConfig` from an already-parsed mapping."""
    return ServiceConfig(**_normalize_mapping(data or {})).sanitized()


def load_config(path: str | Path | None) -> ServiceConfig:
    """
    Read the service YAML at ``path``.

    ``None`` or a path that is not a file gives the defaults. A document whose
    top level is not a mapping raises ``ValueError``.
    """
    if path is None:
        return ServiceConfig().sanitized()
    cfg_path = Path(path).expanduser()
    if not cfg_path.is_file():
        logger.info("No service config at %s, using defaults", cfg_path)
        return ServiceConfig().sanitized()

    raw = yaml.safe_load(cfg_path.read_text(encoding="utf-8"))
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{cfg_path}: expected a mapping at the top level, got {type(raw).__name__}")
    config = config_from_mapping(raw)
    logger.debug("Loaded service config from %s: %s", cfg_path, config)
    return config


__all__ = ["SECTION_KEY", "ServiceConfig", "config_from_mapping", "load_config"]
