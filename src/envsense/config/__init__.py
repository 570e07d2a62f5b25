"""Configuration objects and helpers for EnvSense.

This package knows how to load the YAML service descriptor (``service.yaml``)
holding the storage root and anomaly thresholds, and where the service keeps
its data and logs by default (:mod:`app_config`). The typed dataclasses in
:mod:`runtime` are what the session manager and the dataset client consume.
"""

from .app_config import AppPaths
from .runtime import ServiceConfig, config_from_mapping, load_config

__all__ = ["AppPaths", "ServiceConfig", "config_from_mapping", "load_config"]
