"""Dataset client that drives sessions from recorded CSV files."""

from .dataset_client import ClientOptions, ClientReport, DatasetClient

__all__ = ["ClientOptions", "ClientReport", "DatasetClient"]
