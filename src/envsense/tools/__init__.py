"""Developer tooling: logging setup and debug timing helpers."""
