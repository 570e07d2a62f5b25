"""Data input/output helpers (session CSV logs, datasets and file paths).

Utility modules here keep disk-level concerns isolated from the rest of the
service:
- :mod:`session_log` appends accepted and rejected samples durably.
- :mod:`dataset_loader` parses dataset CSV files for the client.
- :mod:`file_paths` centralises the per-session directory layout.
"""
