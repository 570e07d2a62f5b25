"""Session service: the start/push/end operations a transport exposes.

:class:`SessionManager` composes the registry, analyzers and on-disk logs
from :mod:`envsense.core` and :mod:`envsense.dataio`. Transports (RPC, HTTP,
the dataset client) call it directly and map :class:`OperationResult`
values onto their own wire format.
"""

from .session_manager import SessionManager

__all__ = ["SessionManager"]
