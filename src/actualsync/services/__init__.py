"""Collaborators the orchestrator reports sync attempts to.

- ``HealthState``: in-memory health summary read by the HTTP API
- ``SyncMetrics``: in-memory counters
- ``SyncHistoryStore``: DuckDB-backed attempt history
- ``NotificationService``: threshold-gated webhook notifications
"""

from .health import HealthState, HealthStatus
from .history import SyncHistoryStore
from .metrics import SyncMetrics
from .notifications import NotificationService

__all__ = [
    "HealthState",
    "HealthStatus",
    "NotificationService",
    "SyncHistoryStore",
    "SyncMetrics",
]
