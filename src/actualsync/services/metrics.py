"""In-memory sync metrics exposed by the health API."""

import threading
from collections import Counter
from dataclasses import dataclass, field
from typing import Any

from actualsync.sync.models import SyncAttempt


@dataclass
class ServerMetrics:
    syncs: Counter[str] = field(default_factory=Counter)
    accounts_synced: int = 0
    accounts_failed: int = 0
    last_duration_ms: int | None = None
    total_duration_ms: int = 0
    errors_by_code: Counter[str] = field(default_factory=Counter)

    @property
    def total_syncs(self) -> int:
        return sum(self.syncs.values())


class SyncMetrics:
    """Counters of sync attempts per server and status."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._servers: dict[str, ServerMetrics] = {}

    def record_sync(self, attempt: SyncAttempt) -> None:
        with self._lock:
            metrics = self._servers.setdefault(attempt.server_name, ServerMetrics())
            metrics.syncs[attempt.status.value] += 1
            metrics.accounts_synced += attempt.accounts_succeeded
            metrics.accounts_failed += attempt.accounts_failed
            metrics.last_duration_ms = attempt.duration_ms
            metrics.total_duration_ms += attempt.duration_ms
            if attempt.error_code:
                metrics.errors_by_code[attempt.error_code] += 1

    def total(self, status: str | None = None) -> int:
        """Total attempts across servers, optionally for one status."""
        with self._lock:
            if status is None:
                return sum(m.total_syncs for m in self._servers.values())
            return sum(m.syncs[status] for m in self._servers.values())

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                name: {
                    "syncs": dict(m.syncs),
                    "total_syncs": m.total_syncs,
                    "accounts_synced": m.accounts_synced,
                    "accounts_failed": m.accounts_failed,
                    "last_duration_ms": m.last_duration_ms,
                    "avg_duration_ms": (
                        m.total_duration_ms / m.total_syncs if m.total_syncs else None
                    ),
                    "errors_by_code": dict(m.errors_by_code),
                }
                for name, m in self._servers.items()
            }
