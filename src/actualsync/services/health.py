"""In-memory health summary of recent sync attempts.

The orchestrator is the only writer; the HTTP API and CLI only read
``status`` and ``snapshot()``.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from actualsync.sync.models import SyncAttempt, SyncStatus

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    """Overall service health derived from sync outcomes."""

    PENDING = "PENDING"
    HEALTHY = "HEALTHY"
    DEGRADED = "DEGRADED"
    UNHEALTHY = "UNHEALTHY"


@dataclass(frozen=True)
class ServerHealth:
    last_sync: datetime
    status: SyncStatus
    error: str | None = None


class HealthState:
    """Counters and latest outcomes used to compute ``HealthStatus``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.started_at = datetime.now(UTC)
        self.sync_count = 0
        self.success_count = 0
        self.partial_count = 0
        self.failure_count = 0
        self.last_sync_time: datetime | None = None
        self.last_sync_status: SyncStatus | None = None
        self.last_error: dict[str, Any] | None = None
        self.servers: dict[str, ServerHealth] = {}

    def update(self, attempt: SyncAttempt) -> None:
        """Record the outcome of one sync attempt."""
        now = datetime.now(UTC)
        with self._lock:
            self.sync_count += 1
            self.last_sync_time = now
            self.last_sync_status = attempt.status

            if attempt.status is SyncStatus.SUCCESS:
                self.success_count += 1
            elif attempt.status is SyncStatus.PARTIAL:
                self.partial_count += 1
            else:
                self.failure_count += 1
                self.last_error = {
                    "message": attempt.error or "Unknown error",
                    "server_name": attempt.server_name,
                    "timestamp": now.isoformat(),
                    "correlation_id": attempt.correlation_id,
                }

            self.servers[attempt.server_name] = ServerHealth(
                last_sync=now, status=attempt.status, error=attempt.error
            )

        logger.debug(
            f"Health updated for {attempt.server_name}: {attempt.status.value} "
            f"(total syncs: {self.sync_count}, overall: {self.status.value})"
        )

    @property
    def status(self) -> HealthStatus:
        """Derive the overall health.

        - PENDING: nothing recorded yet
        - UNHEALTHY: every server's latest attempt failed
        - HEALTHY: latest attempt succeeded, at most half of all attempts
          failed, and no server is currently failing
        - DEGRADED: anything in between
        """
        with self._lock:
            if self.sync_count == 0:
                return HealthStatus.PENDING

            latest = [s.status for s in self.servers.values()]
            if all(status is SyncStatus.FAILURE for status in latest):
                return HealthStatus.UNHEALTHY

            failure_ratio = self.failure_count / self.sync_count
            if (
                self.last_sync_status is SyncStatus.SUCCESS
                and failure_ratio <= 0.5
                and SyncStatus.FAILURE not in latest
            ):
                return HealthStatus.HEALTHY

            return HealthStatus.DEGRADED

    @property
    def success_rate(self) -> float | None:
        if self.sync_count == 0:
            return None
        return self.success_count / self.sync_count

    def snapshot(self) -> dict[str, Any]:
        """Return a JSON-serializable view of the health state."""
        status = self.status
        rate = self.success_rate
        with self._lock:
            return {
                "status": status.value,
                "started_at": self.started_at.isoformat(),
                "uptime_seconds": int(
                    (datetime.now(UTC) - self.started_at).total_seconds()
                ),
                "sync": {
                    "last_sync_time": (
                        self.last_sync_time.isoformat() if self.last_sync_time else None
                    ),
                    "last_sync_status": (
                        self.last_sync_status.value if self.last_sync_status else None
                    ),
                    "total_syncs": self.sync_count,
                    "successful_syncs": self.success_count,
                    "partial_syncs": self.partial_count,
                    "failed_syncs": self.failure_count,
                    "success_rate": f"{rate * 100:.2f}%" if rate is not None else "N/A",
                },
                "servers": {
                    name: {
                        "last_sync": server.last_sync.isoformat(),
                        "status": server.status.value,
                        "error": server.error,
                    }
                    for name, server in self.servers.items()
                },
                "last_error": self.last_error,
            }
