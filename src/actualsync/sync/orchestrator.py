"""Sequential orchestration of bank syncs across configured servers.

Servers are synced one at a time in configuration order, never concurrently:
the banking provider behind every Actual server is shared, and one flow of
control keeps failures attributable to a single server. A single-flight lock
makes a second batch (a scheduled group firing during a forced run, say) wait
until the current batch has finished.

Each attempt is handed to the health state, metrics, history and
notification collaborators. A failing collaborator is logged and skipped; it
never stops the remaining servers from syncing.
"""

import asyncio
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from actualsync.config import ServerConfig
from actualsync.errors import ServerNotFoundError
from actualsync.sync.models import SyncAttempt, SyncStatus
from actualsync.sync.workflow import BankSyncWorkflow

logger = logging.getLogger(__name__)


class HealthRecorder(Protocol):
    def update(self, attempt: SyncAttempt) -> None: ...


class MetricsRecorder(Protocol):
    def record_sync(self, attempt: SyncAttempt) -> None: ...


class HistoryRecorder(Protocol):
    def record_sync(self, attempt: SyncAttempt) -> Any: ...


class AttemptNotifier(Protocol):
    async def handle_attempt(self, attempt: SyncAttempt) -> bool: ...


class SyncOrchestrator:
    """Run the bank-sync workflow for configured servers and report results."""

    def __init__(
        self,
        servers: Sequence[ServerConfig],
        workflow: BankSyncWorkflow,
        health: HealthRecorder | None = None,
        metrics: MetricsRecorder | None = None,
        history: HistoryRecorder | None = None,
        notifier: AttemptNotifier | None = None,
    ):
        """Initialize the orchestrator.

        Args:
            servers: Validated server configurations, in sync order
            workflow: Workflow executed for each server
            health: Health state updated after each attempt
            metrics: Metrics recorder
            history: History store
            notifier: Notification service
        """
        self.servers = list(servers)
        self.workflow = workflow
        self.health = health
        self.metrics = metrics
        self.history = history
        self.notifier = notifier
        self._single_flight = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._single_flight.locked()

    def get_server(self, name: str) -> ServerConfig:
        """Look up a configured server by name.

        Raises:
            ServerNotFoundError: If no server has that name
        """
        for server in self.servers:
            if server.name == name:
                return server
        raise ServerNotFoundError(name, [s.name for s in self.servers])

    async def run_all(self) -> list[SyncAttempt]:
        """Sync every configured server in order.

        Returns:
            list[SyncAttempt]: One attempt per server, in configuration order
        """
        return await self.run_servers(self.servers)

    async def run_one(self, server_name: str) -> SyncAttempt:
        """Sync a single configured server.

        Raises:
            ServerNotFoundError: If ``server_name`` is not configured
        """
        server = self.get_server(server_name)
        attempts = await self.run_servers([server])
        return attempts[0]

    async def run_servers(self, servers: Sequence[ServerConfig]) -> list[SyncAttempt]:
        """Sync ``servers`` sequentially, one workflow at a time.

        Args:
            servers: Servers to sync, in order

        Returns:
            list[SyncAttempt]: One attempt per server, in the given order
        """
        if self.is_running:
            logger.info("A sync is already running; waiting for it to finish")

        async with self._single_flight:
            logger.info(f"🔄 Starting sync for {len(servers)} server(s)")
            attempts: list[SyncAttempt] = []
            for server in servers:
                attempt = await self._run_server(server)
                await self._report(attempt)
                attempts.append(attempt)

        self._log_summary(attempts)
        return attempts

    async def _run_server(self, server: ServerConfig) -> SyncAttempt:
        try:
            return await self.workflow.run(server)
        except Exception as e:
            logger.exception(f"❌ Unexpected error while syncing {server.name}: {e}")
            attempt = SyncAttempt(server_name=server.name)
            attempt.fail(e)
            return attempt

    async def _report(self, attempt: SyncAttempt) -> None:
        """Forward an attempt to every collaborator, isolating their failures."""
        for name, recorder in (
            ("health", self.health.update if self.health else None),
            ("metrics", self.metrics.record_sync if self.metrics else None),
            ("history", self.history.record_sync if self.history else None),
        ):
            if recorder is None:
                continue
            try:
                recorder(attempt)
            except Exception as e:
                logger.error(
                    f"Failed to record sync attempt {attempt.correlation_id} "
                    f"in {name}: {e}"
                )

        if self.notifier is not None:
            try:
                await self.notifier.handle_attempt(attempt)
            except Exception as e:
                logger.error(
                    f"Failed to send notification for attempt {attempt.correlation_id}: {e}"
                )

    @staticmethod
    def _log_summary(attempts: list[SyncAttempt]) -> None:
        counts = {status: 0 for status in SyncStatus}
        for attempt in attempts:
            counts[attempt.status] += 1
        logger.info(
            f"Sync finished: {counts[SyncStatus.SUCCESS]} succeeded, "
            f"{counts[SyncStatus.PARTIAL]} partial, {counts[SyncStatus.FAILURE]} failed"
        )
