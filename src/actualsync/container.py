"""Composition root wiring settings into the sync orchestrator and services."""

import logging
from dataclasses import dataclass

from actualsync.config import ActualSyncSettings
from actualsync.connectors.actual_client import ActualBudgetClient
from actualsync.connectors.base import BudgetClient
from actualsync.services.health import HealthState
from actualsync.services.history import SyncHistoryStore
from actualsync.services.metrics import SyncMetrics
from actualsync.services.notifications import NotificationService
from actualsync.sync.orchestrator import SyncOrchestrator
from actualsync.sync.retry import RetryExecutor
from actualsync.sync.workflow import BankSyncWorkflow

logger = logging.getLogger(__name__)


@dataclass
class SyncServices:
    """Everything a CLI command or the daemon needs to run syncs."""

    settings: ActualSyncSettings
    orchestrator: SyncOrchestrator
    health: HealthState
    metrics: SyncMetrics
    notifier: NotificationService
    history: SyncHistoryStore | None = None

    def close(self) -> None:
        self.notifier.close()
        if self.history is not None:
            self.history.close()


def build_history_store(settings: ActualSyncSettings) -> SyncHistoryStore | None:
    """Return the history store, or None when history is disabled."""
    if not settings.history.enabled:
        logger.debug("Sync history disabled")
        return None
    return SyncHistoryStore(
        settings.history.db_path, retention_days=settings.history.retention_days
    )


def build_workflow(
    settings: ActualSyncSettings,
    client: BudgetClient | None = None,
    executor: RetryExecutor | None = None,
) -> BankSyncWorkflow:
    """Return a workflow bound to the Actual client and global sync defaults."""
    return BankSyncWorkflow(
        client or ActualBudgetClient(),
        defaults=settings.sync,
        executor=executor or RetryExecutor(),
    )


def build_services(
    settings: ActualSyncSettings,
    client: BudgetClient | None = None,
    with_history: bool = True,
) -> SyncServices:
    """Wire the orchestrator and its collaborators from ``settings``.

    Args:
        settings: Loaded application settings
        client: Budget client override (default: ``ActualBudgetClient``)
        with_history: Open the history database when it is enabled

    Returns:
        SyncServices: The wired services
    """
    health = HealthState()
    metrics = SyncMetrics()
    notifier = NotificationService(settings.notifications)
    history = build_history_store(settings) if with_history else None

    orchestrator = SyncOrchestrator(
        settings.servers,
        build_workflow(settings, client),
        health=health,
        metrics=metrics,
        history=history,
        notifier=notifier,
    )
    return SyncServices(
        settings=settings,
        orchestrator=orchestrator,
        health=health,
        metrics=metrics,
        notifier=notifier,
        history=history,
    )


__all__ = [
    "SyncServices",
    "build_history_store",
    "build_workflow",
    "build_services",
]
