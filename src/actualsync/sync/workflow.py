"""Bank-sync workflow for a single Actual Budget server.

One run performs a fixed sequence against the server:

1. Connect (retried)
2. Download the budget (retried)
3. Enumerate accounts
4. Initial file sync (retried)
5. Bank sync for each account, each retried and isolated from the others
6. Final file sync (retried)
7. Disconnect, on every exit path

Failures in steps 1-4 are fatal to the attempt. A failing account is recorded
and the loop moves on to the next one. Remote failures never escape the
workflow; they are reported through the returned ``SyncAttempt``.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from actualsync.config import ServerConfig, SyncDefaults
from actualsync.connectors.base import Account, BudgetClient
from actualsync.logging import SyncLoggerAdapter, get_sync_logger
from actualsync.sync.models import (
    AccountSyncOutcome,
    SyncAttempt,
    SyncStatus,
)
from actualsync.sync.retry import RetryExecutor, RetryPolicy

T = TypeVar("T")

ALL_ACCOUNTS_FAILED = "ALL_ACCOUNTS_FAILED"


class BankSyncWorkflow:
    """Drive the connect → bank sync → disconnect sequence for one server."""

    def __init__(
        self,
        client: BudgetClient,
        defaults: SyncDefaults | None = None,
        executor: RetryExecutor | None = None,
    ):
        """Initialize the workflow.

        Args:
            client: Budget client used for every remote call
            defaults: Global sync settings merged with per-server overrides
            executor: Retry executor (default: one using ``asyncio.sleep``)
        """
        self.client = client
        self.defaults = defaults or SyncDefaults()
        self.executor = executor or RetryExecutor()

    async def run(self, server: ServerConfig) -> SyncAttempt:
        """Run one full sync attempt against ``server``.

        Args:
            server: Server configuration

        Returns:
            SyncAttempt: Finalized outcome of the attempt
        """
        attempt = SyncAttempt(server_name=server.name)
        log = get_sync_logger(server.name, attempt.correlation_id)
        policy = server.retry_policy(self.defaults)
        started = time.monotonic()
        session: Any = None

        log.info(
            f"Starting sync for server {server.name} ({server.url}) "
            f"max_retries={policy.max_retries} base_delay_ms={policy.base_delay_ms}"
        )

        try:
            try:
                server.data_dir.mkdir(parents=True, exist_ok=True)

                log.info("Connecting to Actual server")
                session = await self._retry(
                    lambda: self.client.connect(
                        server.url,
                        server.password,
                        server.data_dir,
                        server.encryption_password,
                    ),
                    policy,
                    "connect",
                    log,
                )
                log.info("Connected to Actual server")

                log.info(f"Downloading budget {server.sync_id}")
                await self._retry(
                    lambda: self.client.download_budget(session, server.sync_id),
                    policy,
                    "download budget",
                    log,
                )
                log.info("Budget downloaded")

                accounts = await self._call(self.client.list_accounts(session))
                log.info(f"Found {len(accounts)} accounts")

                log.info("Starting initial file sync")
                await self._retry(
                    lambda: self.client.sync_file(session),
                    policy,
                    "initial file sync",
                    log,
                )
                log.info("Initial file sync completed")
            except Exception as e:
                log.error(f"❌ Sync failed before account processing: {e}", exc_info=True)
                attempt.fail(e)
            else:
                await self._sync_accounts(session, accounts, attempt, policy, log)
                await self._final_sync(session, attempt, policy, log)
        finally:
            await self._disconnect(session, log)

        return self._finish(attempt, started, log)

    async def _sync_accounts(
        self,
        session: Any,
        accounts: list[Account],
        attempt: SyncAttempt,
        policy: RetryPolicy,
        log: SyncLoggerAdapter,
    ) -> None:
        """Bank-sync each account in order, recording every outcome."""
        if not accounts:
            log.warning("No accounts found to sync")
            return

        for account in accounts:
            log.info(f"Starting bank sync for account {account.name} ({account.id})")
            try:
                await self._retry(
                    lambda account_id=account.id: self.client.sync_account_bank_data(
                        session, account_id
                    ),
                    policy,
                    f"bank sync {account.name}",
                    log,
                )
            except Exception as e:
                attempt.record_outcome(
                    AccountSyncOutcome(
                        account_id=account.id,
                        account_name=account.name,
                        succeeded=False,
                        error=str(e) or type(e).__name__,
                    )
                )
                log.error(f"❌ Bank sync failed for account {account.name}: {e}")
            else:
                attempt.record_outcome(
                    AccountSyncOutcome(
                        account_id=account.id,
                        account_name=account.name,
                        succeeded=True,
                    )
                )
                log.info(f"✅ Bank sync completed for account {account.name}")

    async def _final_sync(
        self,
        session: Any,
        attempt: SyncAttempt,
        policy: RetryPolicy,
        log: SyncLoggerAdapter,
    ) -> None:
        """Persist updates with a last file sync and derive the final status."""
        try:
            log.info("Starting final file sync")
            await self._retry(
                lambda: self.client.sync_file(session), policy, "final file sync", log
            )
            log.info("Final file sync completed")
        except Exception as e:
            log.error(f"❌ Final file sync failed: {e}")
            if attempt.succeeded_accounts:
                attempt.status = SyncStatus.PARTIAL
                attempt.final_sync_error = str(e) or type(e).__name__
            else:
                attempt.fail(e)
            return

        if attempt.accounts_processed and not attempt.succeeded_accounts:
            attempt.fail(
                f"All {attempt.accounts_processed} accounts failed bank sync",
                ALL_ACCOUNTS_FAILED,
            )
        elif attempt.failed_accounts:
            attempt.status = SyncStatus.PARTIAL
        else:
            attempt.status = SyncStatus.SUCCESS

    async def _retry(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        description: str,
        log: SyncLoggerAdapter,
    ) -> T:
        return await self.executor.run(
            lambda: self._call(operation()), policy, description, log
        )

    async def _call(self, awaitable: Awaitable[T]) -> T:
        """Await a remote call, bounded by the configured operation timeout."""
        timeout = self.defaults.operation_timeout_seconds
        if timeout is None:
            return await awaitable
        return await asyncio.wait_for(awaitable, timeout)

    async def _disconnect(self, session: Any, log: SyncLoggerAdapter) -> None:
        """Release the remote session; errors are logged, never raised."""
        try:
            log.debug("Shutting down Actual connection")
            await self.client.disconnect(session)
            log.debug("Shutdown complete")
        except Exception as e:
            log.error(f"Error during shutdown: {e}")

    def _finish(
        self, attempt: SyncAttempt, started: float, log: SyncLoggerAdapter
    ) -> SyncAttempt:
        attempt.duration_ms = int((time.monotonic() - started) * 1000)
        summary = (
            f"{attempt.accounts_succeeded}/{attempt.accounts_processed} accounts synced "
            f"in {attempt.duration_ms} ms"
        )
        if attempt.status is SyncStatus.SUCCESS:
            log.info(f"✅ Sync succeeded: {summary}")
        elif attempt.status is SyncStatus.PARTIAL:
            log.warning(f"⚠️  Sync partially succeeded: {summary}")
        else:
            log.error(f"❌ Sync failed: {attempt.error} ({summary})")
        return attempt
