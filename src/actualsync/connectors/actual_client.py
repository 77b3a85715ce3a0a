"""Budget client backed by the actualpy SDK.

actualpy is synchronous, so every SDK call runs in a worker thread through
``asyncio.to_thread``; the workflow still sees an async ``BudgetClient``.

SDK errors are translated into ``BudgetClientError`` with the vendor-style
``code``/``category`` pair the retry classifier understands. Network errors
from ``requests`` are passed through unchanged since they are already
classified as retryable.

Bank sync only stages imported transactions in the local database session, so
each successful account sync is committed to the server right away.
"""

import asyncio
import logging
from contextlib import ExitStack
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import requests
from actual import Actual
from actual.exceptions import ActualError, AuthorizationError, UnknownFileId
from actual.queries import get_accounts

from actualsync.connectors.base import Account
from actualsync.errors import BudgetClientError
from actualsync.sync.retry import RATE_LIMIT_CATEGORY, RATE_LIMIT_CODE

logger = logging.getLogger(__name__)


@dataclass
class ActualSession:
    """An open connection to one Actual server, owned by one workflow run."""

    actual: Actual
    stack: ExitStack = field(default_factory=ExitStack)


def translate_error(error: Exception) -> Exception:
    """Map an actualpy exception onto ``BudgetClientError``.

    Args:
        error: Exception raised by the SDK

    Returns:
        Exception: The error to raise to the workflow
    """
    if isinstance(error, (requests.exceptions.RequestException, BudgetClientError)):
        return error

    message = str(error) or type(error).__name__
    error_type = getattr(error, "error_type", None) or ""

    if error_type == "RATE_LIMIT_EXCEEDED" or "RATE_LIMIT_EXCEEDED" in message:
        return BudgetClientError(message, RATE_LIMIT_CODE, RATE_LIMIT_CATEGORY)
    if isinstance(error, AuthorizationError):
        return BudgetClientError(message, "AUTHORIZATION_ERROR")
    if isinstance(error, UnknownFileId):
        return BudgetClientError(message, "UNKNOWN_FILE_ID")
    if isinstance(error, ActualError):
        return BudgetClientError(message, error_type or type(error).__name__)
    return error


class ActualBudgetClient:
    """``BudgetClient`` implementation for Actual Budget servers."""

    def __init__(self, cert: str | bool = False):
        """Initialize the client.

        Args:
            cert: TLS certificate path, or False to use the default trust store
        """
        self.cert = cert

    async def _call(self, fn: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, *args, **kwargs)
        except Exception as e:
            translated = translate_error(e)
            if translated is e:
                raise
            raise translated from e

    async def connect(
        self,
        url: str,
        password: str,
        data_dir: Path,
        encryption_password: str | None = None,
    ) -> ActualSession:
        """Log in to the server. The budget is opened by ``download_budget``."""
        actual = await self._call(
            Actual,
            base_url=url,
            password=password,
            encryption_password=encryption_password,
            data_dir=data_dir,
            cert=self.cert,
        )
        session = ActualSession(actual=actual)
        http = getattr(actual, "_requests_session", None)
        if http is not None:
            # Closed last, after the budget context opened by download_budget
            session.stack.callback(http.close)
        return session

    async def download_budget(self, session: ActualSession, sync_id: str) -> None:
        """Download the budget identified by ``sync_id`` and open a database session."""

        def _open() -> None:
            session.actual.set_file(sync_id)
            # Entering the context downloads the budget and opens the session
            session.stack.enter_context(session.actual)

        await self._call(_open)

    async def list_accounts(self, session: ActualSession) -> list[Account]:
        rows = await self._call(get_accounts, session.actual.session)
        return [Account(id=str(row.id), name=str(row.name)) for row in rows]

    async def sync_file(self, session: ActualSession) -> None:
        await self._call(session.actual.sync)

    async def sync_account_bank_data(self, session: ActualSession, account_id: str) -> None:
        """Import bank transactions for one account and push them to the server."""

        def _bank_sync() -> None:
            session.actual.run_bank_sync(account=account_id)
            # run_bank_sync only stages rows in the local session
            session.actual.commit()

        await self._call(_bank_sync)

    async def disconnect(self, session: ActualSession | None) -> None:
        """Close the budget session. A session that never opened is a no-op."""
        if session is None:
            return
        try:
            await asyncio.to_thread(session.stack.close)
        except Exception as e:
            logger.warning(f"Error while closing Actual session: {e}")
