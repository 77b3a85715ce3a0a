"""Result types produced by one bank-sync workflow run."""

import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any


class SyncStatus(str, Enum):
    """Outcome of one sync attempt."""

    SUCCESS = "success"
    PARTIAL = "partial"
    FAILURE = "failure"


@dataclass(frozen=True)
class AccountSyncOutcome:
    """Result of the bank sync for a single account."""

    account_id: str
    account_name: str
    succeeded: bool
    error: str | None = None


@dataclass(frozen=True)
class FailedAccount:
    """An account whose bank sync failed, with the failure reason."""

    account_id: str
    account_name: str
    error: str


def new_correlation_id() -> str:
    return uuid.uuid4().hex


@dataclass
class SyncAttempt:
    """The result of running the bank-sync workflow once for one server.

    Built incrementally while the workflow runs and handed to the
    orchestrator once the workflow returns. ``error`` and ``error_code`` are
    only set when ``status`` is ``failure``.

    Attributes:
        server_name: Configured server the attempt ran against
        status: Final outcome, ``failure`` until the workflow finalizes it
        started_at: UTC timestamp when the attempt began
        duration_ms: Wall-clock duration of the whole attempt
        accounts_processed: Number of accounts a bank sync was attempted for
        succeeded_accounts: Names of accounts synced successfully, in order
        failed_accounts: Accounts whose bank sync failed, in order
        error: Top-level failure reason
        error_code: Vendor error code or exception type of the failure
        final_sync_error: Reason the final file sync failed on a partial run
        correlation_id: Identifier linking logs, history and notifications
    """

    server_name: str
    status: SyncStatus = SyncStatus.FAILURE
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    duration_ms: int = 0
    accounts_processed: int = 0
    succeeded_accounts: list[str] = field(default_factory=list)
    failed_accounts: list[FailedAccount] = field(default_factory=list)
    error: str | None = None
    error_code: str | None = None
    final_sync_error: str | None = None
    correlation_id: str = field(default_factory=new_correlation_id)

    @property
    def accounts_succeeded(self) -> int:
        return len(self.succeeded_accounts)

    @property
    def accounts_failed(self) -> int:
        return len(self.failed_accounts)

    @property
    def is_failure(self) -> bool:
        return self.status is SyncStatus.FAILURE

    def record_outcome(self, outcome: AccountSyncOutcome) -> None:
        """Append one account's outcome to the ordered result lists."""
        self.accounts_processed += 1
        if outcome.succeeded:
            self.succeeded_accounts.append(outcome.account_name)
        else:
            self.failed_accounts.append(
                FailedAccount(
                    account_id=outcome.account_id,
                    account_name=outcome.account_name,
                    error=outcome.error or "Unknown error",
                )
            )

    def fail(self, error: BaseException | str, error_code: str | None = None) -> None:
        """Mark the attempt as failed with a top-level reason."""
        self.status = SyncStatus.FAILURE
        if isinstance(error, BaseException):
            self.error = str(error) or type(error).__name__
            self.error_code = error_code or error_code_for(error)
        else:
            self.error = error
            self.error_code = error_code

    def to_record(self) -> dict[str, Any]:
        """Flatten the attempt into a plain dict for storage and notifications."""
        return {
            "server_name": self.server_name,
            "status": self.status.value,
            "started_at": self.started_at.isoformat(),
            "duration_ms": self.duration_ms,
            "accounts_processed": self.accounts_processed,
            "accounts_succeeded": self.accounts_succeeded,
            "accounts_failed": self.accounts_failed,
            "succeeded_accounts": list(self.succeeded_accounts),
            "failed_accounts": [
                {
                    "account_id": f.account_id,
                    "account_name": f.account_name,
                    "error": f.error,
                }
                for f in self.failed_accounts
            ],
            "error": self.error,
            "error_code": self.error_code,
            "final_sync_error": self.final_sync_error,
            "correlation_id": self.correlation_id,
        }


def error_code_for(error: BaseException) -> str:
    """Return the vendor error code of ``error``, or its exception type name."""
    code = getattr(error, "code", None)
    if isinstance(code, str) and code:
        return code
    return type(error).__name__
