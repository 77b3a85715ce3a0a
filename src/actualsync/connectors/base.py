"""Budget client protocol consumed by the sync workflow."""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol


@dataclass(frozen=True)
class Account:
    """A bank account enumerated within a budget."""

    id: str
    name: str


class BudgetClient(Protocol):
    """Async operations the bank-sync workflow needs from a budget server.

    ``connect`` returns an opaque session that is owned by one workflow run
    and passed back into every other call. ``disconnect`` is best-effort
    cleanup and must accept ``None`` when ``connect`` never succeeded.
    """

    async def connect(
        self,
        url: str,
        password: str,
        data_dir: Path,
        encryption_password: str | None = None,
    ) -> Any: ...

    async def download_budget(self, session: Any, sync_id: str) -> None: ...

    async def list_accounts(self, session: Any) -> list[Account]: ...

    async def sync_file(self, session: Any) -> None: ...

    async def sync_account_bank_data(self, session: Any, account_id: str) -> None: ...

    async def disconnect(self, session: Any | None) -> None: ...
