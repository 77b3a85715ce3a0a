"""Shared pytest fixtures for actualsync tests.

Provides an in-memory budget client that records every call, a sleep
function that records requested delays instead of waiting, server
configuration builders and settings cache cleanup.
"""

import json
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from actualsync.config import ServerConfig, clear_settings_cache
from actualsync.connectors.base import Account


class FakeSession:
    """Opaque session handed out by ``FakeBudgetClient.connect``."""

    def __init__(self, url: str):
        self.url = url


class FakeBudgetClient:
    """Budget client double with scripted failures.

    ``failures`` maps an operation name (``connect``, ``download_budget``,
    ``list_accounts``, ``sync_file``, ``bank_sync:<account_id>``,
    ``disconnect``) to a list of exceptions raised on successive calls.
    A ``None`` entry lets that call succeed, and once the list is exhausted
    the operation always succeeds. ``sync_file`` entries cover the initial
    and the final sync, in call order.
    """

    def __init__(
        self,
        accounts: list[Account] | None = None,
        failures: dict[str, list[BaseException | None]] | None = None,
    ):
        self.accounts = accounts if accounts is not None else []
        self.failures = {k: list(v) for k, v in (failures or {}).items()}
        self.calls: list[str] = []
        self.disconnected: list[Any] = []

    def _maybe_fail(self, name: str) -> None:
        self.calls.append(name)
        pending = self.failures.get(name)
        if pending:
            error = pending.pop(0)
            if error is not None:
                raise error

    def count(self, name: str) -> int:
        return self.calls.count(name)

    async def connect(
        self,
        url: str,
        password: str,
        data_dir: Path,
        encryption_password: str | None = None,
    ) -> FakeSession:
        self._maybe_fail("connect")
        return FakeSession(url)

    async def download_budget(self, session: Any, sync_id: str) -> None:
        self._maybe_fail("download_budget")

    async def list_accounts(self, session: Any) -> list[Account]:
        self._maybe_fail("list_accounts")
        return list(self.accounts)

    async def sync_file(self, session: Any) -> None:
        self._maybe_fail("sync_file")

    async def sync_account_bank_data(self, session: Any, account_id: str) -> None:
        self._maybe_fail(f"bank_sync:{account_id}")

    async def disconnect(self, session: Any | None) -> None:
        self.disconnected.append(session)
        self._maybe_fail("disconnect")


class RecordingSleep:
    """Async sleep replacement that records delays in seconds."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def make_accounts(*names: str) -> list[Account]:
    return [Account(id=f"acct-{i}", name=name) for i, name in enumerate(names, 1)]


@pytest.fixture(autouse=True)
def clean_settings_state() -> Generator[None, None, None]:
    """Clear cached settings and the CLI config path around each test."""
    clear_settings_cache()
    yield
    clear_settings_cache()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def make_server(tmp_path: Path) -> Callable[..., ServerConfig]:
    """Factory for valid server configurations with a temp data directory."""

    def _make(name: str = "Main", **overrides: Any) -> ServerConfig:
        values: dict[str, Any] = {
            "name": name,
            "url": "https://actual.example.com",
            "password": "correct-horse-battery",
            "sync_id": f"sync-{name.lower()}",
            "data_dir": tmp_path / "budgets" / name.lower(),
        }
        values.update(overrides)
        return ServerConfig(**values)

    return _make


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a JSON configuration file and return its path."""

    def _write(data: dict[str, Any], filename: str = "config.json") -> Path:
        path = tmp_path / filename
        path.write_text(json.dumps(data))
        return path

    return _write


@pytest.fixture
def sample_config(tmp_path: Path) -> dict[str, Any]:
    """A valid two-server configuration in the file's camelCase format."""
    return {
        "servers": [
            {
                "name": "Main",
                "url": "https://main.example.com",
                "password": "correct-horse-battery",
                "syncId": "sync-main",
                "dataDir": str(tmp_path / "data" / "main"),
            },
            {
                "name": "Family",
                "url": "https://family.example.com",
                "password": "correct-horse-battery",
                "syncId": "sync-family",
                "dataDir": str(tmp_path / "data" / "family"),
                "sync": {"maxRetries": 2, "schedule": "0 6 * * 1"},
            },
        ],
        "sync": {"maxRetries": 4, "baseRetryDelayMs": 2000},
        "syncHistory": {"dbPath": str(tmp_path / "history.duckdb")},
    }
