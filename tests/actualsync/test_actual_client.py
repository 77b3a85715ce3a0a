"""Tests for the actualpy-backed budget client."""

import asyncio
from collections.abc import Callable
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
import requests
from actual.exceptions import ActualError, AuthorizationError, UnknownFileId
from pytest_mock import MockerFixture

from actualsync.config import ServerConfig, SyncDefaults
from actualsync.connectors.actual_client import (
    ActualBudgetClient,
    ActualSession,
    translate_error,
)
from actualsync.connectors.base import Account
from actualsync.errors import BudgetClientError
from actualsync.sync.models import SyncStatus
from actualsync.sync.retry import is_rate_limit_error, is_retryable
from actualsync.sync.workflow import BankSyncWorkflow


class BankSyncFailure(ActualError):
    def __init__(self, error_type: str):
        super().__init__(f"Bank sync failed: {error_type}")
        self.error_type = error_type


class TestTranslateError:
    """Mapping SDK errors onto BudgetClientError."""

    @pytest.mark.unit
    def test_rate_limit_becomes_vendor_code(self) -> None:
        translated = translate_error(BankSyncFailure("RATE_LIMIT_EXCEEDED"))

        assert isinstance(translated, BudgetClientError)
        assert is_rate_limit_error(translated)

    @pytest.mark.unit
    def test_other_bank_sync_errors_keep_their_type(self) -> None:
        translated = translate_error(BankSyncFailure("ITEM_ERROR"))

        assert isinstance(translated, BudgetClientError)
        assert translated.code == "ITEM_ERROR"
        assert not is_retryable(translated)

    @pytest.mark.unit
    def test_authorization_error(self) -> None:
        translated = translate_error(AuthorizationError("Invalid password"))

        assert isinstance(translated, BudgetClientError)
        assert translated.code == "AUTHORIZATION_ERROR"
        assert not is_retryable(translated)

    @pytest.mark.unit
    def test_unknown_file(self) -> None:
        translated = translate_error(UnknownFileId("No budget with that id"))

        assert isinstance(translated, BudgetClientError)
        assert translated.code == "UNKNOWN_FILE_ID"

    @pytest.mark.unit
    def test_network_errors_pass_through(self) -> None:
        error = requests.exceptions.ConnectionError("refused")

        assert translate_error(error) is error
        assert is_retryable(error)

    @pytest.mark.unit
    def test_unrelated_errors_pass_through(self) -> None:
        error = KeyError("x")

        assert translate_error(error) is error


class TestActualBudgetClient:
    """Session lifecycle over a mocked SDK."""

    @pytest.fixture
    def actual_cls(self, mocker: MockerFixture) -> MagicMock:
        return mocker.patch("actualsync.connectors.actual_client.Actual")

    @pytest.mark.unit
    def test_connect_passes_credentials(
        self, actual_cls: MagicMock, tmp_path: Path
    ) -> None:
        client = ActualBudgetClient()

        session = asyncio.run(
            client.connect("https://actual.test", "secret", tmp_path, "e2e")
        )

        assert isinstance(session, ActualSession)
        kwargs = actual_cls.call_args.kwargs
        assert kwargs["base_url"] == "https://actual.test"
        assert kwargs["password"] == "secret"
        assert kwargs["encryption_password"] == "e2e"
        assert kwargs["data_dir"] == tmp_path

    @pytest.mark.unit
    def test_connect_translates_authorization_error(
        self, actual_cls: MagicMock, tmp_path: Path
    ) -> None:
        actual_cls.side_effect = AuthorizationError("Invalid password")

        with pytest.raises(BudgetClientError) as exc_info:
            asyncio.run(ActualBudgetClient().connect("https://a.test", "x", tmp_path))

        assert exc_info.value.code == "AUTHORIZATION_ERROR"
        assert isinstance(exc_info.value.__cause__, AuthorizationError)

    @pytest.mark.unit
    def test_disconnect_closes_http_session_when_download_fails(
        self, actual_cls: MagicMock, tmp_path: Path
    ) -> None:
        actual = actual_cls.return_value
        actual.set_file.side_effect = UnknownFileId("No budget with that id")
        client = ActualBudgetClient()
        session = asyncio.run(client.connect("https://a.test", "x", tmp_path))

        with pytest.raises(BudgetClientError):
            asyncio.run(client.download_budget(session, "missing"))
        asyncio.run(client.disconnect(session))

        actual._requests_session.close.assert_called_once_with()
        actual.__exit__.assert_not_called()

    @pytest.mark.unit
    def test_download_opens_and_disconnect_closes(self) -> None:
        actual = MagicMock()
        session = ActualSession(actual=actual)
        client = ActualBudgetClient()

        asyncio.run(client.download_budget(session, "sync-id"))
        actual.set_file.assert_called_once_with("sync-id")
        actual.__enter__.assert_called_once()

        asyncio.run(client.disconnect(session))
        actual.__exit__.assert_called_once()

    @pytest.mark.unit
    def test_disconnect_without_session_is_noop(self) -> None:
        asyncio.run(ActualBudgetClient().disconnect(None))

    @pytest.mark.unit
    def test_list_accounts(self, mocker: MockerFixture) -> None:
        mocker.patch(
            "actualsync.connectors.actual_client.get_accounts",
            return_value=[
                SimpleNamespace(id="a1", name="Checking"),
                SimpleNamespace(id="a2", name="Savings"),
            ],
        )
        session = ActualSession(actual=MagicMock())

        accounts = asyncio.run(ActualBudgetClient().list_accounts(session))

        assert accounts == [Account("a1", "Checking"), Account("a2", "Savings")]

    @pytest.mark.unit
    def test_bank_sync_and_file_sync(self) -> None:
        actual = MagicMock()
        session = ActualSession(actual=actual)
        client = ActualBudgetClient()

        asyncio.run(client.sync_account_bank_data(session, "a1"))
        asyncio.run(client.sync_file(session))

        actual.run_bank_sync.assert_called_once_with(account="a1")
        actual.commit.assert_called_once_with()
        actual.sync.assert_called_once_with()

    @pytest.mark.unit
    def test_bank_sync_rate_limit_is_retryable(self) -> None:
        actual = MagicMock()
        actual.run_bank_sync.side_effect = BankSyncFailure("RATE_LIMIT_EXCEEDED")
        session = ActualSession(actual=actual)

        with pytest.raises(BudgetClientError) as exc_info:
            asyncio.run(ActualBudgetClient().sync_account_bank_data(session, "a1"))

        assert is_retryable(exc_info.value)
        actual.commit.assert_not_called()


@pytest.mark.unit
def test_workflow_commits_bank_sync_results(
    mocker: MockerFixture, tmp_path: Path, make_server: Callable[..., ServerConfig]
) -> None:
    """Imported transactions are committed to the server, not only staged locally."""
    actual_cls = mocker.patch("actualsync.connectors.actual_client.Actual")
    mocker.patch(
        "actualsync.connectors.actual_client.get_accounts",
        return_value=[SimpleNamespace(id="a1", name="Checking")],
    )
    actual = actual_cls.return_value
    calls: list[str] = []
    actual.run_bank_sync.side_effect = lambda **kwargs: calls.append("run_bank_sync")
    actual.commit.side_effect = lambda: calls.append("commit")

    workflow = BankSyncWorkflow(ActualBudgetClient(), SyncDefaults())
    attempt = asyncio.run(workflow.run(make_server()))

    assert attempt.status is SyncStatus.SUCCESS
    assert calls == ["run_bank_sync", "commit"]
    actual.__exit__.assert_called_once()
    actual._requests_session.close.assert_called_once_with()
