"""Tests for the health and metrics HTTP API."""

from collections.abc import Generator
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from actualsync.api import create_app
from actualsync.services.health import HealthState
from actualsync.services.history import SyncHistoryStore
from actualsync.services.metrics import SyncMetrics
from actualsync.sync.models import SyncAttempt, SyncStatus


@pytest.fixture
def health() -> HealthState:
    return HealthState()


@pytest.fixture
def metrics() -> SyncMetrics:
    return SyncMetrics()


@pytest.fixture
def history(tmp_path: Path) -> Generator[SyncHistoryStore, None, None]:
    store = SyncHistoryStore(tmp_path / "history.duckdb")
    yield store
    store.close()


def record(
    attempt: SyncAttempt,
    health: HealthState,
    metrics: SyncMetrics,
    history: SyncHistoryStore | None = None,
) -> None:
    health.update(attempt)
    metrics.record_sync(attempt)
    if history is not None:
        history.record_sync(attempt)


class TestHealthApi:
    """Endpoints backed by in-memory state."""

    @pytest.mark.unit
    def test_health_is_up_before_any_sync(
        self, health: HealthState, metrics: SyncMetrics
    ) -> None:
        client = TestClient(create_app(health, metrics))

        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "UP"
        assert body["sync_status"] == "PENDING"
        assert body["service"] == "actual-sync"

    @pytest.mark.unit
    def test_ready_during_startup_grace(
        self, health: HealthState, metrics: SyncMetrics
    ) -> None:
        client = TestClient(create_app(health, metrics))

        assert client.get("/ready").json()["status"] == "READY"

    @pytest.mark.unit
    def test_not_ready_after_grace_without_syncs(
        self, health: HealthState, metrics: SyncMetrics
    ) -> None:
        health.started_at = datetime.now(UTC) - timedelta(minutes=5)
        client = TestClient(create_app(health, metrics))

        response = client.get("/ready")

        assert response.status_code == 503
        assert response.json()["status"] == "NOT_READY"

    @pytest.mark.unit
    def test_metrics_include_counters(
        self, health: HealthState, metrics: SyncMetrics
    ) -> None:
        record(SyncAttempt("Main", SyncStatus.SUCCESS), health, metrics)
        record(SyncAttempt("Family", SyncStatus.FAILURE, error="boom"), health, metrics)
        client = TestClient(create_app(health, metrics))

        body = client.get("/metrics").json()

        assert body["status"] == "DEGRADED"
        assert body["sync"]["total_syncs"] == 2
        assert body["metrics"]["Family"]["syncs"] == {"failure": 1}
        assert body["last_error"]["server_name"] == "Family"

    @pytest.mark.unit
    def test_status_lists_servers(self, health: HealthState, metrics: SyncMetrics) -> None:
        record(SyncAttempt("Main", SyncStatus.PARTIAL), health, metrics)
        client = TestClient(create_app(health, metrics))

        body = client.get("/api/status").json()

        assert body["status"] == "DEGRADED"
        assert body["servers"]["Main"]["status"] == "partial"

    @pytest.mark.unit
    def test_history_disabled(self, health: HealthState, metrics: SyncMetrics) -> None:
        client = TestClient(create_app(health, metrics))

        assert client.get("/api/history").status_code == 503


@pytest.mark.integration
def test_history_endpoint(
    health: HealthState, metrics: SyncMetrics, history: SyncHistoryStore
) -> None:
    record(SyncAttempt("Main", SyncStatus.SUCCESS), health, metrics, history)
    record(SyncAttempt("Family", SyncStatus.FAILURE, error="x"), health, metrics, history)
    client = TestClient(create_app(health, metrics, history))

    body = client.get("/api/history", params={"server": "Family"}).json()

    assert [row["server_name"] for row in body["history"]] == ["Family"]
    assert body["statistics"]["total_syncs"] == 1
    assert body["statistics"]["failed_syncs"] == 1
