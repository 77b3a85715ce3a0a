"""Health and metrics HTTP API served alongside the scheduler daemon."""

import logging
from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from actualsync import __version__
from actualsync.services.health import HealthState
from actualsync.services.history import SyncHistoryStore
from actualsync.services.metrics import SyncMetrics

logger = logging.getLogger(__name__)

SERVICE_NAME = "actual-sync"
# Seconds after startup during which /ready reports READY without any sync
READINESS_GRACE_SECONDS = 60

router = APIRouter()


def _now() -> str:
    return datetime.now(UTC).isoformat()


def _health(request: Request) -> HealthState:
    return request.app.state.health


def _history(request: Request) -> SyncHistoryStore:
    history: SyncHistoryStore | None = request.app.state.history
    if history is None:
        raise HTTPException(503, "Sync history is disabled")
    return history


@router.get("/health")
async def health(request: Request) -> dict[str, Any]:
    """Liveness probe: the process is up and serving requests."""
    snapshot = _health(request).snapshot()
    return {
        "status": "UP",
        "sync_status": snapshot["status"],
        "timestamp": _now(),
        "uptime": snapshot["uptime_seconds"],
        "service": SERVICE_NAME,
        "version": __version__,
    }


@router.get("/ready")
async def ready(request: Request) -> JSONResponse:
    """Readiness probe: a sync has run, or the service only just started."""
    snapshot = _health(request).snapshot()
    in_grace = snapshot["uptime_seconds"] < READINESS_GRACE_SECONDS
    if snapshot["sync"]["total_syncs"] > 0 or in_grace:
        return JSONResponse({"status": "READY", "timestamp": _now()})
    return JSONResponse(
        {"status": "NOT_READY", "timestamp": _now(), "reason": "No syncs yet"},
        status_code=503,
    )


@router.get("/metrics")
async def metrics(request: Request) -> dict[str, Any]:
    """Health snapshot plus per-server sync counters."""
    metrics_state: SyncMetrics = request.app.state.metrics
    return {
        **_health(request).snapshot(),
        "timestamp": _now(),
        "service": SERVICE_NAME,
        "version": __version__,
        "metrics": metrics_state.snapshot(),
    }


@router.get("/api/status")
async def server_status(request: Request) -> dict[str, Any]:
    snapshot = _health(request).snapshot()
    return {
        "status": snapshot["status"],
        "servers": snapshot["servers"],
        "last_error": snapshot["last_error"],
    }


@router.get("/api/history")
async def history(
    request: Request,
    server: str | None = None,
    status: str | None = None,
    days: int | None = None,
    limit: int = 50,
    offset: int = 0,
) -> dict[str, Any]:
    """Recorded sync attempts, newest first, with statistics for the same filter."""
    store = _history(request)
    return {
        "history": store.get_history(
            server_name=server, status=status, days=days, limit=limit, offset=offset
        ),
        "statistics": store.get_statistics(server_name=server, days=days),
    }


def create_app(
    health: HealthState,
    metrics: SyncMetrics,
    history: SyncHistoryStore | None = None,
) -> FastAPI:
    """Build the health API application.

    Args:
        health: Health state updated by the orchestrator
        metrics: Metrics updated by the orchestrator
        history: History store, or None when history is disabled

    Returns:
        FastAPI: The application
    """
    app = FastAPI(title="actualsync", version=__version__)
    app.state.health = health
    app.state.metrics = metrics
    app.state.history = history
    app.include_router(router)
    return app
