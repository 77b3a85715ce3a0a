"""Bank sync commands for the actualsync CLI.

``sync run`` performs a one-off sync of every configured server (or just
one), and ``sync daemon`` runs the cron scheduler together with the health
API until interrupted.
"""

import asyncio
import logging
from typing import Annotated

import typer
import uvicorn

from actualsync.api import create_app
from actualsync.cli.common import load_cli_settings
from actualsync.config import ActualSyncSettings
from actualsync.container import SyncServices, build_services
from actualsync.errors import ServerNotFoundError
from actualsync.scheduler import SyncScheduler
from actualsync.sync.models import SyncAttempt, SyncStatus

app = typer.Typer(help="Run bank syncs now or on a schedule", no_args_is_help=True)
logger = logging.getLogger(__name__)

STATUS_ICONS = {
    SyncStatus.SUCCESS: "✅",
    SyncStatus.PARTIAL: "⚠️ ",
    SyncStatus.FAILURE: "❌",
}


def _print_attempts(attempts: list[SyncAttempt]) -> None:
    print("\n📋 Sync results")
    for attempt in attempts:
        icon = STATUS_ICONS[attempt.status]
        print(
            f"   {icon} {attempt.server_name}: {attempt.status.value} "
            f"({attempt.accounts_succeeded}/{attempt.accounts_processed} accounts, "
            f"{attempt.duration_ms} ms)"
        )
        if attempt.error:
            print(f"      Error: {attempt.error}")
        for failed in attempt.failed_accounts:
            print(f"      • {failed.account_name}: {failed.error}")
    print()


@app.command("run")
def sync_run(
    ctx: typer.Context,
    server: Annotated[
        str | None,
        typer.Option("--server", "-s", help="Only sync the server with this name"),
    ] = None,
) -> None:
    """Sync every configured server now, one after another.

    Exits with status 1 if any server's sync failed outright or the server
    name is unknown. Partial syncs exit with status 0.

    Examples:
        actualsync sync run
        actualsync sync run --server "Main Budget"
    """
    settings = load_cli_settings(ctx)
    services = build_services(settings)

    try:
        if server:
            logger.info(f"🔄 Force running bank sync for server {server}")
            attempts = [asyncio.run(services.orchestrator.run_one(server))]
        else:
            logger.info("🔄 Force running bank sync for all servers")
            attempts = asyncio.run(services.orchestrator.run_all())
    except ServerNotFoundError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1) from e
    finally:
        services.close()

    _print_attempts(attempts)

    if any(attempt.is_failure for attempt in attempts):
        raise typer.Exit(1)


async def _run_daemon(
    services: SyncServices, settings: ActualSyncSettings, with_health: bool
) -> None:
    scheduler = SyncScheduler(services.orchestrator, settings)
    tasks = [asyncio.create_task(scheduler.run(), name="scheduler")]

    if with_health:
        health_settings = settings.health_check
        server = uvicorn.Server(
            uvicorn.Config(
                create_app(services.health, services.metrics, services.history),
                host=health_settings.host,
                port=health_settings.port,
                log_level="warning",
            )
        )
        tasks.append(asyncio.create_task(server.serve(), name="health-api"))
        logger.info(
            f"Health API listening on http://{health_settings.host}:{health_settings.port}"
        )

    try:
        # The first task to finish (uvicorn exiting on a signal) stops the daemon
        await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


@app.command("daemon")
def sync_daemon(
    ctx: typer.Context,
    no_health: Annotated[
        bool,
        typer.Option("--no-health", help="Do not start the health/metrics HTTP API"),
    ] = False,
) -> None:
    """Run scheduled syncs until interrupted.

    Servers sharing a cron schedule are synced together, one at a time.
    The health API is started unless disabled here or in configuration.

    Example:
        actualsync sync daemon
    """
    settings = load_cli_settings(ctx)
    services = build_services(settings)
    with_health = settings.health_check.enabled and not no_health

    logger.info(f"✅ Service started for {len(settings.servers)} server(s)")
    try:
        asyncio.run(_run_daemon(services, settings, with_health))
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down")
    finally:
        services.close()
        logger.info("Service stopped")
