"""Sync history commands for the actualsync CLI."""

import json
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Annotated, Any

import typer

from actualsync.cli.common import load_cli_settings
from actualsync.container import build_history_store
from actualsync.services.history import SyncHistoryStore
from actualsync.sync.models import SyncStatus

app = typer.Typer(help="Query recorded sync attempts", no_args_is_help=True)
logger = logging.getLogger(__name__)

ServerOption = Annotated[
    str | None, typer.Option("--server", "-s", help="Only this server")
]
DaysOption = Annotated[
    int | None, typer.Option("--days", "-d", help="Only the last N days", min=1)
]
JsonOption = Annotated[bool, typer.Option("--json", help="Print JSON instead of a table")]


@contextmanager
def _open_store(ctx: typer.Context) -> Iterator[SyncHistoryStore]:
    settings = load_cli_settings(ctx)
    store = build_history_store(settings)
    if store is None:
        logger.error("❌ Sync history is disabled in configuration")
        raise typer.Exit(1)
    try:
        yield store
    finally:
        store.close()


def _print_json(data: Any) -> None:
    print(json.dumps(data, indent=2, default=str))


@app.command("list")
def history_list(
    ctx: typer.Context,
    server: ServerOption = None,
    status: Annotated[
        SyncStatus | None, typer.Option("--status", help="Only attempts with this status")
    ] = None,
    days: DaysOption = None,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1)] = 20,
    as_json: JsonOption = False,
) -> None:
    """List recent sync attempts, newest first.

    Example:
        actualsync history list --server "Main Budget" --status failure
    """
    with _open_store(ctx) as store:
        rows = store.get_history(server_name=server, status=status, days=days, limit=limit)

    if as_json:
        _print_json(rows)
        return
    if not rows:
        print("No sync history found")
        return

    print(f"\n📋 Last {len(rows)} sync attempt(s)")
    for row in rows:
        print(
            f"   {row['timestamp'][:19]}  {row['server_name']:<20} {row['status']:<8} "
            f"{row['accounts_succeeded']}/{row['accounts_processed']} accounts  "
            f"{row['duration_ms']} ms"
        )
        if row["error_message"]:
            print(f"      Error: {row['error_message']}")
    print()


@app.command("stats")
def history_stats(
    ctx: typer.Context,
    server: ServerOption = None,
    days: DaysOption = None,
    as_json: JsonOption = False,
) -> None:
    """Show success rates and durations, overall and per server."""
    with _open_store(ctx) as store:
        overall = store.get_statistics(server_name=server, days=days)
        by_server = [] if server else store.get_statistics_by_server(days=days)

    if as_json:
        _print_json({"overall": overall, "by_server": by_server})
        return

    print("\n📊 Sync statistics")
    print(f"   Total syncs: {overall['total_syncs']}")
    print(
        f"   Succeeded: {overall['successful_syncs']}  "
        f"Partial: {overall['partial_syncs']}  Failed: {overall['failed_syncs']}"
    )
    print(f"   Success rate: {overall['success_rate']}")
    if overall["avg_duration_ms"] is not None:
        print(f"   Average duration: {overall['avg_duration_ms']:.0f} ms")

    for stat in by_server:
        print(
            f"\n   {stat['server_name']}: {stat['total_syncs']} syncs, "
            f"{stat['success_rate']} success, last {stat['last_sync']}"
        )
    print()


@app.command("errors")
def history_errors(
    ctx: typer.Context,
    limit: Annotated[int, typer.Option("--limit", "-n", min=1)] = 10,
    as_json: JsonOption = False,
) -> None:
    """Show the most recent failed syncs."""
    with _open_store(ctx) as store:
        rows = store.get_recent_errors(limit=limit)

    if as_json:
        _print_json(rows)
        return
    if not rows:
        print("✅ No failed syncs recorded")
        return

    print(f"\n❌ {len(rows)} recent failure(s)")
    for row in rows:
        print(f"   {row['timestamp'][:19]}  {row['server_name']}  [{row['error_code']}]")
        print(f"      {row['error_message']}")
        print(f"      Correlation ID: {row['correlation_id']}")
    print()
