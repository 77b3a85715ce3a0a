"""Configuration commands for the actualsync CLI."""

import logging

import typer

from actualsync.cli.common import load_cli_settings
from actualsync.config import resolve_config_path
from actualsync.scheduler import cron_to_human

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="config",
    help="Validate and inspect configuration",
    no_args_is_help=True,
)


@app.command("validate")
def validate_config(ctx: typer.Context) -> None:
    """Load and validate the configuration file.

    Exits with status 1 if the file is missing or invalid. Security
    warnings are reported but do not fail validation.

    Example:
        actualsync --config config/config.json config validate
    """
    settings = load_cli_settings(ctx, apply_logging=False)
    warnings = settings.security_warnings()

    print(f"\n✅ Configuration is valid: {resolve_config_path()}")
    print(f"   Servers: {len(settings.servers)}")
    if warnings:
        print(f"\n⚠️  {len(warnings)} security warning(s):")
        for warning in warnings:
            print(f"   • {warning}")
    print()


@app.command("servers")
def list_servers(ctx: typer.Context) -> None:
    """List configured servers with their schedules and retry settings.

    Example:
        actualsync config servers
    """
    settings = load_cli_settings(ctx, apply_logging=False)

    print(f"\n📋 {len(settings.servers)} configured server(s)")
    for server in settings.servers:
        schedule = server.effective_schedule(settings.sync)
        policy = server.retry_policy(settings.sync)
        print(f"\n   {server.name}")
        print(f"      URL: {server.url}")
        print(f"      Sync ID: {server.sync_id}")
        print(f"      Data dir: {server.data_dir}")
        print(f"      Schedule: {cron_to_human(schedule)} ({schedule})")
        print(
            f"      Retries: {policy.max_retries} "
            f"(base delay {policy.base_delay_ms} ms)"
        )
        print(f"      Encrypted: {'yes' if server.encryption_password else 'no'}")
    print()
