"""Helpers shared by CLI commands."""

import logging

import typer

from actualsync.config import ActualSyncSettings, get_settings
from actualsync.errors import ConfigurationError
from actualsync.logging import LoggingConfig, setup_logging

logger = logging.getLogger(__name__)


def is_verbose(ctx: typer.Context) -> bool:
    return bool((ctx.obj or {}).get("verbose", False))


def load_cli_settings(ctx: typer.Context, apply_logging: bool = True) -> ActualSyncSettings:
    """Load settings for a command, exiting with status 1 if they are invalid.

    Args:
        ctx: Typer context carrying the global options
        apply_logging: Reconfigure logging from the ``logging`` settings section

    Returns:
        ActualSyncSettings: Loaded settings
    """
    try:
        settings = get_settings()
    except ConfigurationError as e:
        logger.error(f"❌ {e}")
        raise typer.Exit(1) from e

    if apply_logging:
        setup_logging(
            LoggingConfig.from_settings(settings.logging),
            cli_mode=True,
            verbose=is_verbose(ctx),
        )
    return settings
