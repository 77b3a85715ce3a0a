"""Main CLI application for actualsync.

This module provides the unified entry point for running bank syncs, the
scheduler daemon, and inspecting sync history and configuration.
"""

import logging
from pathlib import Path
from typing import Annotated

import typer

from ..config import set_config_file
from ..logging import setup_logging
from .commands import config, history, sync

logger = logging.getLogger(__name__)

app = typer.Typer(
    name="actualsync",
    help="actualsync: Scheduled bank sync for Actual Budget servers",
    add_completion=False,
    rich_markup_mode="rich",
    no_args_is_help=True,
)


@app.callback()
def main_callback(
    ctx: typer.Context,
    config_file: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to the JSON or YAML configuration file. Default: config/config.json",
            envvar="ACTUALSYNC_CONFIG",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option(
            "--verbose",
            "-v",
            help="Enable verbose debug logging",
        ),
    ] = False,
) -> None:
    """Global options for the actualsync CLI.

    Examples:
      actualsync sync run                      # Sync every server now
      actualsync -c prod.yaml sync daemon      # Run the scheduler
      actualsync history list --server Main    # Recent syncs for one server
    """
    setup_logging(cli_mode=True, verbose=verbose)

    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    set_config_file(config_file)
    if config_file:
        logger.debug(f"Using configuration file: {config_file}")


app.add_typer(sync.app, name="sync", help="Run bank syncs now or on a schedule")
app.add_typer(history.app, name="history", help="Query recorded sync attempts")
app.add_typer(config.app, name="config", help="Validate and inspect configuration")


def main() -> None:
    """Entry point for the actualsync CLI application."""
    app()


if __name__ == "__main__":
    main()
