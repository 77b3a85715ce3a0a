"""actualsync CLI package.

This package provides a unified command-line interface for running bank
syncs, the scheduler daemon, and inspecting history and configuration.
"""

from .main import app, main

__all__ = ["app", "main"]
