"""Logging configuration for actualsync."""

from .config import LoggingConfig, SyncLoggerAdapter, get_sync_logger, setup_logging

__all__ = ["LoggingConfig", "SyncLoggerAdapter", "get_sync_logger", "setup_logging"]
