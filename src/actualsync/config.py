"""Centralized configuration management for actualsync.

Settings are loaded with Pydantic Settings from, in priority order:
explicit keyword arguments, ``ACTUALSYNC_``-prefixed environment variables,
a ``.env`` file, and finally the JSON or YAML configuration file holding the
server list (``config/config.json`` by default).

For nested values use double underscores: ``ACTUALSYNC_SYNC__MAX_RETRIES=3``.
Keys inside the configuration file may use camelCase (``syncId``,
``dataDir``, ``baseRetryDelayMs``) or snake_case.
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal

import yaml
from croniter import croniter
from pydantic import (
    AliasChoices,
    AliasGenerator,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings, SettingsConfigDict

from actualsync.errors import ConfigurationError
from actualsync.sync.retry import RetryPolicy, resolve_retry_policy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/config.json")
DEFAULT_SCHEDULE = "03 03 */2 * *"
WEAK_PASSWORDS = frozenset({"hunter2", "password", "your_password_here"})


def _validate_cron(value: str | None) -> str | None:
    if value is None:
        return None
    if len(value.split()) != 5 or not croniter.is_valid(value):
        raise ValueError(
            f"Invalid cron schedule: '{value}'. "
            "Expected 5 fields: minute hour day month dayOfWeek"
        )
    return value


class _FileModel(BaseModel):
    """Base for configuration sections read from the config file."""

    model_config = ConfigDict(
        frozen=True,
        # snake_case keys (from the environment) take precedence over camelCase
        alias_generator=AliasGenerator(
            validation_alias=lambda name: AliasChoices(name, to_camel(name))
        ),
        extra="ignore",
    )


class SyncDefaults(_FileModel):
    """Global sync settings, overridable per server."""

    max_retries: int = Field(
        default=5, ge=0, le=10, description="Retries after the first attempt"
    )
    base_retry_delay_ms: int = Field(
        default=3000,
        ge=1000,
        description="Delay before the first retry, doubled on each retry",
    )
    schedule: str = Field(
        default=DEFAULT_SCHEDULE, description="Cron schedule for periodic syncs"
    )
    operation_timeout_seconds: float | None = Field(
        default=None,
        gt=0,
        description="Timeout for each remote call (default: rely on the client)",
    )

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str) -> str:
        """Ensure the schedule is a valid 5-field cron expression."""
        return _validate_cron(v) or DEFAULT_SCHEDULE


class ServerSyncOverride(_FileModel):
    """Per-server sync overrides. Unset values fall back to ``SyncDefaults``."""

    max_retries: int | None = Field(default=None, ge=0, le=10)
    base_retry_delay_ms: int | None = Field(default=None, ge=1000)
    schedule: str | None = None

    @field_validator("schedule")
    @classmethod
    def validate_schedule(cls, v: str | None) -> str | None:
        """Ensure an overriding schedule is a valid cron expression."""
        return _validate_cron(v)


class ServerConfig(_FileModel):
    """One configured Actual Budget server."""

    name: str = Field(..., min_length=1, description="Unique server name")
    url: str = Field(..., min_length=1, description="Actual server URL")
    password: str = Field(..., min_length=1, description="Actual server password")
    sync_id: str = Field(..., min_length=1, description="Budget sync ID")
    data_dir: Path = Field(..., description="Local budget cache directory")
    encryption_password: str | None = Field(
        default=None, description="End-to-end encryption password"
    )
    sync: ServerSyncOverride | None = None

    def retry_policy(self, defaults: SyncDefaults) -> RetryPolicy:
        """Resolve the retry policy for this server against global defaults."""
        override = self.sync or ServerSyncOverride()
        return resolve_retry_policy(
            defaults.max_retries,
            defaults.base_retry_delay_ms,
            override.max_retries,
            override.base_retry_delay_ms,
        )

    def effective_schedule(self, defaults: SyncDefaults) -> str:
        if self.sync and self.sync.schedule:
            return self.sync.schedule
        return defaults.schedule

    def security_warnings(self) -> list[str]:
        """Return warnings about insecure settings for this server."""
        warnings: list[str] = []
        if (
            self.url.startswith("http://")
            and "localhost" not in self.url
            and "127.0.0.1" not in self.url
        ):
            warnings.append(
                f"Server '{self.name}' uses unencrypted HTTP: {self.url}. "
                "Consider using HTTPS"
            )
        if self.password in WEAK_PASSWORDS:
            warnings.append(
                f"Server '{self.name}' appears to use a default/example password"
            )
        elif len(self.password) < 8:
            warnings.append(
                f"Server '{self.name}' has a weak password (< 8 characters)"
            )
        return warnings


class LoggingSettings(_FileModel):
    """Logging configuration settings."""

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_to_file: bool = Field(default=False, description="Enable file logging")
    log_file_path: Path = Field(
        default=Path("logs/actualsync.log"), description="Path to log file"
    )
    max_file_size_mb: int = Field(default=10, ge=1, le=1000)
    backup_count: int = Field(default=5, ge=1, le=50)

    @field_validator("level", mode="before")
    @classmethod
    def normalize_level(cls, v: Any) -> Any:
        """Accept lowercase level names."""
        return v.upper() if isinstance(v, str) else v


class HistorySettings(_FileModel):
    """Sync history storage settings."""

    enabled: bool = True
    db_path: Path = Field(
        default=Path("data/sync-history.duckdb"),
        description="Path to the DuckDB history database",
    )
    retention_days: int = Field(default=90, ge=1, le=3650)


class HealthCheckSettings(_FileModel):
    """Health/metrics HTTP endpoint settings."""

    enabled: bool = True
    host: str = "0.0.0.0"  # noqa: S104
    port: int = Field(default=3000, ge=1, le=65535)


class NotificationThresholds(_FileModel):
    consecutive_failures: int = Field(default=3, ge=1)
    failure_rate: float = Field(default=0.5, ge=0.0, le=1.0)
    rate_period_minutes: int = Field(default=60, ge=1)


class NotificationRateLimit(_FileModel):
    min_interval_minutes: int = Field(default=15, ge=0)
    max_per_hour: int = Field(default=4, ge=1)


class WebhookSettings(_FileModel):
    """Webhook URLs grouped by payload format."""

    slack: list[str] = Field(default_factory=list)
    discord: list[str] = Field(default_factory=list)
    generic: list[str] = Field(default_factory=list)


class NotificationSettings(_FileModel):
    """Notification delivery and throttling settings."""

    webhooks: WebhookSettings = Field(default_factory=WebhookSettings)
    thresholds: NotificationThresholds = Field(default_factory=NotificationThresholds)
    rate_limit: NotificationRateLimit = Field(default_factory=NotificationRateLimit)
    notify_on_success: bool = False
    timeout_seconds: float = Field(default=10.0, gt=0)

    @property
    def has_targets(self) -> bool:
        return bool(
            self.webhooks.slack or self.webhooks.discord or self.webhooks.generic
        )


class ActualSyncSettings(BaseSettings):
    """Main application settings.

    The ``servers`` list normally comes from the configuration file; every
    other section has working defaults.
    """

    config_file: Path = Field(default=DEFAULT_CONFIG_PATH, exclude=True)
    servers: list[ServerConfig] = Field(default_factory=list)
    sync: SyncDefaults = Field(default_factory=SyncDefaults)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)
    history: HistorySettings = Field(
        default_factory=HistorySettings,
        validation_alias=AliasChoices("history", "syncHistory"),
    )
    health_check: HealthCheckSettings = Field(
        default_factory=HealthCheckSettings,
        validation_alias=AliasChoices("health_check", "healthCheck"),
    )
    notifications: NotificationSettings = Field(default_factory=NotificationSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="ACTUALSYNC_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: Any,
        env_settings: Any,
        dotenv_settings: Any,
        file_secret_settings: Any,
    ) -> tuple[Any, ...]:
        """Add the JSON/YAML configuration file as the lowest-priority source."""
        init_dict = init_settings.init_kwargs if init_settings else {}
        config_file = resolve_config_path(
            init_dict.get("config_file")  # type: ignore[reportUnknownMemberType]
        )

        if config_file.suffix.lower() in (".yml", ".yaml"):
            from pydantic_settings import YamlConfigSettingsSource

            file_source: Any = YamlConfigSettingsSource(
                settings_cls, yaml_file=config_file
            )
        else:
            from pydantic_settings import JsonConfigSettingsSource

            file_source = JsonConfigSettingsSource(settings_cls, json_file=config_file)

        return (
            init_settings,
            env_settings,
            dotenv_settings,
            file_source,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def validate_servers(self) -> "ActualSyncSettings":
        """Require at least one server and unique server names."""
        if not self.servers:
            raise ValueError("Configuration must include at least one server")

        seen: set[str] = set()
        duplicates: list[str] = []
        for server in self.servers:
            if server.name in seen and server.name not in duplicates:
                duplicates.append(server.name)
            seen.add(server.name)
        if duplicates:
            raise ValueError(
                f"Duplicate server names found: {', '.join(duplicates)}. "
                "Each server must have a unique name"
            )
        return self

    def get_server(self, name: str) -> ServerConfig | None:
        return next((s for s in self.servers if s.name == name), None)

    @property
    def server_names(self) -> list[str]:
        return [s.name for s in self.servers]

    def security_warnings(self) -> list[str]:
        """Collect security warnings for all configured servers."""
        return [w for server in self.servers for w in server.security_warnings()]


_current_config_file: Path | None = None


def set_config_file(config_file: Path | str | None) -> None:
    """Set the configuration file used when no path is passed explicitly.

    Called once by the CLI for the global ``--config`` option.
    """
    global _current_config_file
    _current_config_file = Path(config_file) if config_file else None


def resolve_config_path(config_file: Path | str | None = None) -> Path:
    """Resolve the configuration file path.

    Priority: explicit argument, the path set by ``set_config_file``,
    ``$ACTUALSYNC_CONFIG``, then ``config/config.json``.
    """
    if config_file:
        return Path(config_file)
    if _current_config_file is not None:
        return _current_config_file
    return Path(os.getenv("ACTUALSYNC_CONFIG", str(DEFAULT_CONFIG_PATH)))


def load_settings(config_file: Path | str | None = None) -> ActualSyncSettings:
    """Load and validate settings from a configuration file.

    Args:
        config_file: Path to a ``.json``, ``.yml`` or ``.yaml`` file.
            Defaults to ``$ACTUALSYNC_CONFIG`` or ``config/config.json``.

    Returns:
        ActualSyncSettings: Validated settings

    Raises:
        ConfigurationError: If the file is missing, unparsable or invalid
    """
    path = resolve_config_path(config_file)

    if not path.exists():
        raise ConfigurationError(
            f"Configuration file not found: {path}\n"
            "Create one based on config/config.example.json"
        )

    try:
        settings = ActualSyncSettings(config_file=path)
    except ValidationError as e:
        details = "\n".join(
            f"  - {'.'.join(str(p) for p in err['loc']) or 'root'}: {err['msg']}"
            for err in e.errors()
        )
        raise ConfigurationError(f"Configuration validation failed:\n{details}") from e
    except (ValueError, yaml.YAMLError) as e:
        # Malformed JSON surfaces as a ValueError subclass
        raise ConfigurationError(f"Invalid configuration file {path}: {e}") from e

    for warning in settings.security_warnings():
        logger.warning(f"⚠️  {warning}")

    logger.debug(f"Loaded configuration for {len(settings.servers)} servers from {path}")
    return settings


_settings_cache: dict[str, ActualSyncSettings] = {}


def get_settings(config_file: Path | str | None = None) -> ActualSyncSettings:
    """Get cached settings for a configuration file, loading them on first use.

    Args:
        config_file: Configuration file path (default: see ``load_settings``)

    Returns:
        ActualSyncSettings: The cached configuration instance

    Raises:
        ConfigurationError: If required configuration is missing or invalid
    """
    key = str(resolve_config_path(config_file))
    if key not in _settings_cache:
        _settings_cache[key] = load_settings(key)
    return _settings_cache[key]


def reload_settings(config_file: Path | str | None = None) -> ActualSyncSettings:
    """Drop any cached settings for ``config_file`` and load them again."""
    key = str(resolve_config_path(config_file))
    _settings_cache.pop(key, None)
    return get_settings(key)


def clear_settings_cache() -> None:
    """Clear all cached settings and the CLI config path (used by tests)."""
    global _current_config_file
    _settings_cache.clear()
    _current_config_file = None
