"""Exception hierarchy for actualsync."""


class ActualSyncError(Exception):
    """Base class for all actualsync errors."""


class ConfigurationError(ActualSyncError):
    """Raised when the configuration file is missing or invalid."""


class ServerNotFoundError(ActualSyncError):
    """Raised when a sync is requested for a server that is not configured."""

    def __init__(self, server_name: str, available: list[str] | None = None):
        self.server_name = server_name
        self.available = available or []
        message = f"Server '{server_name}' not found in configuration"
        if self.available:
            message += f" (available: {', '.join(self.available)})"
        super().__init__(message)


class BudgetClientError(ActualSyncError):
    """Error raised by a budget client call.

    Carries the vendor error ``code`` and ``category`` so the retry classifier
    can decide whether the failure is transient.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        category: str | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.category = category
