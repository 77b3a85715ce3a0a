"""Bounded retry with exponential backoff for remote budget operations.

The executor is policy-agnostic: it receives a fully resolved ``RetryPolicy``
and an async operation, and retries only failures that ``is_retryable``
classifies as transient (rate limits, network failures, connection resets and
DNS failures). Everything else is re-raised on first occurrence.
"""

import asyncio
import logging
import socket
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

import requests


logger = logging.getLogger(__name__)

T = TypeVar("T")

RATE_LIMIT_CODE = "NORDIGEN_ERROR"
RATE_LIMIT_CATEGORY = "RATE_LIMIT_EXCEEDED"
NETWORK_FAILURE_MESSAGE = "network-failure"
NETWORK_ERROR_CODES = frozenset({"ECONNRESET", "ENOTFOUND"})

SleepFn = Callable[[float], Awaitable[Any]]


@dataclass(frozen=True)
class RetryPolicy:
    """Retry settings for one fallible operation.

    Attributes:
        max_retries: Number of retries after the initial attempt
        base_delay_ms: Delay before the first retry; doubles on each retry
    """

    max_retries: int = 5
    base_delay_ms: int = 3000

    def __post_init__(self) -> None:
        if self.max_retries < 0:
            raise ValueError("max_retries must be non-negative")
        if self.base_delay_ms < 0:
            raise ValueError("base_delay_ms must be non-negative")

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, attempt_index: int) -> int:
        """Return the backoff delay in milliseconds after failed attempt ``attempt_index`` (0-based)."""
        return self.base_delay_ms * (2**attempt_index)


def resolve_retry_policy(
    max_retries: int,
    base_retry_delay_ms: int,
    override_max_retries: int | None = None,
    override_base_retry_delay_ms: int | None = None,
) -> RetryPolicy:
    """Merge global retry defaults with an optional per-server override.

    Args:
        max_retries: Global default number of retries
        base_retry_delay_ms: Global default base delay
        override_max_retries: Per-server value, wins when set
        override_base_retry_delay_ms: Per-server value, wins when set

    Returns:
        RetryPolicy: Fully resolved policy for one workflow run
    """
    return RetryPolicy(
        max_retries=(
            override_max_retries if override_max_retries is not None else max_retries
        ),
        base_delay_ms=(
            override_base_retry_delay_ms
            if override_base_retry_delay_ms is not None
            else base_retry_delay_ms
        ),
    )


def is_rate_limit_error(error: BaseException) -> bool:
    return (
        getattr(error, "code", None) == RATE_LIMIT_CODE
        and getattr(error, "category", None) == RATE_LIMIT_CATEGORY
    )


def is_network_error(error: BaseException) -> bool:
    """Check whether an error is a transient network failure."""
    if isinstance(
        error,
        (
            ConnectionResetError,
            socket.gaierror,
            requests.exceptions.ConnectionError,
            TimeoutError,
        ),
    ):
        return True
    if str(error) == NETWORK_FAILURE_MESSAGE:
        return True
    return getattr(error, "code", None) in NETWORK_ERROR_CODES


def is_retryable(error: BaseException) -> bool:
    """Classify an error as retryable (transient) or not.

    Args:
        error: Exception raised by a remote operation

    Returns:
        bool: True for rate limits and network failures, False otherwise
    """
    return is_rate_limit_error(error) or is_network_error(error)


class RetryExecutor:
    """Run async operations with bounded exponential-backoff retry."""

    def __init__(
        self,
        sleep: SleepFn | None = None,
        classifier: Callable[[BaseException], bool] = is_retryable,
    ):
        """Initialize the executor.

        Args:
            sleep: Awaitable delay function taking seconds (default: asyncio.sleep)
            classifier: Predicate deciding whether an error may be retried
        """
        self._sleep = sleep or asyncio.sleep
        self._classifier = classifier

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        policy: RetryPolicy,
        description: str = "operation",
        log: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> T:
        """Execute ``operation`` until it succeeds or retrying is no longer allowed.

        Args:
            operation: Zero-argument callable returning an awaitable
            policy: Resolved retry policy
            description: Human-readable name used in log messages
            log: Logger to report attempts on (default: module logger)

        Returns:
            The operation's result

        Raises:
            Exception: The original error once it is non-retryable or retries
                are exhausted
        """
        log = log or logger

        for attempt in range(policy.total_attempts):
            try:
                return await operation()
            except Exception as e:
                log.warning(
                    f"{description}: attempt {attempt + 1}/{policy.total_attempts} "
                    f"failed: {e} (code={getattr(e, 'code', None)})"
                )

                if not self._classifier(e):
                    log.error(f"{description}: not a retryable error, giving up")
                    raise

                if attempt >= policy.max_retries:
                    log.error(
                        f"{description}: max retries ({policy.max_retries}) reached"
                    )
                    raise

                delay_ms = policy.delay_for(attempt)
                kind = "Rate limit exceeded" if is_rate_limit_error(e) else "Network failure"
                log.warning(
                    f"{description}: {kind}. Retry {attempt + 1}/{policy.max_retries} "
                    f"in {delay_ms / 1000:g} seconds"
                )
                await self._sleep(delay_ms / 1000)

        # Unreachable: the loop either returns or raises
        raise RuntimeError(f"{description}: retry loop exited without a result")
