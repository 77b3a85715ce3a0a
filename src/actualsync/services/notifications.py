"""Webhook notifications for sync outcomes.

Failures are only announced once a server crosses a threshold (a streak of
consecutive failures, or a failure rate over a rolling period), and
announcements are rate limited per server. Successful and partial runs are
announced only when ``notify_on_success`` is enabled.
"""

import asyncio
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import requests

from actualsync.config import NotificationSettings
from actualsync.sync.models import SyncAttempt, SyncStatus

logger = logging.getLogger(__name__)

ONE_HOUR = 60 * 60


@dataclass(frozen=True)
class ThresholdStatus:
    """Result of evaluating notification thresholds for one server."""

    consecutive_failures: int
    consecutive_exceeded: bool
    failure_rate: float
    rate_exceeded: bool

    @property
    def should_notify(self) -> bool:
        return self.consecutive_exceeded or self.rate_exceeded


@dataclass
class _ServerTracking:
    consecutive_failures: int = 0
    recent_syncs: list[tuple[float, bool]] = field(default_factory=list)
    notifications: list[float] = field(default_factory=list)


def format_message(attempt: SyncAttempt, thresholds: ThresholdStatus | None = None) -> str:
    """Render a plain-text summary of a sync attempt."""
    icon = {
        SyncStatus.SUCCESS: "✅",
        SyncStatus.PARTIAL: "⚠️",
        SyncStatus.FAILURE: "❌",
    }[attempt.status]
    lines = [
        f"{icon} Actual sync {attempt.status.value}: {attempt.server_name}",
        f"Accounts: {attempt.accounts_succeeded}/{attempt.accounts_processed} synced",
        f"Duration: {attempt.duration_ms / 1000:.1f}s",
    ]
    if attempt.error:
        lines.append(f"Error: {attempt.error} ({attempt.error_code})")
    if attempt.final_sync_error:
        lines.append(f"Final sync error: {attempt.final_sync_error}")
    for failed in attempt.failed_accounts:
        lines.append(f"  • {failed.account_name}: {failed.error}")
    if thresholds is not None and thresholds.consecutive_failures > 1:
        lines.append(f"Consecutive failures: {thresholds.consecutive_failures}")
    lines.append(f"Correlation ID: {attempt.correlation_id}")
    return "\n".join(lines)


class NotificationService:
    """Decide whether to announce a sync attempt and deliver it to webhooks."""

    def __init__(
        self,
        settings: NotificationSettings | None = None,
        http: requests.Session | None = None,
        clock: Callable[[], float] = time.time,
    ):
        """Initialize the notification service.

        Args:
            settings: Notification settings (default: no webhooks)
            http: Session used for webhook delivery
            clock: Time source in seconds, injectable for tests
        """
        self.settings = settings or NotificationSettings()
        self.http = http or requests.Session()
        self._clock = clock
        self._tracking: dict[str, _ServerTracking] = {}

    def _server(self, server_name: str) -> _ServerTracking:
        return self._tracking.setdefault(server_name, _ServerTracking())

    def record_sync_result(
        self, server_name: str, success: bool, correlation_id: str | None = None
    ) -> None:
        """Track a sync result for threshold evaluation."""
        now = self._clock()
        tracking = self._server(server_name)
        cutoff = now - self.settings.thresholds.rate_period_minutes * 60

        tracking.recent_syncs.append((now, success))
        tracking.recent_syncs = [s for s in tracking.recent_syncs if s[0] > cutoff]
        tracking.consecutive_failures = 0 if success else tracking.consecutive_failures + 1

        logger.debug(
            f"Recorded sync result for {server_name}: success={success} "
            f"consecutive_failures={tracking.consecutive_failures} "
            f"correlation_id={correlation_id}"
        )

    def consecutive_failures(self, server_name: str) -> int:
        return self._server(server_name).consecutive_failures

    def check_thresholds(self, server_name: str) -> ThresholdStatus:
        """Evaluate the failure thresholds for ``server_name``."""
        tracking = self._server(server_name)
        thresholds = self.settings.thresholds

        failure_rate = 0.0
        if tracking.recent_syncs:
            failures = sum(1 for _, ok in tracking.recent_syncs if not ok)
            failure_rate = failures / len(tracking.recent_syncs)

        return ThresholdStatus(
            consecutive_failures=tracking.consecutive_failures,
            consecutive_exceeded=(
                tracking.consecutive_failures >= thresholds.consecutive_failures
            ),
            failure_rate=failure_rate,
            rate_exceeded=bool(tracking.recent_syncs)
            and failure_rate >= thresholds.failure_rate,
        )

    def check_rate_limit(self, server_name: str) -> bool:
        """Return True if a notification for ``server_name`` may be sent now."""
        now = self._clock()
        tracking = self._server(server_name)
        limits = self.settings.rate_limit

        if tracking.notifications:
            since_last = now - tracking.notifications[-1]
            if since_last < limits.min_interval_minutes * 60:
                logger.debug(
                    f"Rate limit for {server_name}: last notification {since_last:.0f}s ago"
                )
                return False

        in_last_hour = [t for t in tracking.notifications if now - t < ONE_HOUR]
        if len(in_last_hour) >= limits.max_per_hour:
            logger.debug(
                f"Rate limit for {server_name}: {len(in_last_hour)} notifications in the last hour"
            )
            return False
        return True

    def _mark_notified(self, server_name: str) -> None:
        now = self._clock()
        tracking = self._server(server_name)
        tracking.notifications.append(now)
        tracking.notifications = [t for t in tracking.notifications if now - t < 2 * ONE_HOUR]

    async def handle_attempt(self, attempt: SyncAttempt) -> bool:
        """Record an attempt and send a notification if policy allows.

        Args:
            attempt: Finished sync attempt

        Returns:
            bool: True if a notification was delivered to at least one webhook
        """
        self.record_sync_result(
            attempt.server_name, not attempt.is_failure, attempt.correlation_id
        )

        if not self.settings.has_targets:
            return False

        if attempt.is_failure:
            thresholds = self.check_thresholds(attempt.server_name)
            if not thresholds.should_notify:
                logger.debug(
                    f"Notification thresholds not met for {attempt.server_name} "
                    f"({thresholds.consecutive_failures} consecutive failures)"
                )
                return False
            if not self.check_rate_limit(attempt.server_name):
                logger.info(f"Notification for {attempt.server_name} suppressed by rate limit")
                return False
            message = format_message(attempt, thresholds)
        elif self.settings.notify_on_success:
            message = format_message(attempt)
        else:
            return False

        delivered = await asyncio.to_thread(self.send, message, attempt.to_record())
        if delivered and attempt.is_failure:
            self._mark_notified(attempt.server_name)
        return delivered > 0

    def _payloads(self, message: str, record: dict[str, Any]) -> list[tuple[str, dict[str, Any]]]:
        webhooks = self.settings.webhooks
        payloads: list[tuple[str, dict[str, Any]]] = []
        payloads.extend((url, {"text": message}) for url in webhooks.slack)
        payloads.extend((url, {"content": message[:2000]}) for url in webhooks.discord)
        payloads.extend((url, {"message": message, "attempt": record}) for url in webhooks.generic)
        return payloads

    def send(self, message: str, record: dict[str, Any] | None = None) -> int:
        """Post ``message`` to every configured webhook.

        Delivery errors are logged per webhook and never raised.

        Returns:
            int: Number of webhooks that accepted the message
        """
        delivered = 0
        for url, payload in self._payloads(message, record or {}):
            try:
                response = self.http.post(
                    url, json=payload, timeout=self.settings.timeout_seconds
                )
                response.raise_for_status()
                delivered += 1
            except requests.RequestException as e:
                logger.error(f"Failed to deliver notification to webhook: {e}")
        logger.debug(f"Notification delivered to {delivered} webhooks")
        return delivered

    def close(self) -> None:
        self.http.close()
