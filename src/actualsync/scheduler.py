"""Cron-driven scheduling of bank syncs.

Servers sharing an effective schedule are grouped, and each group gets one
timer. When a timer fires the group's servers are handed to the orchestrator,
which still syncs them one at a time and never overlaps batches.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime

from croniter import croniter

from actualsync.config import ActualSyncSettings, ServerConfig
from actualsync.sync.orchestrator import SyncOrchestrator

logger = logging.getLogger(__name__)

DAY_NAMES = {
    "0": "Sunday",
    "1": "Monday",
    "2": "Tuesday",
    "3": "Wednesday",
    "4": "Thursday",
    "5": "Friday",
    "6": "Saturday",
    "7": "Sunday",
}


def cron_to_human(expr: str) -> str:
    """Render a simple cron expression as text, e.g. ``Daily at 03:00``.

    Expressions that are not five fields, or use day-of-week syntax other
    than a comma-separated list of numbers, are returned unchanged.
    """
    parts = expr.split()
    if len(parts) != 5:
        return expr

    minute, hour, _, _, day_of_week = parts
    time_str = f"{hour.zfill(2)}:{minute.zfill(2)}"

    if day_of_week == "*":
        return f"Daily at {time_str}"

    days = [DAY_NAMES.get(d.strip()) for d in day_of_week.split(",")]
    if None in days:
        return expr
    unique = list(dict.fromkeys(days))

    if len(unique) == 7:
        return f"Daily at {time_str}"
    if len(unique) == 5 and "Saturday" not in unique and "Sunday" not in unique:
        return f"Weekdays at {time_str}"
    if len(unique) == 1:
        return f"Every {unique[0]} at {time_str}"
    return f"{', '.join(str(d) for d in unique)} at {time_str}"


def next_fire_time(schedule: str, after: datetime) -> datetime:
    """Return the first time strictly after ``after`` matching ``schedule``."""
    return croniter(schedule, after).get_next(datetime)


@dataclass
class ScheduleGroup:
    """Servers that share one cron schedule."""

    schedule: str
    servers: list[ServerConfig]

    @property
    def server_names(self) -> list[str]:
        return [s.name for s in self.servers]


def group_by_schedule(settings: ActualSyncSettings) -> list[ScheduleGroup]:
    """Group servers by effective schedule, keeping configuration order."""
    groups: dict[str, ScheduleGroup] = {}
    for server in settings.servers:
        schedule = server.effective_schedule(settings.sync)
        groups.setdefault(schedule, ScheduleGroup(schedule, [])).servers.append(server)
    return list(groups.values())


def _local_now() -> datetime:
    return datetime.now().astimezone()


class SyncScheduler:
    """Run the orchestrator on each schedule group's cron timer."""

    def __init__(
        self,
        orchestrator: SyncOrchestrator,
        settings: ActualSyncSettings,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        now: Callable[[], datetime] = _local_now,
    ):
        """Initialize the scheduler.

        Args:
            orchestrator: Orchestrator that runs each batch
            settings: Settings holding the servers and default schedule
            sleep: Async sleep function, injectable for tests
            now: Clock returning a timezone-aware datetime
        """
        self.orchestrator = orchestrator
        self.groups = group_by_schedule(settings)
        self._sleep = sleep or asyncio.sleep
        self._now = now

    def describe(self) -> list[str]:
        """One line per schedule group, for startup logs."""
        now = self._now()
        return [
            f"{', '.join(g.server_names)}: {cron_to_human(g.schedule)} "
            f"({g.schedule}), next run {next_fire_time(g.schedule, now):%Y-%m-%d %H:%M %Z}"
            for g in self.groups
        ]

    async def run_group(self, group: ScheduleGroup, max_runs: int | None = None) -> int:
        """Fire ``group`` on its schedule until cancelled or ``max_runs`` is reached.

        Returns:
            int: Number of batches run
        """
        runs = 0
        while max_runs is None or runs < max_runs:
            now = self._now()
            fire_at = next_fire_time(group.schedule, now)
            delay = max((fire_at - now).total_seconds(), 0.0)
            logger.debug(
                f"Next sync for {', '.join(group.server_names)} at {fire_at.isoformat()}"
            )
            await self._sleep(delay)

            logger.info(
                f"🔄 Scheduled sync starting ({group.schedule}): "
                f"{', '.join(group.server_names)}"
            )
            try:
                await self.orchestrator.run_servers(group.servers)
            except Exception as e:
                logger.exception(f"❌ Scheduled sync for {group.schedule} crashed: {e}")
            logger.info(f"Scheduled sync completed ({group.schedule})")
            runs += 1
        return runs

    async def run(self) -> None:
        """Run every schedule group until the task is cancelled."""
        logger.info(f"Scheduling {len(self.groups)} sync job(s)")
        for line in self.describe():
            logger.info(f"  • {line}")

        tasks = [asyncio.create_task(self.run_group(group)) for group in self.groups]
        try:
            await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info("Scheduler stopped")
