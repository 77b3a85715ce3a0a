"""Tests for cron scheduling."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock

import pytest

from conftest import RecordingSleep

from actualsync.config import load_settings
from actualsync.scheduler import (
    SyncScheduler,
    cron_to_human,
    group_by_schedule,
    next_fire_time,
)

FIXED_NOW = datetime(2024, 5, 6, 12, 0, tzinfo=timezone.utc)  # a Monday


class TestCronToHuman:
    """Human-readable schedule rendering."""

    @pytest.mark.unit
    @pytest.mark.parametrize(
        ("expr", "expected"),
        [
            ("0 5 * * *", "Daily at 05:00"),
            ("30 7 * * 0,1,2,3,4,5,6", "Daily at 07:30"),
            ("0 6 * * 1,2,3,4,5", "Weekdays at 06:00"),
            ("0 5 * * 2", "Every Tuesday at 05:00"),
            ("15 22 * * 1,3", "Monday, Wednesday at 22:15"),
            ("0 9 * * 7", "Every Sunday at 09:00"),
        ],
    )
    def test_renders_simple_expressions(self, expr: str, expected: str) -> None:
        assert cron_to_human(expr) == expected

    @pytest.mark.unit
    @pytest.mark.parametrize("expr", ["0 5 * *", "0 5 * * MON-FRI", "0 5 * * 1-5"])
    def test_returns_unsupported_expressions_unchanged(self, expr: str) -> None:
        assert cron_to_human(expr) == expr


class TestScheduling:
    """Grouping and timer behaviour."""

    @pytest.mark.unit
    def test_next_fire_time(self) -> None:
        assert next_fire_time("0 5 * * *", FIXED_NOW) == datetime(
            2024, 5, 7, 5, 0, tzinfo=timezone.utc
        )

    @pytest.mark.unit
    def test_groups_servers_by_effective_schedule(
        self, write_config: Callable[..., Path], sample_config: dict[str, Any]
    ) -> None:
        sample_config["servers"].append(
            {
                "name": "Side",
                "url": "https://side.example.com",
                "password": "correct-horse-battery",
                "syncId": "sync-side",
                "dataDir": "data/side",
            }
        )
        settings = load_settings(write_config(sample_config))

        groups = group_by_schedule(settings)

        assert [(g.schedule, g.server_names) for g in groups] == [
            ("03 03 */2 * *", ["Main", "Side"]),
            ("0 6 * * 1", ["Family"]),
        ]

    @pytest.mark.unit
    def test_run_group_sleeps_until_next_fire_then_syncs(
        self,
        write_config: Callable[..., Path],
        sample_config: dict[str, Any],
        recording_sleep: RecordingSleep,
    ) -> None:
        settings = load_settings(write_config(sample_config))
        orchestrator = AsyncMock()
        scheduler = SyncScheduler(
            orchestrator, settings, sleep=recording_sleep, now=lambda: FIXED_NOW
        )
        family = scheduler.groups[1]

        runs = asyncio.run(scheduler.run_group(family, max_runs=2))

        assert runs == 2
        # Next Monday 06:00 after Monday 12:00 is seven days minus six hours away
        assert recording_sleep.delays == [7 * 86400 - 6 * 3600] * 2
        assert orchestrator.run_servers.await_count == 2
        assert orchestrator.run_servers.await_args.args[0] == family.servers

    @pytest.mark.unit
    def test_crashing_batch_does_not_stop_timer(
        self,
        write_config: Callable[..., Path],
        sample_config: dict[str, Any],
        recording_sleep: RecordingSleep,
    ) -> None:
        settings = load_settings(write_config(sample_config))
        orchestrator = AsyncMock()
        orchestrator.run_servers.side_effect = [RuntimeError("boom"), []]
        scheduler = SyncScheduler(
            orchestrator, settings, sleep=recording_sleep, now=lambda: FIXED_NOW
        )

        runs = asyncio.run(scheduler.run_group(scheduler.groups[0], max_runs=2))

        assert runs == 2
        assert orchestrator.run_servers.await_count == 2

    @pytest.mark.unit
    def test_run_stops_cleanly_when_cancelled(
        self, write_config: Callable[..., Path], sample_config: dict[str, Any]
    ) -> None:
        settings = load_settings(write_config(sample_config))
        orchestrator = AsyncMock()
        scheduler = SyncScheduler(orchestrator, settings, now=lambda: FIXED_NOW)

        async def run_then_cancel() -> None:
            task = asyncio.create_task(scheduler.run())
            await asyncio.sleep(0.01)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        asyncio.run(run_then_cancel())

        orchestrator.run_servers.assert_not_awaited()

    @pytest.mark.unit
    def test_describe_lists_each_group(
        self, write_config: Callable[..., Path], sample_config: dict[str, Any]
    ) -> None:
        settings = load_settings(write_config(sample_config))
        scheduler = SyncScheduler(AsyncMock(), settings, now=lambda: FIXED_NOW)

        lines = scheduler.describe()

        assert len(lines) == 2
        assert lines[1].startswith("Family: Every Monday at 06:00 (0 6 * * 1)")
