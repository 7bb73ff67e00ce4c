"""Unit tests for the periodic scheduler loops."""

import asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from bizzin_jobs.grace_period import SweepError, SweepResult
from bizzin_jobs.scheduler import (
    run_digest_fanout_loop,
    run_grace_period_loop,
    seconds_until_next_hour,
)


def test_seconds_until_next_hour():
    now = datetime(2025, 3, 10, 9, 45, 30, tzinfo=timezone.utc)

    assert seconds_until_next_hour(now) == 14 * 60 + 30
    assert seconds_until_next_hour(now.replace(minute=0, second=0)) == 3600


@pytest.mark.asyncio
async def test_grace_period_loop_sweeps_until_shutdown():
    shutdown_event = asyncio.Event()
    manager = MagicMock()

    async def sweep():
        shutdown_event.set()
        return SweepResult(success=False, errors=[SweepError(user_id="u1", error="boom")])

    manager.process_expired_grace_periods = AsyncMock(side_effect=sweep)
    logger = MagicMock()

    await run_grace_period_loop(manager, logger, interval_seconds=0, shutdown_event=shutdown_event)

    manager.process_expired_grace_periods.assert_awaited_once()
    logger.warning.assert_called_once()


@pytest.mark.asyncio
async def test_grace_period_loop_survives_errors():
    shutdown_event = asyncio.Event()
    calls = []

    async def sweep():
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("db down")
        shutdown_event.set()
        return SweepResult(success=True)

    manager = MagicMock()
    manager.process_expired_grace_periods = AsyncMock(side_effect=sweep)
    logger = MagicMock()

    await run_grace_period_loop(manager, logger, interval_seconds=0, shutdown_event=shutdown_event)

    assert len(calls) == 2
    logger.error.assert_called_once()


@pytest.mark.asyncio
async def test_digest_fanout_waits_for_hour_boundary():
    shutdown_event = asyncio.Event()
    service = MagicMock()
    # one second before the hour
    service.clock = lambda: datetime(2025, 3, 10, 9, 59, 59, 990000, tzinfo=timezone.utc)

    async def fan_out():
        shutdown_event.set()
        return 3

    service.queue_daily_digests_for_hour = AsyncMock(side_effect=fan_out)

    await asyncio.wait_for(
        run_digest_fanout_loop(service, MagicMock(), shutdown_event=shutdown_event), timeout=2
    )

    service.queue_daily_digests_for_hour.assert_awaited_once()


@pytest.mark.asyncio
async def test_digest_fanout_exits_without_queueing_on_shutdown():
    shutdown_event = asyncio.Event()
    shutdown_event.set()
    service = MagicMock()
    service.clock = lambda: datetime(2025, 3, 10, 9, 30, tzinfo=timezone.utc)
    service.queue_daily_digests_for_hour = AsyncMock()

    await run_digest_fanout_loop(service, MagicMock(), shutdown_event=shutdown_event)

    service.queue_daily_digests_for_hour.assert_not_awaited()
