"""Periodic loops: hourly digest fan-out and the grace period sweep."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Optional

from bizzin_jobs.grace_period import GracePeriodManager
from bizzin_jobs.service import EmailQueueService


async def _wait_or_shutdown(shutdown_event: asyncio.Event, seconds: float) -> None:
    try:
        await asyncio.wait_for(shutdown_event.wait(), timeout=seconds)
    except asyncio.TimeoutError:
        pass


async def run_grace_period_loop(
    manager: GracePeriodManager,
    logger: logging.Logger,
    interval_seconds: int = 3600,
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Suspend expired grace periods on a fixed interval.

    Args:
        manager: Grace period manager to sweep with
        logger: Logger instance
        interval_seconds: Time between sweeps
        shutdown_event: Optional event to signal shutdown
    """
    shutdown_event = shutdown_event or asyncio.Event()
    logger.info(f"Starting grace period sweep loop (every {interval_seconds}s)")

    while not shutdown_event.is_set():
        try:
            result = await manager.process_expired_grace_periods()
            if result.errors:
                logger.warning(
                    f"Grace period sweep finished with {len(result.errors)} errors: "
                    f"{[error.user_id for error in result.errors]}"
                )
        except Exception as e:
            logger.error(f"Error in grace period loop: {e}", exc_info=True)

        await _wait_or_shutdown(shutdown_event, interval_seconds)

    logger.info("Shutdown signal received, exiting grace period loop")


def seconds_until_next_hour(now: datetime) -> float:
    next_hour = now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
    return (next_hour - now).total_seconds()


async def run_digest_fanout_loop(
    service: EmailQueueService,
    logger: logging.Logger,
    shutdown_event: Optional[asyncio.Event] = None,
) -> None:
    """
    Queue daily digests at the top of every hour.

    The first fan-out happens at the next hour boundary, so restarting the
    scheduler mid-hour does not queue a second digest for that hour.
    """
    shutdown_event = shutdown_event or asyncio.Event()
    logger.info("Starting daily digest fan-out loop")

    while True:
        await _wait_or_shutdown(shutdown_event, seconds_until_next_hour(service.clock()))
        if shutdown_event.is_set():
            break

        try:
            await service.queue_daily_digests_for_hour()
        except Exception as e:
            logger.error(f"Error creating hourly email jobs: {e}", exc_info=True)

    logger.info("Shutdown signal received, exiting digest fan-out loop")
