"""CLI entrypoint and programmatic interface for the email queue worker."""

import argparse
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

import asyncpg

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.registry import JobRegistry
from bizzin_jobs.worker import EmailQueueWorker, run_worker_loop


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


async def create_db_pool(config: BizzinJobsConfig):
    """Create database connection pool."""
    return await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)


async def run_worker(
    config: Optional[BizzinJobsConfig] = None,
    db_pool=None,
    registry: Optional[JobRegistry] = None,
    logger: Optional[logging.Logger] = None,
    shutdown_event: Optional[asyncio.Event] = None,
    poll_interval_seconds: Optional[int] = None,
):
    """
    Run the email queue worker programmatically.

    Args:
        config: BizzinJobsConfig instance. If None, will load from environment.
        db_pool: Database connection pool. If None, will create from config.
        registry: JobRegistry instance. If None, the built-in email handlers are used.
        logger: Logger instance. If None, will create default logger.
        shutdown_event: Optional asyncio.Event for graceful shutdown.
        poll_interval_seconds: Overrides config.poll_interval_seconds.

    Example:
        ```python
        from bizzin_jobs import BizzinJobsConfig, run_worker
        import asyncio

        asyncio.run(run_worker(config=BizzinJobsConfig.from_env()))
        ```
    """
    if config is None:
        config = BizzinJobsConfig.from_env()

    if logger is None:
        logger = logging.getLogger(__name__)

    if shutdown_event is None:
        shutdown_event = asyncio.Event()

    db_pool_provided = db_pool is not None
    if db_pool is None:
        db_pool = await create_db_pool(config)

    try:
        worker = await EmailQueueWorker.create(config, db_pool, logger=logger, registry=registry)
        await run_worker_loop(
            worker,
            logger,
            poll_interval_seconds=poll_interval_seconds or config.poll_interval_seconds,
            reaper_interval_seconds=config.reaper_interval_seconds,
            shutdown_event=shutdown_event,
        )
    finally:
        if not db_pool_provided and db_pool:
            await db_pool.close()


def main():
    """Main entrypoint for worker."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Bizzin Email Queue Worker")
    parser.add_argument(
        "--poll-interval-seconds",
        type=int,
        default=None,
        help="Seconds between queue polls (default: BIZZIN_POLL_INTERVAL_SECONDS or 120)",
    )
    args = parser.parse_args()

    try:
        config = BizzinJobsConfig.from_env()
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    shutdown_event = asyncio.Event()

    def signal_handler(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        shutdown_event.set()

    signal.signal(signal.SIGTERM, signal_handler)
    signal.signal(signal.SIGINT, signal_handler)

    async def run():
        """Async main function."""
        try:
            logger.info(f"Starting email queue worker ({config.environment})...")
            await run_worker(
                config=config,
                logger=logger,
                shutdown_event=shutdown_event,
                poll_interval_seconds=args.poll_interval_seconds,
            )
        except Exception as e:
            logger.error(f"Fatal error in worker: {e}", exc_info=True)
            sys.exit(1)

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
