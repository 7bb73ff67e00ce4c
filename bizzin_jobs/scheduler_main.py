"""CLI entrypoint for the hourly scheduler (digest fan-out and grace sweep)."""

import argparse
import asyncio
import logging
import os
import signal
import sys

import asyncpg

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.grace_period import GracePeriodManager
from bizzin_jobs.scheduler import run_digest_fanout_loop, run_grace_period_loop
from bizzin_jobs.service import EmailQueueService


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


def main():
    """Main entrypoint for scheduler."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Bizzin Jobs Scheduler")
    parser.add_argument(
        "--no-digests",
        action="store_true",
        help="Only run the grace period sweep",
    )
    parser.add_argument(
        "--no-grace-sweep",
        action="store_true",
        help="Only run the daily digest fan-out",
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
        db_pool = None
        try:
            logger.info("Creating database connection pool...")
            db_pool = await create_db_pool(config)

            loops = []
            if not args.no_digests:
                loops.append(
                    run_digest_fanout_loop(
                        EmailQueueService(config, db_pool, logger),
                        logger,
                        shutdown_event=shutdown_event,
                    )
                )
            if not args.no_grace_sweep:
                loops.append(
                    run_grace_period_loop(
                        GracePeriodManager(config, db_pool, logger),
                        logger,
                        interval_seconds=config.grace_sweep_interval_seconds,
                        shutdown_event=shutdown_event,
                    )
                )

            logger.info(f"Starting {len(loops)} scheduler loops...")
            await asyncio.gather(*loops)
        except Exception as e:
            logger.error(f"Fatal error in scheduler: {e}", exc_info=True)
            sys.exit(1)
        finally:
            if db_pool:
                logger.info("Closing database connection pool...")
                await db_pool.close()

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception as e:
        logger.error(f"Fatal error: {e}", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
