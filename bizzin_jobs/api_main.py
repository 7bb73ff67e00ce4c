"""FastAPI application and CLI entrypoint for the admin API."""

import argparse
import logging
import os
import sys
from contextlib import asynccontextmanager
from typing import Optional

import asyncpg
import uvicorn
from fastapi import FastAPI

from bizzin_jobs.auth import AdminVerifier, AuthProviderClient
from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.fastapi_router import create_email_queue_router, create_grace_period_router
from bizzin_jobs.grace_period import GracePeriodManager
from bizzin_jobs.plan_store import PlanStore
from bizzin_jobs.service import EmailQueueService


def setup_logging():
    """Setup logging configuration."""
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def create_app(config: Optional[BizzinJobsConfig] = None) -> FastAPI:
    """
    Build the admin API.

    The asyncpg pool is created on startup and closed on shutdown. Both
    routers resolve their services from ``app.state.db_pool`` per request.
    """
    if config is None:
        config = BizzinJobsConfig.from_env()
    if not config.auth_url:
        raise ValueError("BIZZIN_AUTH_URL is required for the admin API")

    logger = logging.getLogger("bizzin_jobs.api")

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Creating database connection pool...")
        app.state.db_pool = await asyncpg.create_pool(config.db_dsn, min_size=2, max_size=10)
        try:
            yield
        finally:
            logger.info("Closing database connection pool...")
            await app.state.db_pool.close()

    app = FastAPI(title="Bizzin Jobs Admin API", lifespan=lifespan)

    verifier = AdminVerifier(
        AuthProviderClient(config.auth_url, config.auth_api_key),
        lambda: PlanStore(app.state.db_pool),
    )
    app.include_router(
        create_grace_period_router(
            lambda: GracePeriodManager(config, app.state.db_pool, logger), verifier
        ),
        prefix="/api",
    )
    app.include_router(
        create_email_queue_router(
            lambda: EmailQueueService(config, app.state.db_pool, logger), verifier
        ),
        prefix="/api",
    )
    return app


def main():
    """Main entrypoint for the admin API server."""
    setup_logging()
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Bizzin Jobs Admin API")
    parser.add_argument("--host", default="0.0.0.0", help="Bind address (default: 0.0.0.0)")
    parser.add_argument("--port", type=int, default=8000, help="Bind port (default: 8000)")
    args = parser.parse_args()

    try:
        app = create_app()
    except ValueError as e:
        logger.error(f"Failed to load config: {e}")
        sys.exit(1)

    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
