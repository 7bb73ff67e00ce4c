"""Worker that claims email jobs from Postgres and sends them."""

import asyncio
import logging
import random
import string
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

import asyncpg

import bizzin_jobs.handlers  # noqa: F401  registers the built-in handlers
from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.mailer import SmtpMailer
from bizzin_jobs.metrics import WorkerMetrics
from bizzin_jobs.models import EmailJob, WorkerState, utcnow
from bizzin_jobs.registry import JobRegistry, email_job_registry
from bizzin_jobs.renderer import EmailRenderer
from bizzin_jobs.service import EmailQueueService

BASE_RETRY_DELAY = timedelta(seconds=30)
MAX_RETRY_DELAY = timedelta(minutes=5)


def calculate_retry_delay(retry_count: int) -> timedelta:
    """
    Exponential backoff for the given retry number.

    30s * 2^retry_count, capped at 5 minutes. Non-decreasing in
    retry_count.
    """
    # exponent is clamped so huge counts cannot overflow timedelta
    exponent = max(0, min(retry_count, 16))
    return min(MAX_RETRY_DELAY, BASE_RETRY_DELAY * (2 ** exponent))


def generate_worker_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"worker-{int(time.time() * 1000)}-{suffix}"


class EmailQueueWorker:
    """
    Processes due email jobs in bounded concurrent batches.

    Use ``await EmailQueueWorker.create(...)`` to get a worker with
    templates loaded, its status row written and the heartbeat running.
    """

    def __init__(
        self,
        config: BizzinJobsConfig,
        service: EmailQueueService,
        renderer: EmailRenderer,
        mailer: SmtpMailer,
        registry: Optional[JobRegistry] = None,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
        worker_id: Optional[str] = None,
    ):
        self.config = config
        self.service = service
        self.renderer = renderer
        self.mailer = mailer
        self.registry = registry or email_job_registry
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self.worker_id = worker_id or generate_worker_id()
        self.metrics = WorkerMetrics(clock)
        self.started_at = clock()
        self.error_count = 0
        self.is_processing = False
        self.shutdown_poll_seconds = 1.0
        self._shutting_down = False
        self._heartbeat_task: Optional[asyncio.Task] = None

    @classmethod
    async def create(
        cls,
        config: BizzinJobsConfig,
        db_pool: asyncpg.Pool,
        logger: Optional[logging.Logger] = None,
        registry: Optional[JobRegistry] = None,
        mailer: Optional[SmtpMailer] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "EmailQueueWorker":
        """Build a worker over a pool and run its startup sequence."""
        logger = logger or logging.getLogger(__name__)
        service = EmailQueueService(config, db_pool, logger, clock)
        renderer = EmailRenderer(config, service.content_store, logger, clock)
        worker = cls(
            config,
            service,
            renderer,
            mailer or SmtpMailer(config, logger),
            registry=registry,
            logger=logger,
            clock=clock,
        )
        await worker.init()
        return worker

    async def init(self) -> None:
        """Load templates, register as active and start the heartbeat."""
        self.renderer.load_templates()
        await self._write_status(WorkerState.ACTIVE)
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop())
        self.logger.info(
            f"Email queue worker {self.worker_id} started "
            f"(max {self.config.max_concurrent_jobs} concurrent jobs)"
        )

    async def _write_status(self, state: WorkerState) -> None:
        await self.service.store.upsert_worker_status(
            self.worker_id,
            state,
            self.clock(),
            jobs_processed_today=self.metrics.jobs_today,
            error_count=self.error_count,
            uptime_start=self.started_at,
        )

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.heartbeat_interval_seconds)
            state = WorkerState.ACTIVE if self.is_processing else WorkerState.IDLE
            try:
                await self._write_status(state)
            except Exception as e:
                self.logger.error(f"Heartbeat failed for {self.worker_id}: {e}", exc_info=True)

    def _context(self, job: EmailJob) -> dict[str, Any]:
        return {
            "job": job,
            "logger": self.logger,
            "renderer": self.renderer,
            "mailer": self.mailer,
            "store": self.service.store,
            "content_store": self.service.content_store,
            "clock": self.clock,
        }

    async def process_queued_jobs(self) -> int:
        """
        Claim and run one batch of due jobs.

        A call made while a previous batch is still running returns 0
        immediately. Returns the number of jobs processed.
        """
        if self.is_processing:
            self.logger.debug("Previous batch still running, skipping poll")
            return 0
        if self._shutting_down:
            return 0

        self.is_processing = True
        try:
            jobs = await self.service.claim_due_jobs(
                self.worker_id, self.config.max_concurrent_jobs
            )
            if not jobs:
                return 0

            results = await asyncio.gather(
                *(self.process_email_job(job) for job in jobs), return_exceptions=True
            )
            for job, result in zip(jobs, results):
                if isinstance(result, Exception):
                    self.error_count += 1
                    self.logger.error(
                        f"Unhandled error finishing job {job.id}: {result}",
                        exc_info=result,
                    )
            return len(jobs)
        finally:
            self.is_processing = False

    async def process_email_job(self, job: EmailJob) -> bool:
        """Run one claimed job and record its outcome. Returns True on success."""
        started = time.monotonic()

        handler = self.registry.get_handler(job.job_type)
        if handler is None:
            message = f"Unknown job type: {job.job_type}"
            self.logger.error(f"{message} (job {job.id})")
            await self._handle_job_failure(job, message)
            return False

        self.logger.info(
            f"Processing {job.job_type} job {job.id} for {job.user_email} "
            f"(attempt {job.retry_count + 1}/{job.max_retries + 1})"
        )

        try:
            succeeded = await handler(self._context(job), job)
        except Exception as e:
            self.logger.error(f"Job {job.id} failed: {e}", exc_info=True)
            await self._handle_job_failure(job, str(e) or type(e).__name__)
            return False

        if not succeeded:
            await self._handle_job_failure(job, f"Handler for {job.job_type} reported failure")
            return False

        processing_time = int((time.monotonic() - started) * 1000)
        await self.service.mark_job_completed(job.id, processing_time)
        self.metrics.record_success(processing_time)
        return True

    async def _handle_job_failure(self, job: EmailJob, error_message: str) -> None:
        self.metrics.record_failure()
        self.error_count += 1

        new_count = job.retry_count + 1
        if new_count <= job.max_retries:
            delay = calculate_retry_delay(new_count)
            await self.service.mark_job_retry(job.id, new_count, error_message, delay)
            self.logger.info(
                f"Job {job.id} will retry ({new_count}/{job.max_retries}) "
                f"in {int(delay.total_seconds())}s"
            )
        else:
            # retry_count stays at max_retries
            await self.service.mark_job_failed(job.id, error_message)
            self.logger.error(f"Job {job.id} failed after {job.max_retries} retries")

    async def shutdown(self) -> None:
        """Stop the heartbeat, let the running batch finish and mark stopped."""
        self._shutting_down = True
        self.logger.info(f"Shutting down worker {self.worker_id}")

        if self._heartbeat_task:
            self._heartbeat_task.cancel()
            try:
                await self._heartbeat_task
            except asyncio.CancelledError:
                pass
            self._heartbeat_task = None

        while self.is_processing:
            await asyncio.sleep(self.shutdown_poll_seconds)

        await self._write_status(WorkerState.STOPPED)
        self.logger.info(f"Worker {self.worker_id} stopped")


async def run_worker_loop(
    worker: EmailQueueWorker,
    logger: logging.Logger,
    poll_interval_seconds: int = 120,
    reaper_interval_seconds: int = 300,
    shutdown_event: asyncio.Event = None,
) -> None:
    """
    Poll for due jobs until the shutdown event is set.

    Args:
        worker: An initialised EmailQueueWorker
        logger: Logger instance
        poll_interval_seconds: Time between poll cycles
        reaper_interval_seconds: Time between stale-processing reaper runs
        shutdown_event: Event that ends the loop and triggers worker shutdown
    """
    shutdown_event = shutdown_event or asyncio.Event()
    last_reaper_run: Optional[datetime] = None

    logger.info(f"Starting worker loop for {worker.worker_id}")

    while not shutdown_event.is_set():
        try:
            now = worker.clock()
            if (
                last_reaper_run is None
                or (now - last_reaper_run).total_seconds() >= reaper_interval_seconds
            ):
                try:
                    await worker.service.reclaim_stale_jobs()
                    last_reaper_run = now
                except Exception as e:
                    logger.error(f"Error in stale job reaper: {e}", exc_info=True)

            processed = await worker.process_queued_jobs()
            if processed:
                logger.info(f"Processed {processed} email jobs")
        except Exception as e:
            logger.error(f"Error in worker loop: {e}", exc_info=True)

        try:
            await asyncio.wait_for(shutdown_event.wait(), timeout=poll_interval_seconds)
        except asyncio.TimeoutError:
            pass

    logger.info("Shutdown signal received, exiting worker loop")
    await worker.shutdown()
