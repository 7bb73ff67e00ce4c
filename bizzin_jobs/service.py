"""High-level service layer for the email job queue."""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Optional, Union
from uuid import UUID

import asyncpg
from dateutil import tz
from pydantic import ValidationError

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.content_store import ContentStore
from bizzin_jobs.metrics import WorkerMetrics
from bizzin_jobs.models import EmailJob, EmailJobSpec, EmailJobType, utcnow
from bizzin_jobs.store import JobStore

# Workers without a heartbeat inside this window are not counted as active
ACTIVE_WORKER_WINDOW = timedelta(minutes=5)

DIGEST_PRIORITY = 5
MANUAL_DIGEST_PRIORITY = 7
SINGLE_USER_PRIORITY = 8


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _send_hour(send_time: Any) -> Optional[int]:
    """Hour component of a daily_email_settings.send_time value ('HH:MM')."""
    try:
        return int(str(send_time).split(":")[0])
    except ValueError:
        return None


class EmailQueueService:
    """High-level API for email job operations."""

    def __init__(
        self,
        config: BizzinJobsConfig,
        db_pool: asyncpg.Pool,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.store = JobStore(db_pool)
        self.content_store = ContentStore(db_pool)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    async def enqueue(
        self,
        *,
        job_type: Union[str, EmailJobType],
        user_id: str,
        user_email: str,
        priority: int = 5,
        scheduled_for: Optional[datetime] = None,
        max_retries: int = 3,
        job_data: Optional[dict[str, Any]] = None,
    ) -> EmailJob:
        """
        Enqueue a single email job.

        Args:
            job_type: One of daily_digest, goal_reminder, milestone_alert
            user_id: Recipient's user ID
            user_email: Address the email goes to
            priority: 1-10, higher runs sooner
            scheduled_for: Earliest time to run (defaults to now)
            max_retries: Retries allowed after the first attempt (0-5)
            job_data: Free-form data stored with the job

        Returns:
            EmailJob: The created pending job

        Raises:
            ValueError: If the job fields fail validation
        """
        spec = EmailJobSpec(
            job_type=job_type,
            user_id=user_id,
            user_email=user_email,
            priority=priority,
            scheduled_for=scheduled_for,
            max_retries=max_retries,
            job_data=job_data or {},
        )
        job = await self.store.insert_job(spec, spec.scheduled_for or self.clock())

        self.logger.info(
            f"Enqueued {job.job_type} job {job.id} for user {job.user_id} "
            f"(priority {job.priority})"
        )
        return job

    async def enqueue_batch(self, specs: list[Union[EmailJobSpec, dict[str, Any]]]) -> int:
        """
        Enqueue many jobs in one transaction.

        Invalid entries are logged and skipped. A database failure inserts
        nothing and returns 0.

        Returns:
            Number of jobs inserted
        """
        valid: list[EmailJobSpec] = []
        for raw in specs:
            if isinstance(raw, EmailJobSpec):
                valid.append(raw)
                continue
            try:
                valid.append(EmailJobSpec(**raw))
            except ValidationError as e:
                self.logger.warning(f"Skipping invalid email job spec {raw!r}: {e}")

        if not valid:
            return 0

        try:
            count = await self.store.insert_jobs(valid, self.clock())
        except asyncpg.PostgresError as e:
            self.logger.error(f"Failed to enqueue batch of {len(valid)} jobs: {e}", exc_info=True)
            return 0

        self.logger.info(f"Enqueued batch of {count} email jobs")
        return count

    async def get_job(self, job_id: UUID) -> EmailJob:
        return await self.store.get_job(job_id)

    async def list_jobs(
        self,
        *,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[EmailJob]:
        """List jobs with optional filters."""
        return await self.store.list_jobs(
            user_id=user_id, status=status, job_type=job_type, limit=limit
        )

    async def claim_due_jobs(self, worker_id: str, limit: int) -> list[EmailJob]:
        """Atomically claim up to ``limit`` due jobs for a worker."""
        jobs = await self.store.claim_due_jobs(worker_id, limit, self.clock())
        if jobs:
            self.logger.info(f"Worker {worker_id} claimed {len(jobs)} jobs")
        return jobs

    async def mark_job_completed(self, job_id: UUID, processing_time: int) -> None:
        await self.store.mark_job_completed(job_id, self.clock(), processing_time)
        self.logger.info(f"Job {job_id} completed in {processing_time}ms")

    async def mark_job_retry(
        self, job_id: UUID, retry_count: int, error_message: str, delay: timedelta
    ) -> datetime:
        """Schedule another attempt after ``delay``. Returns the new scheduled_for."""
        scheduled_for = self.clock() + delay
        await self.store.mark_job_retrying(job_id, retry_count, error_message, scheduled_for)
        self.logger.info(
            f"Job {job_id} scheduled for retry {retry_count} at {scheduled_for.isoformat()}"
        )
        return scheduled_for

    async def mark_job_failed(self, job_id: UUID, error_message: str) -> None:
        """Mark a job as permanently failed."""
        await self.store.mark_job_failed(job_id, self.clock(), error_message)
        self.logger.error(f"Job {job_id} permanently failed: {error_message}")

    async def reclaim_stale_jobs(self) -> int:
        """
        Return jobs left in processing by a crashed worker to pending.

        The reset uses up one retry. Jobs already at max_retries fail
        instead. Should be called periodically. Returns the number of jobs
        touched.
        """
        now = self.clock()
        cutoff = now - timedelta(seconds=self.config.stale_processing_timeout_seconds)
        count = await self.store.reset_stale_processing_jobs(cutoff, now)
        if count > 0:
            self.logger.warning(f"Reclaimed {count} stale processing jobs")
        return count

    async def get_queue_stats(
        self,
        worker_id: Optional[str] = None,
        metrics: Optional[WorkerMetrics] = None,
    ) -> dict[str, Any]:
        """Queue health summary for monitoring."""
        now = self.clock()
        heartbeat_cutoff = now - ACTIVE_WORKER_WINDOW
        summary = await self.store.get_processing_summary(_start_of_day(now), heartbeat_cutoff)
        stats = {
            "queue": summary,
            "status_counts": await self.store.count_jobs_by_status(_start_of_day(now)),
            "workers": await self.store.list_active_workers(heartbeat_cutoff),
            "max_concurrent_jobs": self.config.max_concurrent_jobs,
        }
        if worker_id:
            stats["worker_id"] = worker_id
        if metrics:
            stats["worker_metrics"] = metrics.snapshot()
        return stats

    def _digest_spec(
        self, setting: dict[str, Any], priority: int, job_data: dict[str, Any]
    ) -> dict[str, Any]:
        return {
            "job_type": EmailJobType.DAILY_DIGEST,
            "user_id": str(setting["user_id"]),
            "user_email": setting["email"],
            "priority": priority,
            "max_retries": 3,
            "job_data": {**job_data, "send_time": str(setting["send_time"])},
        }

    async def queue_daily_digests_for_hour(self, now: Optional[datetime] = None) -> int:
        """
        Queue a daily digest for every opted-in user whose send hour is now.

        ``send_time`` is compared against the current hour in each user's
        own timezone. Unknown timezones fall back to UTC.

        Returns:
            Number of jobs queued
        """
        now = now or self.clock()
        settings = await self.content_store.list_enabled_email_settings()

        specs = []
        for setting in settings:
            zone = tz.gettz(setting.get("timezone") or "UTC") or tz.UTC
            local_hour = now.astimezone(zone).hour
            if _send_hour(setting["send_time"]) != local_hour:
                continue
            specs.append(
                self._digest_spec(
                    setting,
                    DIGEST_PRIORITY,
                    {"created_hour": local_hour, "timezone": setting.get("timezone") or "UTC"},
                )
            )

        if not specs:
            self.logger.info(f"No daily digests due at {now.isoformat()}")
            return 0

        queued = await self.enqueue_batch(specs)
        self.logger.info(f"Queued {queued}/{len(specs)} daily digests")
        return queued

    async def queue_all_eligible_users(self) -> int:
        """Queue a digest for every opted-in user regardless of send time."""
        settings = await self.content_store.list_enabled_email_settings()
        if not settings:
            return 0

        job_data = {"manual_trigger": True, "triggered_at": self.clock().isoformat()}
        specs = [
            self._digest_spec(setting, MANUAL_DIGEST_PRIORITY, job_data) for setting in settings
        ]
        return await self.enqueue_batch(specs)

    async def queue_single_user_email(
        self,
        user_id: str,
        user_email: str,
        job_type: Union[str, EmailJobType] = EmailJobType.DAILY_DIGEST,
    ) -> EmailJob:
        """Queue one high-priority email for a single user."""
        return await self.enqueue(
            job_type=job_type,
            user_id=user_id,
            user_email=user_email,
            priority=SINGLE_USER_PRIORITY,
            job_data={
                "single_user_trigger": True,
                "triggered_at": self.clock().isoformat(),
            },
        )
