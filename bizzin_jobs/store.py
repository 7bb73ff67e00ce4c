"""Database store layer for the email job queue."""

import json
from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import asyncpg

from bizzin_jobs.errors import JobNotFoundError
from bizzin_jobs.models import (
    CLAIMABLE_STATUSES,
    EmailJob,
    EmailJobSpec,
    EmailJobStatus,
    WorkerState,
)


def _rows_affected(result: str) -> int:
    # asyncpg returns a status string such as "UPDATE 5"
    return int(result.split()[-1]) if result else 0


class JobStore:
    """Database layer for email job operations."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def insert_job(self, spec: EmailJobSpec, scheduled_for: datetime) -> EmailJob:
        """Insert a new pending job and return it."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO email_queue_jobs (
                    job_type, user_id, user_email, status, priority,
                    scheduled_for, retry_count, max_retries, job_data
                ) VALUES ($1, $2, $3, $4, $5, $6, 0, $7, $8)
                RETURNING *
                """,
                spec.job_type.value,
                spec.user_id,
                spec.user_email,
                EmailJobStatus.PENDING.value,
                spec.priority,
                scheduled_for,
                spec.max_retries,
                json.dumps(spec.job_data),
            )

        return self._row_to_job(row)

    async def insert_jobs(self, specs: list[EmailJobSpec], now: datetime) -> int:
        """
        Insert a batch of pending jobs in a single transaction.

        Returns the number of rows inserted.
        """
        if not specs:
            return 0

        records = [
            (
                spec.job_type.value,
                spec.user_id,
                spec.user_email,
                EmailJobStatus.PENDING.value,
                spec.priority,
                spec.scheduled_for or now,
                spec.max_retries,
                json.dumps(spec.job_data),
            )
            for spec in specs
        ]

        async with self.db_pool.acquire() as conn:
            async with conn.transaction():
                await conn.executemany(
                    """
                    INSERT INTO email_queue_jobs (
                        job_type, user_id, user_email, status, priority,
                        scheduled_for, retry_count, max_retries, job_data
                    ) VALUES ($1, $2, $3, $4, $5, $6, 0, $7, $8)
                    """,
                    records,
                )

        return len(records)

    async def get_job(self, job_id: UUID) -> EmailJob:
        """Get a job by ID."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM email_queue_jobs WHERE id = $1", job_id
            )

        if not row:
            raise JobNotFoundError(str(job_id))

        return self._row_to_job(row)

    async def list_jobs(
        self,
        user_id: Optional[str] = None,
        status: Optional[str] = None,
        job_type: Optional[str] = None,
        limit: int = 50,
    ) -> list[EmailJob]:
        """List jobs with optional filters."""
        query = "SELECT * FROM email_queue_jobs WHERE 1=1"
        params = []
        param_idx = 1

        if user_id:
            query += f" AND user_id = ${param_idx}"
            params.append(user_id)
            param_idx += 1

        if status:
            query += f" AND status = ${param_idx}"
            params.append(status)
            param_idx += 1

        if job_type:
            query += f" AND job_type = ${param_idx}"
            params.append(job_type)
            param_idx += 1

        query += f" ORDER BY created_at DESC LIMIT ${param_idx}"
        params.append(limit)

        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(query, *params)

        return [self._row_to_job(row) for row in rows]

    async def claim_due_jobs(
        self, worker_id: str, limit: int, now: datetime
    ) -> list[EmailJob]:
        """
        Atomically claim due jobs for one worker.

        Uses FOR UPDATE SKIP LOCKED so two workers polling at the same time
        never claim the same row. Claimed rows move to processing with
        started_at and worker_id stamped. Both pending and retrying rows are
        eligible once scheduled_for has passed.
        """
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                UPDATE email_queue_jobs
                SET status = $1, started_at = $2, worker_id = $3
                WHERE id IN (
                    SELECT id FROM email_queue_jobs
                    WHERE status = ANY($4::text[])
                      AND scheduled_for <= $2
                    ORDER BY priority DESC, scheduled_for ASC
                    LIMIT $5
                    FOR UPDATE SKIP LOCKED
                )
                RETURNING *
                """,
                EmailJobStatus.PROCESSING.value,
                now,
                worker_id,
                [status.value for status in CLAIMABLE_STATUSES],
                limit,
            )

        jobs = [self._row_to_job(row) for row in rows]
        # RETURNING does not preserve the subquery order
        jobs.sort(key=lambda job: (-job.priority, job.scheduled_for))
        return jobs

    async def mark_job_completed(
        self, job_id: UUID, completed_at: datetime, processing_time: int
    ) -> None:
        """Mark a job as completed."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE email_queue_jobs
                SET status = $1, completed_at = $2, processing_time = $3,
                    error_message = NULL
                WHERE id = $4
                """,
                EmailJobStatus.COMPLETED.value,
                completed_at,
                processing_time,
                job_id,
            )

    async def mark_job_retrying(
        self,
        job_id: UUID,
        retry_count: int,
        error_message: str,
        scheduled_for: datetime,
    ) -> None:
        """Schedule a job for another attempt."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE email_queue_jobs
                SET status = $1,
                    retry_count = $2,
                    error_message = $3,
                    scheduled_for = $4
                WHERE id = $5
                """,
                EmailJobStatus.RETRYING.value,
                retry_count,
                error_message,
                scheduled_for,
                job_id,
            )

    async def mark_job_failed(
        self, job_id: UUID, failed_at: datetime, error_message: str
    ) -> None:
        """Mark a job as permanently failed."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                UPDATE email_queue_jobs
                SET status = $1, failed_at = $2, error_message = $3
                WHERE id = $4
                """,
                EmailJobStatus.FAILED.value,
                failed_at,
                error_message,
                job_id,
            )

    async def reset_stale_processing_jobs(self, started_before: datetime, now: datetime) -> int:
        """
        Return jobs stuck in processing to pending.

        A worker that crashed mid-cycle leaves its claimed rows in
        processing. Each reset counts as an attempt, so a job that keeps
        killing its worker fails once it is past max_retries. Returns the
        number of jobs reset or failed.
        """
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE email_queue_jobs
                SET status = CASE WHEN retry_count + 1 > max_retries THEN $2 ELSE $1 END,
                    retry_count = LEAST(retry_count + 1, max_retries),
                    failed_at = CASE WHEN retry_count + 1 > max_retries THEN $5 ELSE failed_at END,
                    worker_id = NULL,
                    error_message = 'Processing timed out - worker may have crashed'
                WHERE status = $3
                  AND started_at < $4
                """,
                EmailJobStatus.PENDING.value,
                EmailJobStatus.FAILED.value,
                EmailJobStatus.PROCESSING.value,
                started_before,
                now,
            )

        return _rows_affected(result)

    async def count_jobs_by_status(self, since: datetime) -> dict[str, int]:
        """Count jobs created since a cutoff, grouped by status."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT status, COUNT(*) AS count FROM email_queue_jobs
                WHERE created_at >= $1
                GROUP BY status
                """,
                since,
            )

        counts = {status.value: 0 for status in EmailJobStatus}
        for row in rows:
            counts[row["status"]] = row["count"]
        return counts

    async def get_processing_summary(
        self, since: datetime, heartbeat_cutoff: datetime
    ) -> dict[str, Any]:
        """Aggregate queue health figures for monitoring."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                  (SELECT COUNT(*) FROM email_queue_jobs WHERE status = 'pending') AS pending_jobs,
                  (SELECT COUNT(*) FROM email_queue_jobs WHERE status = 'processing') AS processing_jobs,
                  (SELECT COUNT(*) FROM email_queue_jobs
                     WHERE status = 'completed' AND completed_at >= $1) AS completed_today,
                  (SELECT COUNT(*) FROM email_queue_jobs
                     WHERE status = 'failed' AND failed_at >= $1) AS failed_today,
                  (SELECT AVG(processing_time) FROM email_queue_jobs
                     WHERE status = 'completed' AND completed_at >= $1) AS avg_processing_time,
                  (SELECT COUNT(*) FROM email_worker_status
                     WHERE status IN ('active', 'idle') AND last_heartbeat > $2) AS active_workers
                """,
                since,
                heartbeat_cutoff,
            )

        summary = dict(row)
        if summary["avg_processing_time"] is not None:
            summary["avg_processing_time"] = float(summary["avg_processing_time"])
        return summary

    async def upsert_worker_status(
        self,
        worker_id: str,
        status: WorkerState,
        heartbeat_at: datetime,
        jobs_processed_today: int = 0,
        error_count: int = 0,
        uptime_start: Optional[datetime] = None,
    ) -> None:
        """Create or refresh a worker's heartbeat row."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO email_worker_status (
                    worker_id, status, jobs_processed_today, last_heartbeat,
                    error_count, uptime_start
                ) VALUES ($1, $2, $3, $4, $5, COALESCE($6, $4))
                ON CONFLICT (worker_id) DO UPDATE
                SET status = EXCLUDED.status,
                    jobs_processed_today = EXCLUDED.jobs_processed_today,
                    last_heartbeat = EXCLUDED.last_heartbeat,
                    error_count = EXCLUDED.error_count
                """,
                worker_id,
                status.value,
                jobs_processed_today,
                heartbeat_at,
                error_count,
                uptime_start,
            )

    async def list_active_workers(self, heartbeat_cutoff: datetime) -> list[dict[str, Any]]:
        """Workers that sent a heartbeat after the cutoff."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM email_worker_status
                WHERE last_heartbeat >= $1
                ORDER BY last_heartbeat DESC
                """,
                heartbeat_cutoff,
            )

        return [dict(row) for row in rows]

    async def record_email_analytics(
        self, user_id: str, email_type: str, sent_at: datetime
    ) -> None:
        """Record one sent email for engagement analytics."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO email_analytics (user_id, email_type, sent_at, engagement_score)
                VALUES ($1, $2, $3, 0)
                """,
                user_id,
                email_type,
                sent_at,
            )

    def _row_to_job(self, row: asyncpg.Record) -> EmailJob:
        """Convert a database row to an EmailJob model."""
        return EmailJob(
            id=row["id"],
            job_type=row["job_type"],
            user_id=str(row["user_id"]),
            user_email=row["user_email"],
            status=EmailJobStatus(row["status"]),
            priority=row["priority"],
            scheduled_for=row["scheduled_for"],
            retry_count=row["retry_count"],
            max_retries=row["max_retries"],
            error_message=row["error_message"],
            job_data=json.loads(row["job_data"])
            if isinstance(row["job_data"], str)
            else row["job_data"],
            worker_id=row["worker_id"],
            processing_time=row["processing_time"],
            created_at=row["created_at"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
            failed_at=row["failed_at"],
        )
