"""Background email queue and subscription grace periods for Bizzin."""

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.ddl import ALL_DDL, DAILY_EMAIL_DDL, EMAIL_QUEUE_DDL, PLAN_DDL
from bizzin_jobs.errors import (
    AuthTokenError,
    BizzinJobsError,
    JobNotFoundError,
    MailDeliveryError,
    RemoteHttpError,
)
from bizzin_jobs.fastapi_router import create_email_queue_router, create_grace_period_router
from bizzin_jobs.grace_period import GracePeriodManager
from bizzin_jobs.models import EmailJob, EmailJobSpec, EmailJobStatus, EmailJobType
from bizzin_jobs.registry import JobRegistry, email_job_registry
from bizzin_jobs.service import EmailQueueService
from bizzin_jobs.store import JobStore
from bizzin_jobs.worker import EmailQueueWorker, run_worker_loop
from bizzin_jobs.worker_main import run_worker

__version__ = "0.1.0"

__all__ = [
    "BizzinJobsConfig",
    "ALL_DDL",
    "DAILY_EMAIL_DDL",
    "EMAIL_QUEUE_DDL",
    "PLAN_DDL",
    "AuthTokenError",
    "BizzinJobsError",
    "JobNotFoundError",
    "MailDeliveryError",
    "RemoteHttpError",
    "create_email_queue_router",
    "create_grace_period_router",
    "GracePeriodManager",
    "EmailJob",
    "EmailJobSpec",
    "EmailJobStatus",
    "EmailJobType",
    "JobRegistry",
    "email_job_registry",
    "EmailQueueService",
    "JobStore",
    "EmailQueueWorker",
    "run_worker_loop",
    "run_worker",
]
