"""FastAPI routers for the grace period admin API and email queue monitoring."""

import logging
from typing import Any, Callable, Dict, List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel

from bizzin_jobs.auth import AdminVerifier
from bizzin_jobs.errors import AuthTokenError, JobNotFoundError, RemoteHttpError
from bizzin_jobs.grace_period import (
    GracePeriodManager,
    GracePeriodOverview,
    GracePeriodResult,
    GracePeriodStatus,
    SubscriptionHealth,
    SweepResult,
)
from bizzin_jobs.models import EmailJobType
from bizzin_jobs.service import EmailQueueService


logger = logging.getLogger(__name__)


class StartGracePeriodRequest(BaseModel):
    failure_reason: Optional[str] = None
    idempotency_key: Optional[str] = None


class ExtendGracePeriodRequest(BaseModel):
    additional_days: int


class QueueUserEmailRequest(BaseModel):
    """Request model for queueing a single user's email."""

    user_id: str
    user_email: str
    job_type: EmailJobType = EmailJobType.DAILY_DIGEST


class QueueUserEmailResponse(BaseModel):
    job_id: str


class QueueAllResponse(BaseModel):
    queued: int


class EmailJobResponse(BaseModel):
    """Response model for email job details."""

    id: str
    job_type: str
    user_id: str
    user_email: str
    status: str
    priority: int
    scheduled_for: Optional[str] = None
    retry_count: int
    max_retries: int
    error_message: Optional[str] = None
    job_data: Dict[str, Any]
    worker_id: Optional[str] = None
    processing_time: Optional[int] = None
    created_at: Optional[str] = None
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    failed_at: Optional[str] = None


def create_admin_dependency(admin_verifier: AdminVerifier) -> Callable:
    """Build a dependency that rejects non-admin callers."""

    async def require_admin(
        authorization: Optional[str] = Header(None, alias="Authorization")
    ) -> Dict[str, Any]:
        try:
            return await admin_verifier.verify(authorization)
        except AuthTokenError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        except PermissionError as e:
            raise HTTPException(status_code=403, detail="Admin access required") from e
        except RemoteHttpError as e:
            logger.error(f"Auth provider error: {e}")
            raise HTTPException(status_code=502, detail="Auth provider unavailable") from e

    return require_admin


def _result_or_400(result: GracePeriodResult) -> GracePeriodResult:
    if not result.success:
        raise HTTPException(status_code=400, detail=result.message)
    return result


def create_grace_period_router(
    manager_factory: Callable[[], GracePeriodManager],
    admin_verifier: AdminVerifier,
) -> APIRouter:
    """
    Create the admin router for grace period management.

    Args:
        manager_factory: Callable that returns a GracePeriodManager instance
        admin_verifier: Verifies the caller's bearer token and admin flag

    Returns:
        APIRouter instance
    """
    router = APIRouter(prefix="/grace-period")
    require_admin = create_admin_dependency(admin_verifier)

    async def get_manager() -> GracePeriodManager:
        return manager_factory()

    @router.post("/start/{user_id}", response_model=GracePeriodResult)
    async def start_grace_period(
        user_id: str,
        request: Optional[StartGracePeriodRequest] = None,
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Start a grace period for a user (testing or manual intervention)."""
        request = request or StartGracePeriodRequest()
        try:
            result = await manager.start_grace_period(
                user_id,
                failure_reason=request.failure_reason or "Admin triggered grace period",
                idempotency_key=request.idempotency_key,
            )
        except Exception as e:
            logger.exception("Error starting grace period")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return _result_or_400(result)

    @router.post("/process-expired", response_model=SweepResult)
    async def process_expired(
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Run the expired grace period sweep now."""
        try:
            return await manager.process_expired_grace_periods()
        except Exception as e:
            logger.exception("Error processing expired grace periods")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/restore/{user_id}", response_model=GracePeriodResult)
    async def restore(
        user_id: str,
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        try:
            result = await manager.restore_from_suspension(user_id)
        except Exception as e:
            logger.exception("Error restoring account")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return _result_or_400(result)

    @router.post("/extend/{user_id}", response_model=GracePeriodResult)
    async def extend(
        user_id: str,
        request: ExtendGracePeriodRequest,
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        if request.additional_days <= 0:
            raise HTTPException(status_code=400, detail="additional_days must be a positive number")
        try:
            result = await manager.extend_grace_period(user_id, request.additional_days)
        except Exception as e:
            logger.exception("Error extending grace period")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return _result_or_400(result)

    @router.get("/status/{user_id}", response_model=GracePeriodStatus)
    async def status(
        user_id: str,
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        try:
            return await manager.get_grace_period_status(user_id)
        except Exception as e:
            logger.exception("Error getting grace period status")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/overview", response_model=GracePeriodOverview)
    async def overview(
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Dashboard counts and the soonest-ending grace periods."""
        try:
            return await manager.get_overview()
        except Exception as e:
            logger.exception("Error getting grace period overview")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/health", response_model=SubscriptionHealth)
    async def health(
        manager: GracePeriodManager = Depends(get_manager),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        try:
            return await manager.check_subscription_health()
        except Exception as e:
            logger.exception("Error checking subscription health")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    return router


def create_email_queue_router(
    service_factory: Callable[[], EmailQueueService],
    admin_verifier: AdminVerifier,
) -> APIRouter:
    """
    Create the admin router for email queue monitoring and manual triggers.

    Args:
        service_factory: Callable that returns an EmailQueueService instance
        admin_verifier: Verifies the caller's bearer token and admin flag

    Returns:
        APIRouter instance
    """
    router = APIRouter(prefix="/email-queue")
    require_admin = create_admin_dependency(admin_verifier)

    async def get_service() -> EmailQueueService:
        return service_factory()

    @router.get("/stats")
    async def stats(
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Queue health summary."""
        try:
            return await service.get_queue_stats()
        except Exception as e:
            logger.exception("Error getting queue stats")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/queue-user", response_model=QueueUserEmailResponse)
    async def queue_user(
        request: QueueUserEmailRequest,
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Queue one high-priority email for a single user."""
        try:
            job = await service.queue_single_user_email(
                request.user_id, request.user_email, request.job_type
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error queueing user email")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return QueueUserEmailResponse(job_id=str(job.id))

    @router.post("/queue-all", response_model=QueueAllResponse)
    async def queue_all(
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Queue a digest for every opted-in user right now."""
        try:
            return QueueAllResponse(queued=await service.queue_all_eligible_users())
        except Exception as e:
            logger.exception("Error queueing all users")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.post("/create-hourly-jobs", response_model=QueueAllResponse)
    async def create_hourly_jobs(
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        """Run the hourly digest fan-out now instead of waiting for the scheduler."""
        try:
            return QueueAllResponse(queued=await service.queue_daily_digests_for_hour())
        except Exception as e:
            logger.exception("Error creating hourly jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e

    @router.get("/jobs/{job_id}", response_model=EmailJobResponse)
    async def get_job(
        job_id: str,
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        try:
            job_uuid = UUID(job_id)
        except ValueError as e:
            raise HTTPException(status_code=400, detail="Invalid job ID format") from e

        try:
            job = await service.get_job(job_uuid)
        except JobNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except Exception as e:
            logger.exception("Error getting job")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return EmailJobResponse(**job.to_dict())

    @router.get("/jobs", response_model=List[EmailJobResponse])
    async def list_jobs(
        user_id: Optional[str] = Query(None),
        status: Optional[str] = Query(None),
        job_type: Optional[str] = Query(None),
        limit: int = Query(50, ge=1, le=1000),
        service: EmailQueueService = Depends(get_service),
        _: Dict[str, Any] = Depends(require_admin),
    ):
        try:
            jobs = await service.list_jobs(
                user_id=user_id, status=status, job_type=job_type, limit=limit
            )
        except Exception as e:
            logger.exception("Error listing jobs")
            raise HTTPException(status_code=500, detail="Internal server error") from e
        return [EmailJobResponse(**job.to_dict()) for job in jobs]

    return router
