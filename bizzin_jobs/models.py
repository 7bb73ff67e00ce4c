"""Data models for email jobs, worker status and subscription plans."""

import re
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def _isoformat(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class EmailJobType(str, Enum):
    """Kinds of email a job can send."""

    DAILY_DIGEST = "daily_digest"
    GOAL_REMINDER = "goal_reminder"
    MILESTONE_ALERT = "milestone_alert"


class EmailJobStatus(str, Enum):
    """Email job status values."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


# Statuses a poll cycle may claim once scheduled_for has passed
CLAIMABLE_STATUSES = (EmailJobStatus.PENDING, EmailJobStatus.RETRYING)


class WorkerState(str, Enum):
    """Worker heartbeat status values."""

    ACTIVE = "active"
    IDLE = "idle"
    STOPPED = "stopped"


class PlanType(str, Enum):
    FREE = "free"
    PREMIUM = "premium"
    TRIAL = "trial"


class PaymentStatus(str, Enum):
    """Subscription payment status values."""

    ACTIVE = "active"
    PENDING = "pending"
    FAILED = "failed"
    CANCELLED = "cancelled"
    SUSPENDED = "suspended"
    GRACE_PERIOD = "grace_period"


class TransactionStatus(str, Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class EmailJob:
    """Represents an email_queue_jobs record."""

    def __init__(
        self,
        id: UUID,
        job_type: str,
        user_id: str,
        user_email: str,
        status: EmailJobStatus,
        priority: int,
        scheduled_for: datetime,
        retry_count: int = 0,
        max_retries: int = 3,
        error_message: Optional[str] = None,
        job_data: Optional[Dict[str, Any]] = None,
        worker_id: Optional[str] = None,
        processing_time: Optional[int] = None,
        created_at: Optional[datetime] = None,
        started_at: Optional[datetime] = None,
        completed_at: Optional[datetime] = None,
        failed_at: Optional[datetime] = None,
    ):
        self.id = id
        # Unknown types are kept as raw strings so the worker can reject them
        self.job_type = job_type
        self.user_id = user_id
        self.user_email = user_email
        self.status = EmailJobStatus(status) if isinstance(status, str) else status
        self.priority = priority
        self.scheduled_for = scheduled_for
        self.retry_count = retry_count
        self.max_retries = max_retries
        self.error_message = error_message
        self.job_data = job_data or {}
        self.worker_id = worker_id
        self.processing_time = processing_time
        self.created_at = created_at
        self.started_at = started_at
        self.completed_at = completed_at
        self.failed_at = failed_at

    def to_dict(self) -> Dict[str, Any]:
        """Convert job to dictionary for JSON serialization."""
        return {
            "id": str(self.id),
            "job_type": self.job_type,
            "user_id": str(self.user_id),
            "user_email": self.user_email,
            "status": self.status.value,
            "priority": self.priority,
            "scheduled_for": _isoformat(self.scheduled_for),
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "error_message": self.error_message,
            "job_data": self.job_data,
            "worker_id": self.worker_id,
            "processing_time": self.processing_time,
            "created_at": _isoformat(self.created_at),
            "started_at": _isoformat(self.started_at),
            "completed_at": _isoformat(self.completed_at),
            "failed_at": _isoformat(self.failed_at),
        }


class UserPlan:
    """Represents a user_plans record."""

    def __init__(
        self,
        user_id: str,
        plan_type: PlanType,
        payment_status: PaymentStatus,
        expires_at: Optional[datetime] = None,
        failed_payment_count: int = 0,
        grace_period_end: Optional[datetime] = None,
        last_payment_date: Optional[datetime] = None,
        next_payment_date: Optional[datetime] = None,
        cancelled_at: Optional[datetime] = None,
        paystack_customer_code: Optional[str] = None,
        paystack_subscription_code: Optional[str] = None,
        updated_at: Optional[datetime] = None,
    ):
        self.user_id = user_id
        self.plan_type = PlanType(plan_type) if isinstance(plan_type, str) else plan_type
        self.payment_status = (
            PaymentStatus(payment_status)
            if isinstance(payment_status, str)
            else payment_status
        )
        self.expires_at = expires_at
        self.failed_payment_count = failed_payment_count or 0
        self.grace_period_end = grace_period_end
        self.last_payment_date = last_payment_date
        self.next_payment_date = next_payment_date
        self.cancelled_at = cancelled_at
        self.paystack_customer_code = paystack_customer_code
        self.paystack_subscription_code = paystack_subscription_code
        self.updated_at = updated_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "plan_type": self.plan_type.value,
            "payment_status": self.payment_status.value,
            "expires_at": _isoformat(self.expires_at),
            "failed_payment_count": self.failed_payment_count,
            "grace_period_end": _isoformat(self.grace_period_end),
            "last_payment_date": _isoformat(self.last_payment_date),
            "next_payment_date": _isoformat(self.next_payment_date),
            "cancelled_at": _isoformat(self.cancelled_at),
            "paystack_customer_code": self.paystack_customer_code,
            "paystack_subscription_code": self.paystack_subscription_code,
        }


class PaymentTransaction:
    """Represents an append-only payment_transactions audit row."""

    def __init__(
        self,
        user_id: str,
        transaction_id: str,
        amount: float,
        currency: str,
        status: TransactionStatus,
        payment_method: str = "paystack",
        paystack_reference: Optional[str] = None,
        failure_reason: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ):
        self.user_id = user_id
        self.transaction_id = transaction_id
        self.amount = amount
        self.currency = currency
        self.status = TransactionStatus(status) if isinstance(status, str) else status
        self.payment_method = payment_method
        self.paystack_reference = paystack_reference
        self.failure_reason = failure_reason
        self.metadata = metadata or {}
        self.idempotency_key = idempotency_key
        self.created_at = created_at

    @property
    def type(self) -> Optional[str]:
        return self.metadata.get("type")


class EmailJobSpec(BaseModel):
    """Validated specification for enqueueing one email job."""

    job_type: EmailJobType
    user_id: str
    user_email: str
    priority: int = Field(default=5, ge=1, le=10)
    scheduled_for: Optional[datetime] = None
    max_retries: int = Field(default=3, ge=0, le=5)
    job_data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_email")
    @classmethod
    def _check_email(cls, value: str) -> str:
        value = value.strip()
        if not _EMAIL_RE.match(value):
            raise ValueError(f"Invalid email address: {value!r}")
        return value

    @field_validator("user_id")
    @classmethod
    def _check_user_id(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("user_id must not be empty")
        return value.strip()
