"""Payment grace period lifecycle for premium subscriptions."""

import logging
import math
from datetime import datetime, timedelta
from typing import Callable, Optional

import asyncpg
from pydantic import BaseModel, Field

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.models import (
    PaymentStatus,
    PaymentTransaction,
    PlanType,
    TransactionStatus,
    UserPlan,
    utcnow,
)
from bizzin_jobs.plan_store import PlanStore

BILLING_CYCLE = timedelta(days=30)
OVERVIEW_DETAIL_LIMIT = 20

PAYMENT_FAILED = "payment_failed"
PAYMENT_SUCCEEDED = "payment_succeeded"
SUBSCRIPTION_DISABLED = "subscription_disabled"


class GracePeriodResult(BaseModel):
    success: bool
    message: str
    grace_period_end: Optional[datetime] = None
    failed_payment_count: Optional[int] = None


class SweepError(BaseModel):
    user_id: str
    error: str


class SweepResult(BaseModel):
    success: bool
    processed: int = 0
    suspended: int = 0
    errors: list[SweepError] = Field(default_factory=list)


class GracePeriodStatus(BaseModel):
    is_in_grace_period: bool
    payment_status: Optional[str] = None
    grace_period_end: Optional[datetime] = None
    days_remaining: int = 0
    failed_payment_count: int = 0


class GracePeriodDetail(BaseModel):
    user_id: str
    status: str
    grace_period_end: Optional[datetime] = None
    days_remaining: int = 0
    failed_payment_count: int = 0


class GracePeriodOverview(BaseModel):
    active_grace_periods: int
    expired_grace_periods: int
    suspended_accounts: int
    total_affected: int
    grace_period_details: list[GracePeriodDetail]
    timestamp: datetime


class HealthIssue(BaseModel):
    user_id: str
    status: str
    issue: str
    action_needed: str


class SubscriptionHealth(BaseModel):
    healthy: int = 0
    grace_period: int = 0
    suspended: int = 0
    failed_payments: int = 0
    total: int = 0
    details: list[HealthIssue] = Field(default_factory=list)


def days_remaining(grace_period_end: Optional[datetime], now: datetime) -> int:
    """Whole days left in a grace period, rounded up and floored at 0."""
    if grace_period_end is None:
        return 0
    return max(0, math.ceil((grace_period_end - now).total_seconds() / 86400))


class GracePeriodManager:
    """
    Moves premium plans through active, grace_period and suspended.

    Write operations return a result object rather than raising. Audit
    rows in payment_transactions are best effort: a failed audit insert
    is logged and does not fail the state change.
    """

    def __init__(
        self,
        config: BizzinJobsConfig,
        db_pool: asyncpg.Pool,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.store = PlanStore(db_pool)
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock

    def _transaction_id(self, prefix: str, user_id: str, now: datetime) -> str:
        return f"{prefix}_{int(now.timestamp() * 1000)}_{user_id[:8]}"

    async def _record(self, txn: PaymentTransaction) -> bool:
        try:
            await self.store.insert_transaction(txn)
            return True
        except Exception as e:
            self.logger.warning(
                f"Failed to record {txn.type} audit row for user {txn.user_id}: {e}"
            )
            return False

    async def start_grace_period(
        self,
        user_id: str,
        failure_reason: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> GracePeriodResult:
        """
        Start a grace period after a failed payment.

        Only premium plans qualify. When ``idempotency_key`` is given and an
        audit row already carries it, nothing changes and the call succeeds.
        """
        now = self.clock()
        self.logger.info(f"Starting grace period for user {user_id}")

        try:
            if idempotency_key:
                existing = await self.store.get_transaction_by_idempotency_key(idempotency_key)
                if existing is not None:
                    self.logger.info(
                        f"Grace period for event {idempotency_key} already recorded, skipping"
                    )
                    return GracePeriodResult(
                        success=True,
                        message="Grace period already started for this event",
                        grace_period_end=existing.metadata.get("grace_period_end"),
                        failed_payment_count=existing.metadata.get("failed_payment_count"),
                    )

            plan = await self.store.get_plan(user_id)
            if plan is None:
                return GracePeriodResult(success=False, message="User plan not found")
            if plan.plan_type != PlanType.PREMIUM:
                return GracePeriodResult(
                    success=False,
                    message="Grace periods only apply to premium subscriptions",
                )

            grace_period_end = now + timedelta(days=self.config.grace_period_days)
            failed_count = await self.store.start_grace(user_id, grace_period_end, now)
            if failed_count is None:
                return GracePeriodResult(success=False, message="Failed to update plan")
        except Exception as e:
            self.logger.error(f"Error starting grace period for {user_id}: {e}", exc_info=True)
            return GracePeriodResult(
                success=False, message=f"Failed to start grace period: {e}"
            )

        await self._record(
            PaymentTransaction(
                user_id=user_id,
                transaction_id=self._transaction_id("grace_start", user_id, now),
                amount=0,
                currency=self.config.currency,
                status=TransactionStatus.FAILED,
                failure_reason=failure_reason or "Payment failed - grace period started",
                metadata={
                    "type": "grace_period_start",
                    "grace_period_end": grace_period_end.isoformat(),
                    "failed_payment_count": failed_count,
                },
                idempotency_key=idempotency_key,
            )
        )

        self.logger.info(
            f"Grace period started for user {user_id}, expires {grace_period_end.isoformat()}"
        )
        return GracePeriodResult(
            success=True,
            message="Grace period started successfully",
            grace_period_end=grace_period_end,
            failed_payment_count=failed_count,
        )

    async def process_expired_grace_periods(self) -> SweepResult:
        """Suspend every plan whose grace period has ended."""
        now = self.clock()

        try:
            expired = await self.store.list_expired_grace_periods(now)
        except Exception as e:
            self.logger.error(f"Failed to query expired grace periods: {e}", exc_info=True)
            return SweepResult(success=False, errors=[SweepError(user_id="query", error=str(e))])

        if not expired:
            self.logger.info("No expired grace periods found")
            return SweepResult(success=True)

        self.logger.info(f"Found {len(expired)} expired grace periods to process")
        result = SweepResult(success=True)

        for plan in expired:
            result.processed += 1
            try:
                suspended = await self._suspend(plan, now)
            except Exception as e:
                self.logger.error(f"Failed to suspend user {plan.user_id}: {e}", exc_info=True)
                result.errors.append(
                    SweepError(user_id=plan.user_id, error=f"Processing failed: {e}")
                )
                continue

            if suspended:
                result.suspended += 1

        result.success = not result.errors
        self.logger.info(
            f"Grace period sweep complete: {result.suspended} suspended, "
            f"{len(result.errors)} errors"
        )
        return result

    async def _suspend(self, plan: UserPlan, now: datetime) -> bool:
        if not await self.store.suspend_plan(plan.user_id, now):
            # plan changed state since the query, e.g. a payment landed
            self.logger.info(f"User {plan.user_id} no longer in expired grace period, skipping")
            return False

        await self._record(
            PaymentTransaction(
                user_id=plan.user_id,
                transaction_id=self._transaction_id("suspend", plan.user_id, now),
                amount=0,
                currency=self.config.currency,
                status=TransactionStatus.CANCELLED,
                failure_reason="Grace period expired - account suspended",
                metadata={
                    "type": "account_suspension",
                    "grace_period_expired": plan.grace_period_end.isoformat()
                    if plan.grace_period_end
                    else None,
                    "failed_payment_count": plan.failed_payment_count,
                    "suspension_date": now.isoformat(),
                },
            )
        )
        self.logger.warning(f"Suspended account for user {plan.user_id} (grace period expired)")
        return True

    async def restore_from_suspension(self, user_id: str) -> GracePeriodResult:
        """
        Return a plan to active after a successful payment or admin action.

        Works from any prior status. Only a missing plan fails.
        """
        now = self.clock()

        try:
            plan = await self.store.get_plan(user_id)
            if plan is None:
                return GracePeriodResult(success=False, message="User plan not found")
            previous_status = plan.payment_status

            restored = await self.store.restore_plan(user_id, now, now + BILLING_CYCLE)
            if not restored:
                return GracePeriodResult(success=False, message="Failed to update plan")
        except Exception as e:
            self.logger.error(f"Error restoring user {user_id}: {e}", exc_info=True)
            return GracePeriodResult(success=False, message=f"Failed to restore account: {e}")

        was_suspended = previous_status == PaymentStatus.SUSPENDED
        await self._record(
            PaymentTransaction(
                user_id=user_id,
                transaction_id=self._transaction_id("restore", user_id, now),
                amount=0,
                currency=self.config.currency,
                status=TransactionStatus.SUCCESS,
                metadata={
                    "type": "account_restoration" if was_suspended else "account_reactivation",
                    "restored_from": previous_status.value,
                    "restoration_date": now.isoformat(),
                },
            )
        )

        self.logger.info(f"User {user_id} restored from {previous_status.value}")
        return GracePeriodResult(
            success=True, message="Account restored successfully", failed_payment_count=0
        )

    async def extend_grace_period(self, user_id: str, additional_days: int) -> GracePeriodResult:
        """Push a grace period end out by whole days (admin action)."""
        if additional_days <= 0:
            return GracePeriodResult(success=False, message="additional_days must be positive")

        now = self.clock()
        try:
            plan = await self.store.get_plan(user_id)
            if plan is None:
                return GracePeriodResult(success=False, message="User plan not found")

            new_end = (plan.grace_period_end or now) + timedelta(days=additional_days)
            if not await self.store.extend_grace(user_id, new_end, now):
                return GracePeriodResult(success=False, message="Failed to update plan")
        except Exception as e:
            self.logger.error(f"Error extending grace period for {user_id}: {e}", exc_info=True)
            return GracePeriodResult(
                success=False, message=f"Failed to extend grace period: {e}"
            )

        self.logger.info(f"Grace period for user {user_id} extended until {new_end.isoformat()}")
        return GracePeriodResult(
            success=True,
            message=f"Grace period extended by {additional_days} days",
            grace_period_end=new_end,
            failed_payment_count=plan.failed_payment_count,
        )

    async def cancel_subscription(
        self, user_id: str, reason: Optional[str] = None
    ) -> GracePeriodResult:
        now = self.clock()
        try:
            plan = await self.store.get_plan(user_id)
            if plan is None:
                return GracePeriodResult(success=False, message="User plan not found")
            previous_status = plan.payment_status
            if not await self.store.cancel_plan(user_id, now):
                return GracePeriodResult(success=False, message="Failed to update plan")
        except Exception as e:
            self.logger.error(f"Error cancelling subscription for {user_id}: {e}", exc_info=True)
            return GracePeriodResult(
                success=False, message=f"Failed to cancel subscription: {e}"
            )

        await self._record(
            PaymentTransaction(
                user_id=user_id,
                transaction_id=self._transaction_id("cancel", user_id, now),
                amount=0,
                currency=self.config.currency,
                status=TransactionStatus.CANCELLED,
                failure_reason=reason or "Subscription cancelled",
                paystack_reference=plan.paystack_subscription_code,
                metadata={
                    "type": "subscription_cancellation",
                    "previous_status": previous_status.value,
                    "cancelled_at": now.isoformat(),
                },
            )
        )

        self.logger.info(f"Subscription cancelled for user {user_id}")
        return GracePeriodResult(success=True, message="Subscription cancelled")

    async def handle_payment_event(
        self,
        event_type: str,
        user_id: str,
        event_id: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> GracePeriodResult:
        """
        Apply a payment processor outcome to the user's plan.

        The event id doubles as the idempotency key for payment failures so
        redelivered webhooks do not extend the grace window.
        """
        if event_type == PAYMENT_FAILED:
            return await self.start_grace_period(user_id, reason, idempotency_key=event_id)
        if event_type == PAYMENT_SUCCEEDED:
            return await self.restore_from_suspension(user_id)
        if event_type == SUBSCRIPTION_DISABLED:
            return await self.cancel_subscription(user_id, reason)

        self.logger.warning(f"Ignoring unsupported payment event {event_type} for {user_id}")
        return GracePeriodResult(success=False, message=f"Unsupported payment event: {event_type}")

    async def get_grace_period_status(self, user_id: str) -> GracePeriodStatus:
        now = self.clock()
        plan = await self.store.get_plan(user_id)
        if plan is None:
            return GracePeriodStatus(is_in_grace_period=False)

        in_grace = (
            plan.payment_status == PaymentStatus.GRACE_PERIOD
            and plan.grace_period_end is not None
            and plan.grace_period_end > now
        )
        return GracePeriodStatus(
            is_in_grace_period=in_grace,
            payment_status=plan.payment_status.value,
            grace_period_end=plan.grace_period_end,
            days_remaining=days_remaining(plan.grace_period_end, now),
            failed_payment_count=plan.failed_payment_count,
        )

    async def get_overview(self) -> GracePeriodOverview:
        """Admin dashboard counts plus the soonest-ending grace periods."""
        now = self.clock()
        counts = await self.store.count_grace_overview(now)
        plans = await self.store.list_grace_period_details(OVERVIEW_DETAIL_LIMIT)

        return GracePeriodOverview(
            active_grace_periods=counts["active_grace_periods"],
            expired_grace_periods=counts["expired_grace_periods"],
            suspended_accounts=counts["suspended_accounts"],
            total_affected=sum(counts.values()),
            grace_period_details=[
                GracePeriodDetail(
                    user_id=plan.user_id,
                    status=plan.payment_status.value,
                    grace_period_end=plan.grace_period_end,
                    days_remaining=days_remaining(plan.grace_period_end, now),
                    failed_payment_count=plan.failed_payment_count,
                )
                for plan in plans
            ],
            timestamp=now,
        )

    async def check_subscription_health(self) -> SubscriptionHealth:
        """Classify every premium plan and list the ones needing attention."""
        now = self.clock()
        health = SubscriptionHealth()

        for plan in await self.store.list_premium_plans():
            issue = None
            action = None
            status = plan.payment_status

            if status == PaymentStatus.ACTIVE:
                if plan.next_payment_date and plan.next_payment_date < now:
                    issue, action = "Payment overdue", "Trigger manual payment check"
                    health.failed_payments += 1
                else:
                    health.healthy += 1
            elif status == PaymentStatus.GRACE_PERIOD:
                if plan.grace_period_end and plan.grace_period_end < now:
                    issue, action = "Grace period expired", "Suspend account"
                else:
                    issue, action = "In grace period", "Monitor and retry payment"
                health.grace_period += 1
            elif status == PaymentStatus.SUSPENDED:
                issue, action = "Account suspended", "User needs to update payment method"
                health.suspended += 1
            elif status == PaymentStatus.FAILED:
                issue = f"{plan.failed_payment_count} failed payments"
                action = "Retry payment or enter grace period"
                health.failed_payments += 1
            else:
                health.healthy += 1

            if issue:
                health.details.append(
                    HealthIssue(
                        user_id=plan.user_id, status=status.value, issue=issue, action_needed=action
                    )
                )

        health.total = (
            health.healthy + health.grace_period + health.suspended + health.failed_payments
        )
        return health
