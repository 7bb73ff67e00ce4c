"""Database store layer for subscription plans and the payment audit trail."""

import json
from datetime import datetime
from typing import Any, Optional

import asyncpg

from bizzin_jobs.models import PaymentStatus, PaymentTransaction, PlanType, UserPlan


def _rows_affected(result: str) -> int:
    return int(result.split()[-1]) if result else 0


class PlanStore:
    """Database layer for user_plans and payment_transactions."""

    def __init__(self, db_pool: asyncpg.Pool):
        self.db_pool = db_pool

    async def get_plan(self, user_id: str) -> Optional[UserPlan]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow("SELECT * FROM user_plans WHERE user_id = $1", user_id)

        return self._row_to_plan(row) if row else None

    async def start_grace(
        self, user_id: str, grace_period_end: datetime, now: datetime
    ) -> Optional[int]:
        """
        Put a premium plan into grace_period.

        Returns the incremented failed_payment_count, or None when no
        premium plan matched.
        """
        async with self.db_pool.acquire() as conn:
            return await conn.fetchval(
                """
                UPDATE user_plans
                SET payment_status = $1,
                    grace_period_end = $2,
                    failed_payment_count = COALESCE(failed_payment_count, 0) + 1,
                    updated_at = $3
                WHERE user_id = $4 AND plan_type = $5
                RETURNING failed_payment_count
                """,
                PaymentStatus.GRACE_PERIOD.value,
                grace_period_end,
                now,
                user_id,
                PlanType.PREMIUM.value,
            )

    async def list_expired_grace_periods(self, now: datetime) -> list[UserPlan]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM user_plans
                WHERE payment_status = $1 AND grace_period_end <= $2
                ORDER BY grace_period_end ASC
                """,
                PaymentStatus.GRACE_PERIOD.value,
                now,
            )

        return [self._row_to_plan(row) for row in rows]

    async def suspend_plan(self, user_id: str, now: datetime) -> bool:
        """
        Suspend a plan whose grace period has elapsed.

        The update is conditional on the plan still being in an expired
        grace period, so a payment that lands mid-sweep is not overwritten.
        """
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_plans
                SET payment_status = $1, grace_period_end = NULL, updated_at = $2
                WHERE user_id = $3
                  AND payment_status = $4
                  AND grace_period_end <= $2
                """,
                PaymentStatus.SUSPENDED.value,
                now,
                user_id,
                PaymentStatus.GRACE_PERIOD.value,
            )

        return _rows_affected(result) == 1

    async def restore_plan(self, user_id: str, now: datetime, next_payment_date: datetime) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_plans
                SET payment_status = $1,
                    failed_payment_count = 0,
                    grace_period_end = NULL,
                    last_payment_date = $2,
                    next_payment_date = $3,
                    updated_at = $2
                WHERE user_id = $4
                """,
                PaymentStatus.ACTIVE.value,
                now,
                next_payment_date,
                user_id,
            )

        return _rows_affected(result) == 1

    async def extend_grace(self, user_id: str, grace_period_end: datetime, now: datetime) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_plans
                SET payment_status = $1, grace_period_end = $2, updated_at = $3
                WHERE user_id = $4
                """,
                PaymentStatus.GRACE_PERIOD.value,
                grace_period_end,
                now,
                user_id,
            )

        return _rows_affected(result) == 1

    async def cancel_plan(self, user_id: str, now: datetime) -> bool:
        async with self.db_pool.acquire() as conn:
            result = await conn.execute(
                """
                UPDATE user_plans
                SET payment_status = $1,
                    cancelled_at = $2,
                    next_payment_date = NULL,
                    grace_period_end = NULL,
                    updated_at = $2
                WHERE user_id = $3
                """,
                PaymentStatus.CANCELLED.value,
                now,
                user_id,
            )

        return _rows_affected(result) == 1

    async def insert_transaction(self, txn: PaymentTransaction) -> None:
        """Append one audit row."""
        async with self.db_pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO payment_transactions (
                    user_id, transaction_id, amount, currency, status,
                    payment_method, paystack_reference, failure_reason,
                    metadata, idempotency_key
                ) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                """,
                txn.user_id,
                txn.transaction_id,
                txn.amount,
                txn.currency,
                txn.status.value,
                txn.payment_method,
                txn.paystack_reference,
                txn.failure_reason,
                json.dumps(txn.metadata),
                txn.idempotency_key,
            )

    async def get_transaction_by_idempotency_key(self, key: str) -> Optional[PaymentTransaction]:
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                "SELECT * FROM payment_transactions WHERE idempotency_key = $1", key
            )

        return self._row_to_transaction(row) if row else None

    async def count_grace_overview(self, now: datetime) -> dict[str, int]:
        """Counts of active and expired grace periods and suspended accounts."""
        async with self.db_pool.acquire() as conn:
            row = await conn.fetchrow(
                """
                SELECT
                  COUNT(*) FILTER (WHERE payment_status = 'grace_period' AND grace_period_end > $1)
                    AS active_grace_periods,
                  COUNT(*) FILTER (WHERE payment_status = 'grace_period' AND grace_period_end <= $1)
                    AS expired_grace_periods,
                  COUNT(*) FILTER (WHERE payment_status = 'suspended') AS suspended_accounts
                FROM user_plans
                """,
                now,
            )

        return {key: int(value or 0) for key, value in dict(row).items()}

    async def list_grace_period_details(self, limit: int = 20) -> list[UserPlan]:
        """Plans in grace_period, soonest-ending first."""
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                """
                SELECT * FROM user_plans
                WHERE payment_status = $1
                ORDER BY grace_period_end ASC
                LIMIT $2
                """,
                PaymentStatus.GRACE_PERIOD.value,
                limit,
            )

        return [self._row_to_plan(row) for row in rows]

    async def list_premium_plans(self) -> list[UserPlan]:
        async with self.db_pool.acquire() as conn:
            rows = await conn.fetch(
                "SELECT * FROM user_plans WHERE plan_type = $1", PlanType.PREMIUM.value
            )

        return [self._row_to_plan(row) for row in rows]

    async def is_admin(self, user_id: str) -> bool:
        async with self.db_pool.acquire() as conn:
            value = await conn.fetchval(
                "SELECT is_admin FROM user_profiles WHERE user_id = $1", user_id
            )

        return bool(value)

    def _row_to_plan(self, row: asyncpg.Record) -> UserPlan:
        return UserPlan(
            user_id=str(row["user_id"]),
            plan_type=row["plan_type"],
            payment_status=row["payment_status"],
            expires_at=row["expires_at"],
            failed_payment_count=row["failed_payment_count"],
            grace_period_end=row["grace_period_end"],
            last_payment_date=row["last_payment_date"],
            next_payment_date=row["next_payment_date"],
            cancelled_at=row["cancelled_at"],
            paystack_customer_code=row["paystack_customer_code"],
            paystack_subscription_code=row["paystack_subscription_code"],
            updated_at=row["updated_at"],
        )

    def _row_to_transaction(self, row: asyncpg.Record) -> PaymentTransaction:
        metadata: Any = row["metadata"]
        return PaymentTransaction(
            user_id=str(row["user_id"]),
            transaction_id=row["transaction_id"],
            amount=float(row["amount"]),
            currency=row["currency"],
            status=row["status"],
            payment_method=row["payment_method"],
            paystack_reference=row["paystack_reference"],
            failure_reason=row["failure_reason"],
            metadata=json.loads(metadata) if isinstance(metadata, str) else metadata,
            idempotency_key=row["idempotency_key"],
            created_at=row["created_at"],
        )
