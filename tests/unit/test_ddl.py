"""Unit tests for DDL module."""

from bizzin_jobs.ddl import ALL_DDL, DAILY_EMAIL_DDL, EMAIL_QUEUE_DDL, PLAN_DDL


def test_email_queue_ddl_contains_tables():
    """Test that DDL contains the queue, worker status and analytics tables."""
    assert "CREATE TABLE IF NOT EXISTS email_queue_jobs" in EMAIL_QUEUE_DDL
    assert "CREATE TABLE IF NOT EXISTS email_worker_status" in EMAIL_QUEUE_DDL
    assert "CREATE TABLE IF NOT EXISTS email_analytics" in EMAIL_QUEUE_DDL


def test_email_queue_ddl_contains_required_columns():
    """Test that DDL contains all required job columns."""
    required_columns = [
        "job_type",
        "user_id",
        "user_email",
        "status",
        "priority",
        "scheduled_for",
        "retry_count",
        "max_retries",
        "error_message",
        "job_data",
        "worker_id",
        "processing_time",
        "started_at",
        "completed_at",
        "failed_at",
    ]

    for column in required_columns:
        assert column in EMAIL_QUEUE_DDL, f"Column {column} not found in DDL"


def test_email_queue_ddl_constrains_values():
    assert "'daily_digest', 'goal_reminder', 'milestone_alert'" in EMAIL_QUEUE_DDL
    assert "'pending', 'processing', 'completed', 'failed', 'retrying'" in EMAIL_QUEUE_DDL
    assert "priority >= 1 AND priority <= 10" in EMAIL_QUEUE_DDL


def test_daily_email_ddl_is_unique_per_user_and_date():
    assert "CREATE TABLE IF NOT EXISTS daily_email_settings" in DAILY_EMAIL_DDL
    assert "UNIQUE (user_id, email_date)" in DAILY_EMAIL_DDL


def test_plan_ddl_ties_grace_end_to_status():
    assert "CREATE TABLE IF NOT EXISTS user_plans" in PLAN_DDL
    assert "CREATE TABLE IF NOT EXISTS payment_transactions" in PLAN_DDL
    assert "(payment_status = 'grace_period') = (grace_period_end IS NOT NULL)" in PLAN_DDL
    assert "idempotency_key     TEXT UNIQUE" in PLAN_DDL


def test_all_ddl_combines_everything():
    assert ALL_DDL == EMAIL_QUEUE_DDL + DAILY_EMAIL_DDL + PLAN_DDL
