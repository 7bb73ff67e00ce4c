"""Database schema DDL for the email queue and plan tables."""

EMAIL_QUEUE_DDL = """
CREATE TABLE IF NOT EXISTS email_queue_jobs (
  id               UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  job_type         TEXT NOT NULL CHECK (job_type IN ('daily_digest', 'goal_reminder', 'milestone_alert')),
  user_id          UUID NOT NULL,
  user_email       TEXT NOT NULL,

  status           TEXT NOT NULL DEFAULT 'pending'
                   CHECK (status IN ('pending', 'processing', 'completed', 'failed', 'retrying')),
  priority         INT NOT NULL DEFAULT 5 CHECK (priority >= 1 AND priority <= 10),
  scheduled_for    TIMESTAMPTZ NOT NULL DEFAULT now(),

  created_at       TIMESTAMPTZ NOT NULL DEFAULT now(),
  started_at       TIMESTAMPTZ,
  completed_at     TIMESTAMPTZ,
  failed_at        TIMESTAMPTZ,

  retry_count      INT NOT NULL DEFAULT 0,
  max_retries      INT NOT NULL DEFAULT 3,
  error_message    TEXT,
  job_data         JSONB NOT NULL DEFAULT '{}',
  worker_id        TEXT,
  processing_time  INT
);

CREATE INDEX IF NOT EXISTS idx_email_queue_jobs_claimable
ON email_queue_jobs (priority DESC, scheduled_for ASC)
WHERE status IN ('pending', 'retrying');

CREATE INDEX IF NOT EXISTS idx_email_queue_jobs_user_id
ON email_queue_jobs (user_id);

CREATE INDEX IF NOT EXISTS idx_email_queue_jobs_worker_id
ON email_queue_jobs (worker_id);

-- Index for the stale processing reaper
CREATE INDEX IF NOT EXISTS idx_email_queue_jobs_processing_started
ON email_queue_jobs (started_at)
WHERE status = 'processing';

CREATE TABLE IF NOT EXISTS email_worker_status (
  worker_id             TEXT PRIMARY KEY,
  status                TEXT NOT NULL DEFAULT 'active' CHECK (status IN ('active', 'idle', 'stopped')),
  jobs_processed_today  INT NOT NULL DEFAULT 0,
  last_heartbeat        TIMESTAMPTZ NOT NULL DEFAULT now(),
  error_count           INT NOT NULL DEFAULT 0,
  uptime_start          TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_email_worker_status_last_heartbeat
ON email_worker_status (last_heartbeat);

CREATE TABLE IF NOT EXISTS email_analytics (
  id                UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id           UUID NOT NULL,
  email_type        TEXT NOT NULL CHECK (email_type IN ('daily_digest', 'goal_reminder', 'milestone_alert')),
  sent_at           TIMESTAMPTZ NOT NULL,
  engagement_score  INT NOT NULL DEFAULT 0,
  created_at        TIMESTAMPTZ NOT NULL DEFAULT now()
);
"""

DAILY_EMAIL_DDL = """
CREATE TABLE IF NOT EXISTS daily_email_settings (
  id          UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id     UUID NOT NULL UNIQUE,
  enabled     BOOLEAN NOT NULL DEFAULT FALSE,
  send_time   TEXT NOT NULL DEFAULT '09:00',
  timezone    TEXT NOT NULL DEFAULT 'UTC',
  created_at  TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at  TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE TABLE IF NOT EXISTS daily_email_content (
  id                    UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id               UUID NOT NULL,
  email_date            DATE NOT NULL,
  journal_prompt        TEXT NOT NULL,
  goal_summary          TEXT NOT NULL,
  business_insights     TEXT NOT NULL,
  sentiment_trend       TEXT NOT NULL,
  milestone_reminders   TEXT NOT NULL,
  personalization_data  JSONB NOT NULL DEFAULT '{}',
  sent_at               TIMESTAMPTZ,
  created_at            TIMESTAMPTZ NOT NULL DEFAULT now(),

  UNIQUE (user_id, email_date)
);
"""

PLAN_DDL = """
CREATE TABLE IF NOT EXISTS user_plans (
  user_id                     UUID PRIMARY KEY,
  plan_type                   TEXT NOT NULL DEFAULT 'trial' CHECK (plan_type IN ('free', 'premium', 'trial')),
  payment_status              TEXT NOT NULL DEFAULT 'active'
                              CHECK (payment_status IN ('active', 'pending', 'failed', 'cancelled', 'suspended', 'grace_period')),
  expires_at                  TIMESTAMPTZ,
  failed_payment_count        INT NOT NULL DEFAULT 0,
  grace_period_end            TIMESTAMPTZ,
  last_payment_date           TIMESTAMPTZ,
  next_payment_date           TIMESTAMPTZ,
  cancelled_at                TIMESTAMPTZ,
  paystack_customer_code      TEXT,
  paystack_subscription_code  TEXT,
  created_at                  TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at                  TIMESTAMPTZ NOT NULL DEFAULT now(),

  CHECK ((payment_status = 'grace_period') = (grace_period_end IS NOT NULL))
);

CREATE INDEX IF NOT EXISTS idx_user_plans_grace_period_end
ON user_plans (grace_period_end)
WHERE payment_status = 'grace_period';

CREATE TABLE IF NOT EXISTS payment_transactions (
  id                  UUID PRIMARY KEY DEFAULT gen_random_uuid(),
  user_id             UUID NOT NULL,
  transaction_id      TEXT NOT NULL UNIQUE,
  amount              NUMERIC(10, 2) NOT NULL,
  currency            TEXT NOT NULL DEFAULT 'ZAR',
  status              TEXT NOT NULL DEFAULT 'pending' CHECK (status IN ('pending', 'success', 'failed', 'cancelled')),
  payment_method      TEXT NOT NULL DEFAULT 'paystack',
  paystack_reference  TEXT,
  failure_reason      TEXT,
  metadata            JSONB,
  idempotency_key     TEXT UNIQUE,
  created_at          TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at          TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_payment_transactions_user_id
ON payment_transactions (user_id);
"""

ALL_DDL = EMAIL_QUEUE_DDL + DAILY_EMAIL_DDL + PLAN_DDL
