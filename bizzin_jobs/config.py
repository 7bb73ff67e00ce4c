"""Configuration for the Bizzin email queue and grace period services."""

import os
from typing import Optional

DEVELOPMENT = "development"
PRODUCTION = "production"

# Concurrent jobs per poll cycle when not configured explicitly
DEFAULT_MAX_CONCURRENT_JOBS = {DEVELOPMENT: 2, PRODUCTION: 5}


class BizzinJobsConfig:
    """Configuration object for the Bizzin jobs services."""

    def __init__(
        self,
        db_dsn: str,
        environment: str = DEVELOPMENT,
        max_concurrent_jobs: Optional[int] = None,
        heartbeat_interval_seconds: int = 30,
        poll_interval_seconds: int = 120,
        reaper_interval_seconds: int = 300,
        stale_processing_timeout_seconds: int = 900,
        grace_period_days: int = 7,
        grace_sweep_interval_seconds: int = 3600,
        smtp_host: Optional[str] = None,
        smtp_port: int = 2525,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        mail_from: str = "notifications@bizzin.co.za",
        mail_from_name: str = "Bizzin Daily Insights",
        mail_dev: bool = False,
        base_url: str = "https://bizzin.co.za",
        auth_url: Optional[str] = None,
        auth_api_key: Optional[str] = None,
        currency: str = "ZAR",
    ):
        if environment not in DEFAULT_MAX_CONCURRENT_JOBS:
            raise ValueError(
                f"environment must be one of {sorted(DEFAULT_MAX_CONCURRENT_JOBS)}, "
                f"got {environment!r}"
            )

        self.db_dsn = db_dsn
        self.environment = environment
        if max_concurrent_jobs is None:
            max_concurrent_jobs = DEFAULT_MAX_CONCURRENT_JOBS[environment]
        if max_concurrent_jobs < 1:
            raise ValueError("max_concurrent_jobs must be at least 1")
        self.max_concurrent_jobs = max_concurrent_jobs
        self.heartbeat_interval_seconds = heartbeat_interval_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self.reaper_interval_seconds = reaper_interval_seconds
        self.stale_processing_timeout_seconds = stale_processing_timeout_seconds
        self.grace_period_days = grace_period_days
        self.grace_sweep_interval_seconds = grace_sweep_interval_seconds
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.mail_from = mail_from
        self.mail_from_name = mail_from_name
        self.mail_dev = mail_dev
        self.base_url = base_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/") if auth_url else None
        self.auth_api_key = auth_api_key
        self.currency = currency

    @property
    def is_production(self) -> bool:
        return self.environment == PRODUCTION

    @classmethod
    def from_env(cls) -> "BizzinJobsConfig":
        """Create config from environment variables."""
        db_dsn = os.getenv("BIZZIN_DB_DSN")
        if not db_dsn:
            raise ValueError("BIZZIN_DB_DSN environment variable is required")

        environment = os.getenv("BIZZIN_ENV", DEVELOPMENT).strip().lower()

        max_concurrent_str = os.getenv("BIZZIN_MAX_CONCURRENT_JOBS")
        max_concurrent_jobs = (
            _int_from_env("BIZZIN_MAX_CONCURRENT_JOBS", max_concurrent_str)
            if max_concurrent_str
            else None
        )

        return cls(
            db_dsn=db_dsn,
            environment=environment,
            max_concurrent_jobs=max_concurrent_jobs,
            heartbeat_interval_seconds=_int_from_env(
                "BIZZIN_HEARTBEAT_INTERVAL_SECONDS",
                os.getenv("BIZZIN_HEARTBEAT_INTERVAL_SECONDS", "30"),
            ),
            poll_interval_seconds=_int_from_env(
                "BIZZIN_POLL_INTERVAL_SECONDS",
                os.getenv("BIZZIN_POLL_INTERVAL_SECONDS", "120"),
            ),
            reaper_interval_seconds=_int_from_env(
                "BIZZIN_REAPER_INTERVAL_SECONDS",
                os.getenv("BIZZIN_REAPER_INTERVAL_SECONDS", "300"),
            ),
            stale_processing_timeout_seconds=_int_from_env(
                "BIZZIN_STALE_PROCESSING_TIMEOUT_SECONDS",
                os.getenv("BIZZIN_STALE_PROCESSING_TIMEOUT_SECONDS", "900"),
            ),
            grace_period_days=_int_from_env(
                "BIZZIN_GRACE_PERIOD_DAYS", os.getenv("BIZZIN_GRACE_PERIOD_DAYS", "7")
            ),
            grace_sweep_interval_seconds=_int_from_env(
                "BIZZIN_GRACE_SWEEP_INTERVAL_SECONDS",
                os.getenv("BIZZIN_GRACE_SWEEP_INTERVAL_SECONDS", "3600"),
            ),
            smtp_host=os.getenv("SMTP_HOST") or None,
            smtp_port=_int_from_env("SMTP_PORT", os.getenv("SMTP_PORT", "2525")),
            smtp_user=os.getenv("SMTP_USER") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            mail_from=os.getenv("BIZZIN_MAIL_FROM", "notifications@bizzin.co.za"),
            mail_from_name=os.getenv("BIZZIN_MAIL_FROM_NAME", "Bizzin Daily Insights"),
            mail_dev=_bool_from_env(os.getenv("BIZZIN_MAIL_DEV")),
            base_url=os.getenv("BIZZIN_BASE_URL", "https://bizzin.co.za"),
            auth_url=os.getenv("BIZZIN_AUTH_URL") or None,
            auth_api_key=os.getenv("BIZZIN_AUTH_API_KEY") or None,
            currency=os.getenv("BIZZIN_CURRENCY", "ZAR"),
        )


def _int_from_env(name: str, value: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid integer in {name}: {value!r}") from e


def _bool_from_env(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in {"1", "true", "yes", "on"}
