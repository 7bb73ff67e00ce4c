"""Unit tests for configuration module."""

import pytest

from bizzin_jobs.config import BizzinJobsConfig


def test_config_from_env_minimal(monkeypatch):
    """Test creating config from minimal environment variables."""
    monkeypatch.setenv("BIZZIN_DB_DSN", "postgresql://localhost/test")
    monkeypatch.delenv("BIZZIN_ENV", raising=False)
    monkeypatch.delenv("BIZZIN_MAX_CONCURRENT_JOBS", raising=False)
    monkeypatch.delenv("SMTP_HOST", raising=False)

    config = BizzinJobsConfig.from_env()

    assert config.db_dsn == "postgresql://localhost/test"
    assert config.environment == "development"
    assert config.max_concurrent_jobs == 2
    assert config.heartbeat_interval_seconds == 30
    assert config.poll_interval_seconds == 120
    assert config.grace_period_days == 7
    assert config.smtp_host is None
    assert not config.is_production


def test_config_production_defaults(monkeypatch):
    monkeypatch.setenv("BIZZIN_DB_DSN", "postgresql://localhost/test")
    monkeypatch.setenv("BIZZIN_ENV", "Production")
    monkeypatch.delenv("BIZZIN_MAX_CONCURRENT_JOBS", raising=False)

    config = BizzinJobsConfig.from_env()

    assert config.is_production
    assert config.max_concurrent_jobs == 5


def test_config_from_env_with_overrides(monkeypatch):
    """Test creating config with explicit environment variables."""
    monkeypatch.setenv("BIZZIN_DB_DSN", "postgresql://localhost/test")
    monkeypatch.setenv("BIZZIN_MAX_CONCURRENT_JOBS", "8")
    monkeypatch.setenv("BIZZIN_GRACE_PERIOD_DAYS", "10")
    monkeypatch.setenv("SMTP_HOST", "smtp.example.com")
    monkeypatch.setenv("SMTP_PORT", "587")
    monkeypatch.setenv("BIZZIN_MAIL_DEV", "yes")
    monkeypatch.setenv("BIZZIN_AUTH_URL", "https://auth.example.com/")

    config = BizzinJobsConfig.from_env()

    assert config.max_concurrent_jobs == 8
    assert config.grace_period_days == 10
    assert config.smtp_host == "smtp.example.com"
    assert config.smtp_port == 587
    assert config.mail_dev is True
    assert config.auth_url == "https://auth.example.com"


def test_config_from_env_missing_dsn(monkeypatch):
    """Test that missing DSN raises error."""
    monkeypatch.delenv("BIZZIN_DB_DSN", raising=False)

    with pytest.raises(ValueError, match="BIZZIN_DB_DSN"):
        BizzinJobsConfig.from_env()


def test_config_rejects_bad_integer(monkeypatch):
    monkeypatch.setenv("BIZZIN_DB_DSN", "postgresql://localhost/test")
    monkeypatch.setenv("BIZZIN_POLL_INTERVAL_SECONDS", "soon")

    with pytest.raises(ValueError, match="BIZZIN_POLL_INTERVAL_SECONDS"):
        BizzinJobsConfig.from_env()


def test_config_rejects_unknown_environment():
    with pytest.raises(ValueError):
        BizzinJobsConfig(db_dsn="postgresql://localhost/test", environment="staging")


def test_config_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        BizzinJobsConfig(db_dsn="postgresql://localhost/test", max_concurrent_jobs=0)
