"""Unit tests for errors module."""

from bizzin_jobs.errors import (
    AuthTokenError,
    BizzinJobsError,
    JobNotFoundError,
    MailDeliveryError,
    RemoteHttpError,
)


def test_bizzin_jobs_error_base_class():
    """Test base exception class."""
    error = BizzinJobsError("Test error")
    assert str(error) == "Test error"
    assert isinstance(error, Exception)


def test_job_not_found_error():
    error = JobNotFoundError("abc123")
    assert isinstance(error, BizzinJobsError)
    assert error.job_id == "abc123"
    assert str(error) == "Email job abc123 not found"


def test_mail_delivery_error():
    error = MailDeliveryError("a@example.com", "SMTP down")
    assert error.recipient == "a@example.com"
    assert str(error) == "SMTP down"
    assert "a@example.com" in str(MailDeliveryError("a@example.com"))


def test_auth_token_error():
    error = AuthTokenError("Invalid token")
    assert isinstance(error, BizzinJobsError)


def test_remote_http_error():
    """Test RemoteHttpError."""
    error = RemoteHttpError(status_code=500, message="Server error", response_body="Error")
    assert isinstance(error, BizzinJobsError)
    assert error.status_code == 500
    assert error.response_body == "Error"
    assert str(error) == "HTTP 500: Server error"
