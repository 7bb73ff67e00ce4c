"""Unit tests for the SMTP mailer."""

import smtplib
from unittest.mock import MagicMock, patch

import pytest

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.errors import MailDeliveryError
from bizzin_jobs.mailer import SmtpMailer


@pytest.fixture
def smtp_config():
    return BizzinJobsConfig(
        db_dsn="postgresql://localhost/test",
        smtp_host="smtp.example.com",
        smtp_port=2525,
        smtp_user="mailer",
        smtp_password="secret",
    )


def test_dev_mode(config, smtp_config):
    assert SmtpMailer(config).dev_mode
    assert not SmtpMailer(smtp_config).dev_mode
    assert SmtpMailer(BizzinJobsConfig(db_dsn="postgresql://localhost/test")).dev_mode


def test_build_message_is_multipart(smtp_config):
    msg = SmtpMailer(smtp_config).build_message(
        "founder@example.com", "Hello", "<p>Hi</p>", "Hi"
    )

    assert msg["To"] == "founder@example.com"
    assert msg["From"] == "Bizzin Daily Insights <notifications@bizzin.co.za>"
    assert msg.is_multipart()
    assert msg.get_body(preferencelist=("plain",)).get_content().strip() == "Hi"
    assert "<p>Hi</p>" in msg.get_body(preferencelist=("html",)).get_content()


@pytest.mark.asyncio
async def test_dev_mode_logs_instead_of_sending(config):
    logger = MagicMock()
    mailer = SmtpMailer(config, logger)

    with patch("bizzin_jobs.mailer.smtplib.SMTP") as smtp_cls:
        await mailer.send("founder@example.com", "Hello", "<p>Hi</p>", "Hi")

    smtp_cls.assert_not_called()
    assert "founder@example.com" in logger.info.call_args[0][0]


@pytest.mark.asyncio
async def test_empty_recipient_rejected(config):
    with pytest.raises(MailDeliveryError):
        await SmtpMailer(config).send("", "Hello", "<p>Hi</p>", "Hi")


@pytest.mark.asyncio
async def test_send_over_smtp(smtp_config):
    with patch("bizzin_jobs.mailer.smtplib.SMTP") as smtp_cls:
        smtp = smtp_cls.return_value.__enter__.return_value

        await SmtpMailer(smtp_config).send(
            "Founder <founder@example.com>", "Hello", "<p>Hi</p>", "Hi"
        )

    smtp_cls.assert_called_once_with("smtp.example.com", 2525, timeout=20.0)
    smtp.starttls.assert_called_once()
    smtp.login.assert_called_once_with("mailer", "secret")
    smtp.send_message.assert_called_once()
    assert smtp.send_message.call_args.kwargs["to_addrs"] == ["founder@example.com"]


@pytest.mark.asyncio
async def test_smtp_failure_is_wrapped(smtp_config):
    with patch("bizzin_jobs.mailer.smtplib.SMTP") as smtp_cls:
        smtp = smtp_cls.return_value.__enter__.return_value
        smtp.send_message.side_effect = smtplib.SMTPRecipientsRefused(
            {"founder@example.com": (550, b"no such user")}
        )

        with pytest.raises(MailDeliveryError) as exc_info:
            await SmtpMailer(smtp_config).send("founder@example.com", "Hello", "<p>Hi</p>", "Hi")

    assert exc_info.value.recipient == "founder@example.com"
    assert "SMTP delivery" in str(exc_info.value)


@pytest.mark.asyncio
async def test_connection_error_is_wrapped(smtp_config):
    with patch("bizzin_jobs.mailer.smtplib.SMTP", side_effect=ConnectionRefusedError("refused")):
        with pytest.raises(MailDeliveryError):
            await SmtpMailer(smtp_config).send("founder@example.com", "Hello", "<p>Hi</p>", "Hi")
