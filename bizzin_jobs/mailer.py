"""SMTP mail transport."""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from typing import Optional

from bizzin_jobs.config import BizzinJobsConfig
from bizzin_jobs.errors import MailDeliveryError


def _only_email(value: str) -> str:
    """Accept 'Name <addr@x>' or 'addr@x' and return the bare address."""
    _, addr = parseaddr(value or "")
    return (addr or value or "").strip()


class SmtpMailer:
    """
    Sends multipart HTML/text email over SMTP.

    When ``mail_dev`` is set or no SMTP host is configured the message is
    logged instead of sent.
    """

    def __init__(
        self,
        config: BizzinJobsConfig,
        logger: Optional[logging.Logger] = None,
        timeout: float = 20.0,
    ):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.timeout = timeout

    @property
    def dev_mode(self) -> bool:
        return self.config.mail_dev or not self.config.smtp_host

    def build_message(self, to: str, subject: str, html: str, text: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = formataddr((self.config.mail_from_name, _only_email(self.config.mail_from)))
        msg["To"] = to
        msg.set_content(text)
        msg.add_alternative(html, subtype="html")
        return msg

    async def send(self, to: str, subject: str, html: str, text: str) -> None:
        """
        Deliver one message.

        Raises:
            MailDeliveryError: If the address is empty or the SMTP exchange fails
        """
        recipient = _only_email(to)
        if not recipient:
            raise MailDeliveryError(to, "Empty recipient address")

        if self.dev_mode:
            self.logger.info(f"[dev mail] To: {recipient} Subject: {subject}\n{text}")
            return

        msg = self.build_message(recipient, subject, html, text)
        try:
            await asyncio.to_thread(self._deliver, recipient, msg)
        except (smtplib.SMTPException, OSError) as e:
            raise MailDeliveryError(recipient, f"SMTP delivery to {recipient} failed: {e}") from e

        self.logger.debug(f"Sent '{subject}' to {recipient}")

    def _deliver(self, recipient: str, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.config.smtp_host, self.config.smtp_port, timeout=self.timeout) as smtp:
            smtp.ehlo()
            if self.config.smtp_user:
                smtp.starttls()
                smtp.ehlo()
                smtp.login(self.config.smtp_user, self.config.smtp_password or "")
            smtp.send_message(msg, from_addr=_only_email(self.config.mail_from), to_addrs=[recipient])
