from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr
from functools import lru_cache
from typing import Protocol

from scholarship_gateway.core.config import get_settings

logger = logging.getLogger(__name__)


class MailDeliveryError(Exception):
    """Raised when a message could not be handed to the mail transport."""


class MailTransport(Protocol):
    async def send(self, to: str, subject: str, html_body: str) -> None: ...


class SmtpMailTransport:
    """Sends HTML mail over SMTP; each send opens its own connection in a worker thread."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        username: str | None,
        password: str | None,
        from_name: str,
        starttls: bool = True,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.from_name = from_name
        self.starttls = starttls
        self.timeout_seconds = timeout_seconds

    @property
    def from_address(self) -> str:
        return formataddr((self.from_name, self.username or f"no-reply@{self.host}"))

    async def send(self, to: str, subject: str, html_body: str) -> None:
        message = EmailMessage()
        message["From"] = self.from_address
        message["To"] = to
        message["Subject"] = subject
        message.set_content("This message requires an HTML-capable mail client.")
        message.add_alternative(html_body, subtype="html")
        await asyncio.to_thread(self._deliver, message)

    def _deliver(self, message: EmailMessage) -> None:
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_seconds) as smtp:
                if self.starttls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            raise MailDeliveryError(f"smtp delivery to {message['To']} failed: {exc}") from exc


@lru_cache
def get_mail_transport() -> MailTransport:
    settings = get_settings()
    if not settings.smtp_password:
        logger.warning("SG_SMTP_PASSWORD is not set; newsletter delivery will likely be rejected by %s", settings.smtp_host)
    return SmtpMailTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_user,
        password=settings.smtp_password,
        from_name=settings.mail_from_name,
        starttls=settings.smtp_starttls,
        timeout_seconds=settings.smtp_timeout_seconds,
    )
