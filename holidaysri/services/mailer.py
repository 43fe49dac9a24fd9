"""Outbound email. SMTP in production, a log-only backend for development and tests."""

import asyncio
import smtplib
from abc import ABC, abstractmethod
from email.mime.text import MIMEText
from functools import lru_cache

from holidaysri.core.config import get_settings
from holidaysri.core.exceptions import NotificationDeliveryError
from holidaysri.core.logging import get_logger

log = get_logger(__name__)


class Mailer(ABC):
    @abstractmethod
    async def send(self, to: str, subject: str, body: str) -> None:
        """Deliver one plain-text email. Raises NotificationDeliveryError."""
        ...


def _make_message(sender: str, to: str, subject: str, body: str) -> MIMEText:
    msg = MIMEText(body, "plain", "utf-8")
    msg["From"] = sender
    msg["To"] = to
    msg["Subject"] = subject
    return msg


class SmtpMailer(Mailer):
    def __init__(
        self,
        host: str,
        port: int,
        user: str = "",
        password: str = "",
        sender: str = "",
        use_tls: bool = True,
        timeout: float = 30.0,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user
        self.use_tls = use_tls
        self.timeout = timeout

    def _send_sync(self, to: str, subject: str, body: str) -> None:
        msg = _make_message(self.sender, to, subject, body)
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as client:
            if self.use_tls:
                client.starttls()
            if self.user:
                client.login(self.user, self.password)
            client.send_message(msg)

    async def send(self, to: str, subject: str, body: str) -> None:
        try:
            await asyncio.to_thread(self._send_sync, to, subject, body)
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationDeliveryError(f"SMTP send failed: {e}", details={"to": to}) from e
        log.info("email_sent", to=to, subject=subject)


class LogMailer(Mailer):
    """Writes the email to the log instead of sending it."""

    async def send(self, to: str, subject: str, body: str) -> None:
        log.info("email_logged", to=to, subject=subject, body=body)


async def send_with_timeout(mailer: Mailer, to: str, subject: str, body: str, timeout: float | None = None) -> None:
    """Bound a send; the underlying thread may keep running after a timeout."""
    limit = timeout if timeout is not None else get_settings().email_timeout_seconds
    try:
        await asyncio.wait_for(mailer.send(to, subject, body), timeout=limit)
    except asyncio.TimeoutError as e:
        raise NotificationDeliveryError(f"Email send timed out after {limit}s", details={"to": to}) from e


@lru_cache
def get_mailer() -> Mailer:
    s = get_settings()
    if s.email_backend == "log":
        return LogMailer()
    return SmtpMailer(
        host=s.smtp_host,
        port=s.smtp_port,
        user=s.smtp_user,
        password=s.smtp_password,
        sender=s.smtp_from,
        use_tls=s.smtp_use_tls,
        timeout=s.email_timeout_seconds,
    )
