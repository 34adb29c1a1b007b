"""Email transport — SMTP delivery behind a small async protocol.

When ``SMTP_HOST`` is empty the transport runs in log-only mode: the
message is logged and reported as sent, which keeps development and test
environments free of a mail server.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
import ssl
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Optional, Protocol

from workforce_portal.config import Settings, settings as default_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailMessage:
    to_email: str
    subject: str
    html_body: str
    text_body: str = ""
    to_name: Optional[str] = None


@dataclass(frozen=True)
class EmailResult:
    success: bool
    error: Optional[str] = None


class EmailTransport(Protocol):
    async def send(self, message: EmailMessage) -> EmailResult:
        """Attempt delivery once. May return a failure or raise."""
        ...


class SmtpEmailTransport:
    """Blocking smtplib delivery, run in a worker thread."""

    def __init__(self, config: Optional[Settings] = None) -> None:
        self.config = config or default_settings

    async def send(self, message: EmailMessage) -> EmailResult:
        if not self.config.smtp_configured:
            logger.info(
                "SMTP not configured, email logged only: to=%s subject=%s",
                message.to_email, message.subject,
            )
            return EmailResult(success=True)

        try:
            await asyncio.to_thread(self._send_sync, message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning("SMTP send to %s failed: %s", message.to_email, exc)
            return EmailResult(success=False, error=str(exc))

        logger.info("Email sent to %s: %s", message.to_email, message.subject)
        return EmailResult(success=True)

    def _build_mime(self, message: EmailMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = formataddr((self.config.FROM_NAME, self.config.FROM_EMAIL))
        msg["To"] = (
            formataddr((message.to_name, message.to_email))
            if message.to_name else message.to_email
        )
        if message.text_body:
            msg.attach(MIMEText(message.text_body, "plain", "utf-8"))
        msg.attach(MIMEText(message.html_body, "html", "utf-8"))
        return msg

    def _send_sync(self, message: EmailMessage) -> None:
        cfg = self.config
        mime = self._build_mime(message)
        with smtplib.SMTP(cfg.SMTP_HOST, cfg.SMTP_PORT, timeout=cfg.SMTP_TIMEOUT_SECONDS) as server:
            if cfg.SMTP_USE_TLS:
                server.starttls(context=ssl.create_default_context())
            if cfg.SMTP_USERNAME:
                server.login(cfg.SMTP_USERNAME, cfg.SMTP_PASSWORD)
            server.sendmail(cfg.FROM_EMAIL, [message.to_email], mime.as_string())
