"""
Email service: delivers OTP codes.

Two senders implement the same ``MailSender`` protocol:

  • SmtpMailSender    – real delivery via aiosmtplib
  • ConsoleMailSender – development fallback that logs what *would* be sent

``build_mail_sender`` picks one from the settings, so local runs work
without configuring a mail server.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Protocol

import aiosmtplib

from email_otp.config import Settings
from email_otp.errors import TransportFailure

logger = logging.getLogger(__name__)

SUBJECT = "Your verification code"


@dataclass(frozen=True)
class OtpMessage:
    to_email: str
    code: str
    ttl_minutes: int

    @property
    def subject(self) -> str:
        return SUBJECT

    @property
    def text(self) -> str:
        return f"Your verification code: {self.code} (expires in {self.ttl_minutes} minutes)"

    @property
    def html(self) -> str:
        return f"""
    <html>
    <body style="font-family:sans-serif;color:#333">
      <p>Your verification code:</p>
      <p><b style="font-size:20px;letter-spacing:2px">{self.code}</b></p>
      <p style="color:#888">Expires in {self.ttl_minutes} minutes.
        If you did not request this code you can ignore this email.</p>
    </body>
    </html>
    """


class MailSender(Protocol):
    async def send(self, message: OtpMessage) -> None: ...


class ConsoleMailSender:
    """Logs the message instead of sending it (dev mode)."""

    async def send(self, message: OtpMessage) -> None:
        logger.info(
            "📧 [DEV] Would send email to %s:\n  Subject: %s\n  %s",
            message.to_email,
            message.subject,
            message.text,
        )


class SmtpMailSender:
    def __init__(
        self,
        *,
        from_email: str,
        host: str,
        port: int,
        username: str,
        password: str,
        use_tls: bool = True,
        timeout: float = 10.0,
    ) -> None:
        self._from_email = from_email
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout

    def _build(self, message: OtpMessage) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = message.subject
        msg["From"] = self._from_email
        msg["To"] = message.to_email
        msg.attach(MIMEText(message.text, "plain"))
        msg.attach(MIMEText(message.html, "html"))
        return msg

    async def send(self, message: OtpMessage) -> None:
        try:
            await aiosmtplib.send(
                self._build(message),
                hostname=self._host,
                port=self._port,
                username=self._username or None,
                password=self._password or None,
                start_tls=self._use_tls,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.exception("Failed to send OTP email to %s", message.to_email)
            raise TransportFailure() from exc
        logger.info("OTP email sent to %s", message.to_email)


def build_mail_sender(settings: Settings) -> MailSender:
    if not settings.smtp_enabled():
        logger.info("SMTP disabled, OTP emails will be logged to the console")
        return ConsoleMailSender()
    return SmtpMailSender(
        from_email=settings.from_email,
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        timeout=settings.mail_timeout_seconds,
    )
