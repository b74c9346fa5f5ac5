from __future__ import annotations

import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

import aiosmtplib

from ..config import get_settings

logger = logging.getLogger(__name__)

SUBJECT = "EducTrack - Your Login Code"

_TEXT_TEMPLATE = """Hello,

Your login code for EducTrack is: {code}

This code will expire in {minutes} minutes. If you didn't request this code, please ignore this email.
Role: {role}

Best regards,
EducTrack Team
"""

_HTML_TEMPLATE = """
<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
  <h2 style="color: #2563eb;">EducTrack Login Code</h2>
  <p>Hello,</p>
  <p>Your login code for EducTrack is:</p>
  <div style="background-color: #f3f4f6; padding: 20px; text-align: center; font-size: 24px; font-weight: bold; letter-spacing: 4px; margin: 20px 0;">
    {code}
  </div>
  <p>This code will expire in {minutes} minutes. If you didn't request this code, please ignore this email.</p>
  <p>Role: {role}</p>
  <p>Best regards,<br>EducTrack Team</p>
</div>
"""


class EmailOtpSender:
    """Delivers login codes over SMTP (STARTTLS).

    Without SMTP credentials the code is written to the log instead, which is
    how local development gets at it.
    """

    def __init__(self) -> None:
        settings = get_settings()
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user: Optional[str] = settings.SMTP_USER
        self.smtp_password: Optional[str] = settings.SMTP_PASSWORD
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.ttl_minutes = max(settings.OTP_TTL_SECONDS // 60, 1)

        if not self.is_configured:
            logger.info("SMTP disabled; OTP codes will be logged to the console")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    def build_message(self, to: str, code: str, role: str) -> MIMEMultipart:
        message = MIMEMultipart("alternative")
        message["From"] = f"{self.from_name} <{self.from_email}>"
        message["To"] = to
        message["Subject"] = SUBJECT
        fields = {"code": code, "role": role, "minutes": self.ttl_minutes}
        message.attach(MIMEText(_TEXT_TEMPLATE.format(**fields), "plain"))
        message.attach(MIMEText(_HTML_TEMPLATE.format(**fields), "html"))
        return message

    async def send(self, to: str, code: str, role: str) -> None:
        """Send the code; SMTP errors propagate to the caller."""
        if not self.is_configured:
            logger.info("[DEV] OTP for %s (%s): %s", to, role, code)
            return

        await aiosmtplib.send(
            self.build_message(to, code, role),
            hostname=self.smtp_host,
            port=self.smtp_port,
            username=self.smtp_user,
            password=self.smtp_password,
            start_tls=True,
        )
        logger.info("OTP email sent", extra={"to": to, "role": role})
