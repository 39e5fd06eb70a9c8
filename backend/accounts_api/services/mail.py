# accounts_api/services/mail.py
"""
Outbound mail.

Messages are sent with smtplib in a worker thread; callers await `send_mail`
and receive a MailDeliveryError when the server cannot be reached or refuses
the message.
"""

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Any, Dict, Optional

from accounts_api.core.auth_helpers import generate_url
from accounts_api.core.config import settings
from accounts_api.core.exceptions import MailDeliveryError

logger = logging.getLogger(__name__)

VERIFICATION_SUBJECT = "Verification Email"
PASSWORD_RESET_SUBJECT = "Change Password"


class Mailer:
    """Composes and sends plain-text emails via SMTP."""

    def __init__(
        self,
        host: Optional[str],
        port: int,
        sender: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: bool = True,
        timeout: float = 10.0,
    ):
        self.host = host
        self.port = port
        self.sender = sender
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "Mailer":
        return cls(
            host=settings.SMTP_HOST,
            port=settings.SMTP_PORT,
            sender=settings.MAIL_FROM,
            username=settings.SMTP_USERNAME,
            password=settings.SMTP_PASSWORD,
            use_tls=settings.SMTP_USE_TLS,
        )

    def _build_message(self, to: str, subject: str, text: str) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self.sender
        msg["To"] = to
        msg.set_content(text)
        return msg

    def _deliver(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
            if self.use_tls:
                server.starttls()
            if self.username and self.password:
                server.login(self.username, self.password)
            server.send_message(msg)

    async def send_mail(self, to: str, subject: str, text: str) -> Dict[str, Any]:
        if not self.host:
            raise MailDeliveryError("SMTP host is not configured")

        msg = self._build_message(to, subject, text)
        try:
            await asyncio.to_thread(self._deliver, msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send '{subject}' email to {to}: {e}")
            raise MailDeliveryError(str(e)) from e

        logger.info(f"Sent '{subject}' email to {to}")
        return {"to": to, "subject": subject}

    async def send_verification_email(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = (user.get("verification") or {}).get("token")
        url = f"{generate_url()}/verifyEmail;token={token}"
        return await self.send_mail(
            to=user["email"],
            subject=VERIFICATION_SUBJECT,
            text=f"Verify your email by going here: {url}",
        )

    async def send_password_reset_email(self, user: Dict[str, Any]) -> Dict[str, Any]:
        token = (user.get("reset_password") or {}).get("token")
        url = f"{generate_url()}/reset-password;token={token}"
        return await self.send_mail(
            to=user["email"],
            subject=PASSWORD_RESET_SUBJECT,
            text=f"Change your password by going here: {url}",
        )
