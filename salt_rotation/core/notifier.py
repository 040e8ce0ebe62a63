"""
Failure alerts over SMTP. Sending is best effort and never raises.
"""

import smtplib
import ssl
from email.mime.text import MIMEText
from typing import Optional

from .config import (
    ROTATION_NOTIFY_FROM,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USER,
    get_notify_address,
)
from ..util.logging import logger

FAILURE_SUBJECT = "⚠️ Salt Rotation Failed"


class Notifier:
    """Mails the operator address when a rotation fails."""

    def __init__(self, recipient: Optional[str] = None, smtp_host: str = SMTP_HOST, smtp_port: int = SMTP_PORT,
                 smtp_user: Optional[str] = SMTP_USER, smtp_password: Optional[str] = SMTP_PASSWORD,
                 use_tls: bool = SMTP_USE_TLS, from_address: str = ROTATION_NOTIFY_FROM):
        self.recipient = recipient
        self.smtp_host = smtp_host
        self.smtp_port = smtp_port
        self.smtp_user = smtp_user
        self.smtp_password = smtp_password
        self.use_tls = use_tls
        self.from_address = from_address
        self.send_failures = 0

    def _recipient(self) -> Optional[str]:
        return self.recipient or get_notify_address()

    def build_message(self, recipient: str, error: str, details: str = "") -> MIMEText:
        msg = MIMEText(f"{error}\n\n{details}", "plain", "utf-8")
        msg["Subject"] = FAILURE_SUBJECT
        msg["From"] = self.from_address
        msg["To"] = recipient
        return msg

    def _send(self, msg: MIMEText):
        with smtplib.SMTP(self.smtp_host, self.smtp_port, timeout=30) as server:
            if self.use_tls:
                server.starttls(context=ssl.create_default_context())
            if self.smtp_user and self.smtp_password:
                server.login(self.smtp_user, self.smtp_password)
            server.send_message(msg)

    def send_failure_alert(self, error: str, details: str = "") -> bool:
        """Send the alert; returns whether the transport accepted it."""
        recipient = self._recipient()
        if not recipient:
            logger.log_notification("<unset>", "skipped", "ROTATION_NOTIFY_EMAIL not configured")
            return False

        try:
            self._send(self.build_message(recipient, error, details))
        except (smtplib.SMTPException, OSError) as e:
            self.send_failures += 1
            logger.log_notification(recipient, "failed", str(e))
            return False

        logger.log_notification(recipient, "sent")
        return True
