"""Failure notifications for import runs."""

import json
import logging
import smtplib
import ssl
from email.message import EmailMessage
from typing import Any

from ..models.core import NotificationSettings
from ..pipeline.base import NotificationSink


logger = logging.getLogger(__name__)


class NullNotifier(NotificationSink):
    """Used when no notification address is configured"""

    def notify(self, owner: str, account: str, operation: str, error: Any) -> None:
        logger.debug(f"No notification sink configured for {owner}/{account} {operation}")


class EmailNotifier(NotificationSink):
    """Sends one email per failed run over SMTP"""

    SUBJECT_PREFIX = "Plaid To Sheets"

    def __init__(self, settings: NotificationSettings, timeout: float = 20.0):
        self.settings = settings
        self.timeout = timeout

    def build_message(self, owner: str, account: str, operation: str, error: Any) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = f"{self.SUBJECT_PREFIX} - {owner} - {account} - {operation}"
        msg["From"] = self.settings.from_address or self.settings.username or self.settings.email
        msg["To"] = self.settings.email
        msg.set_content(f"Error: {json.dumps(str(error))}")
        return msg

    def notify(self, owner: str, account: str, operation: str, error: Any) -> None:
        msg = self.build_message(owner, account, operation, error)
        try:
            with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port, timeout=self.timeout) as s:
                if self.settings.use_tls:
                    s.starttls(context=ssl.create_default_context())
                if self.settings.username and self.settings.password:
                    s.login(self.settings.username, self.settings.password)
                s.send_message(msg)
            logger.info(f"Sent failure notification for {owner}/{account} to {self.settings.email}")
        except (smtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send failure notification for {owner}/{account}: {e}")


def build_notifier(settings: NotificationSettings) -> NotificationSink:
    """Return an EmailNotifier when an address is configured, else NullNotifier"""
    if settings and settings.email:
        return EmailNotifier(settings)
    return NullNotifier()
