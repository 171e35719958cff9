"""Tests for failure notifications."""

import smtplib
import unittest
from unittest import mock

from plaid_ingest.exceptions import UpstreamError
from plaid_ingest.models.core import NotificationSettings
from plaid_ingest.utils.notifier import EmailNotifier, NullNotifier, build_notifier


class TestEmailNotifier(unittest.TestCase):
    """Test cases for EmailNotifier"""

    def setUp(self):
        self.settings = NotificationSettings(
            email="ops@example.com",
            smtp_host="smtp.example.com",
            smtp_port=587,
            username="bot@example.com",
            password="pw"
        )
        self.notifier = EmailNotifier(self.settings)

    def test_message_subject_and_body(self):
        msg = self.notifier.build_message("Alice", "Chase", "import_latest", UpstreamError("ITEM_LOGIN_REQUIRED"))

        self.assertEqual(msg["Subject"], "Plaid To Sheets - Alice - Chase - import_latest")
        self.assertEqual(msg["To"], "ops@example.com")
        self.assertEqual(msg["From"], "bot@example.com")
        self.assertEqual(msg.get_content().strip(), 'Error: "ITEM_LOGIN_REQUIRED"')

    def test_from_address_override(self):
        self.settings.from_address = "alerts@example.com"
        msg = self.notifier.build_message("Alice", "Chase", "import_latest", "boom")
        self.assertEqual(msg["From"], "alerts@example.com")

    @mock.patch('plaid_ingest.utils.notifier.smtplib.SMTP')
    def test_notify_sends_over_smtp(self, smtp_cls):
        server = smtp_cls.return_value.__enter__.return_value

        self.notifier.notify("Alice", "Chase", "import_latest", "boom")

        smtp_cls.assert_called_once_with("smtp.example.com", 587, timeout=20.0)
        server.starttls.assert_called_once()
        server.login.assert_called_once_with("bot@example.com", "pw")
        server.send_message.assert_called_once()

    @mock.patch('plaid_ingest.utils.notifier.smtplib.SMTP')
    def test_notify_without_tls_or_login(self, smtp_cls):
        settings = NotificationSettings(email="ops@example.com", use_tls=False)
        server = smtp_cls.return_value.__enter__.return_value

        EmailNotifier(settings).notify("Alice", "Chase", "import_latest", "boom")

        server.starttls.assert_not_called()
        server.login.assert_not_called()
        server.send_message.assert_called_once()

    @mock.patch('plaid_ingest.utils.notifier.smtplib.SMTP')
    def test_smtp_failure_is_logged_not_raised(self, smtp_cls):
        smtp_cls.side_effect = smtplib.SMTPConnectError(421, "unavailable")

        with self.assertLogs('plaid_ingest.utils.notifier', level='ERROR'):
            self.notifier.notify("Alice", "Chase", "import_latest", "boom")


class TestBuildNotifier(unittest.TestCase):
    """Test cases for build_notifier"""

    def test_email_configured(self):
        notifier = build_notifier(NotificationSettings(email="ops@example.com"))
        self.assertIsInstance(notifier, EmailNotifier)

    def test_no_email(self):
        self.assertIsInstance(build_notifier(NotificationSettings()), NullNotifier)

    def test_null_notifier_accepts_reports(self):
        NullNotifier().notify("Alice", "Chase", "import_latest", "boom")


if __name__ == '__main__':
    unittest.main()
