"""
Tests for failure alert mail.
"""

import logging
import smtplib
from unittest.mock import MagicMock, patch

from salt_rotation.core.notifier import FAILURE_SUBJECT, Notifier


def mock_smtp():
    server = MagicMock()
    factory = MagicMock()
    factory.return_value.__enter__.return_value = server
    return factory, server


class TestBuildMessage:

    def test_subject_and_body(self):
        msg = Notifier(from_address="rotation@example.com").build_message(
            "ops@example.com", "timed out", "partial output"
        )

        assert msg["Subject"] == FAILURE_SUBJECT
        assert msg["To"] == "ops@example.com"
        assert msg["From"] == "rotation@example.com"
        assert msg.get_payload(decode=True).decode("utf-8") == "timed out\n\npartial output"


class TestSendFailureAlert:

    def test_sent(self):
        factory, server = mock_smtp()
        notifier = Notifier(recipient="ops@example.com", smtp_host="mail.example.com", smtp_port=2525)

        with patch("salt_rotation.core.notifier.smtplib.SMTP", factory):
            assert notifier.send_failure_alert("Error: not writable", "Error: not writable") is True

        factory.assert_called_once_with("mail.example.com", 2525, timeout=30)
        server.send_message.assert_called_once()
        server.starttls.assert_not_called()
        server.login.assert_not_called()

    def test_tls_and_login(self):
        factory, server = mock_smtp()
        notifier = Notifier(recipient="ops@example.com", smtp_user="rotator", smtp_password="pw", use_tls=True)

        with patch("salt_rotation.core.notifier.smtplib.SMTP", factory):
            notifier.send_failure_alert("timed out")

        server.starttls.assert_called_once()
        server.login.assert_called_once_with("rotator", "pw")

    def test_recipient_from_environment(self, monkeypatch):
        monkeypatch.setenv("ROTATION_NOTIFY_EMAIL", "admin@example.com")
        factory, server = mock_smtp()

        with patch("salt_rotation.core.notifier.smtplib.SMTP", factory):
            assert Notifier().send_failure_alert("timed out")

        assert server.send_message.call_args[0][0]["To"] == "admin@example.com"

    def test_no_recipient_skips(self, caplog):
        factory, _ = mock_smtp()

        with patch("salt_rotation.core.notifier.smtplib.SMTP", factory):
            with caplog.at_level(logging.ERROR, logger="salt_rotation"):
                assert Notifier().send_failure_alert("timed out") is False

        factory.assert_not_called()
        assert "skipped" in caplog.text

    def test_transport_error_is_absorbed(self, caplog):
        notifier = Notifier(recipient="ops@example.com")

        with patch("salt_rotation.core.notifier.smtplib.SMTP",
                   side_effect=smtplib.SMTPConnectError(421, "try later")):
            with caplog.at_level(logging.ERROR, logger="salt_rotation"):
                assert notifier.send_failure_alert("timed out") is False

        assert notifier.send_failures == 1
        assert "failed" in caplog.text

    def test_connection_refused_is_absorbed(self):
        notifier = Notifier(recipient="ops@example.com")

        with patch("salt_rotation.core.notifier.smtplib.SMTP", side_effect=ConnectionRefusedError()):
            assert notifier.send_failure_alert("timed out") is False
