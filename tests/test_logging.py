"""
Structured logging and redaction tests.
"""

import logging

import pytest

from salt_rotation.util.logging import StructuredLogger, audit_event, logger, sanitize_payload


class TestSanitizePayload:
    """Secret values never reach a log handler."""

    @pytest.mark.parametrize("field", ["value", "values", "salts", "secret", "password", "token"])
    def test_sensitive_fields_redacted(self, field):
        assert sanitize_payload({field: "abc", "snapshot_id": "x"}) == {field: "[REDACTED]", "snapshot_id": "x"}

    def test_nested_structures(self):
        payload = {"snapshot": {"salts": {"AUTH_KEY": "k"}}, "ids": [{"token": "t"}]}

        assert sanitize_payload(payload) == {
            "snapshot": {"salts": "[REDACTED]"},
            "ids": [{"token": "[REDACTED]"}],
        }

    def test_reveal_sensitive(self):
        assert sanitize_payload({"secret": "s"}, reveal_sensitive=True) == {"secret": "s"}

    def test_long_strings_truncated(self):
        result = sanitize_payload("x" * 150)
        assert result == "x" * 100 + "..."

    def test_non_string_scalars_untouched(self):
        assert sanitize_payload(1.5) == 1.5
        assert sanitize_payload(None) is None


class TestStructuredLogger:

    def test_rotation_attempt_levels(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            logger.log_rotation_attempt("success", "scheduled", "salt_rotation_backup_1", 0.25)
            logger.log_rotation_attempt("failure", "manual", None, 0.0, "Backup failed")

        success, failure = caplog.records[-2:]
        assert success.levelno == logging.INFO
        assert "rotation.attempt" in success.getMessage()
        assert "'duration_ms': 250.0" in success.getMessage()
        assert failure.levelno == logging.WARNING
        assert "Backup failed" in failure.getMessage()

    def test_long_errors_shortened(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            logger.log_rotation_attempt("failure", "manual", error="e" * 300)

        assert "e" * 101 not in caplog.text

    def test_snapshot_log_has_no_values(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            logger.log_snapshot("salt_rotation_backup_1", 8, True)

        assert "'key_count': 8" in caplog.text
        assert "'encrypted': True" in caplog.text

    def test_command_failure_is_warning(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            logger.log_command(["php", "/usr/local/bin/wp", "config", "shuffle-salts"], False, "CommandTimeout", 1.0)

        record = caplog.records[-1]
        assert record.levelno == logging.WARNING
        assert "php /usr/local/bin/wp config shuffle-salts" in record.getMessage()
        assert "CommandTimeout" in record.getMessage()

    def test_scheduler_task_failure(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            logger.log_scheduler_task("daily", 0.0, 0.5, "failed")

        assert caplog.records[-1].levelno == logging.ERROR
        assert "failed after 500.0ms" in caplog.text

    def test_single_handler_per_name(self):
        first = StructuredLogger("salt_rotation.test_handlers")
        second = StructuredLogger("salt_rotation.test_handlers")
        assert first.logger is second.logger
        assert len(second.logger.handlers) == 1


class TestAuditEvent:

    def test_payload_redacted(self, caplog):
        with caplog.at_level(logging.INFO, logger="salt_rotation"):
            audit_event("snapshot.revealed", {"snapshot_id": "salt_rotation_backup_1"}, {"values": {"AUTH_KEY": "k"}})

        assert "snapshot_revealed" in caplog.text
        assert "[REDACTED]" in caplog.text
        assert "'AUTH_KEY'" not in caplog.text
