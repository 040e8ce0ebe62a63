"""
Tests for environment-driven rotation settings.
"""

import logging
import os

import pytest

from salt_rotation.core.config import (
    BACKUPS_TO_KEEP,
    are_failure_notifications_enabled,
    get_backup_keep,
    get_config_candidates,
    get_php_binary,
    get_rotation_command_args,
    is_rotation_disabled,
    is_scheduler_enabled,
    validate_rotation_config,
)


class TestOverrides:

    def test_defaults(self):
        assert is_rotation_disabled() is False
        assert are_failure_notifications_enabled() is True
        assert get_backup_keep() == BACKUPS_TO_KEEP == 5
        assert get_php_binary() == "php"

    @pytest.mark.parametrize("value,expected", [("true", True), ("TRUE", True), ("false", False), ("1", False)])
    def test_kill_switch(self, monkeypatch, value, expected):
        monkeypatch.setenv("SALT_ROTATION_DISABLED", value)
        assert is_rotation_disabled() is expected

    def test_notifications_off(self, monkeypatch):
        monkeypatch.setenv("SALT_ROTATION_NOTIFY_FAILURES", "false")
        assert are_failure_notifications_enabled() is False

    def test_backup_keep(self, monkeypatch):
        monkeypatch.setenv("SALT_ROTATION_BACKUP_KEEP", "12")
        assert get_backup_keep() == 12

        monkeypatch.setenv("SALT_ROTATION_BACKUP_KEEP", " ")
        assert get_backup_keep() == 5

    @pytest.mark.parametrize("value", ["five", "-1", "2.5"])
    def test_invalid_backup_keep_falls_back(self, monkeypatch, caplog, value):
        monkeypatch.setenv("SALT_ROTATION_BACKUP_KEEP", value)

        with caplog.at_level(logging.WARNING, logger="salt_rotation"):
            assert get_backup_keep() == BACKUPS_TO_KEEP
        assert "Invalid SALT_ROTATION_BACKUP_KEEP" in caplog.text

    def test_keep_zero_is_allowed(self, monkeypatch):
        monkeypatch.setenv("SALT_ROTATION_BACKUP_KEEP", "0")
        assert get_backup_keep() == 0

    def test_scheduler_enabled_by_default(self, monkeypatch):
        monkeypatch.delenv("ROTATION_SCHEDULER_ENABLED", raising=False)
        assert is_scheduler_enabled() is True


class TestCommandArgs:

    def test_without_wp_root(self):
        assert get_rotation_command_args() == ["config", "shuffle-salts"]

    def test_with_wp_root(self, monkeypatch):
        monkeypatch.setenv("WP_ROOT", "/var/www/html")
        assert get_rotation_command_args() == ["config", "shuffle-salts", "--path=/var/www/html"]


class TestConfigCandidates:

    def test_parent_of_root_checked_first(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WP_ROOT", str(tmp_path / "site"))

        assert get_config_candidates() == [
            str(tmp_path / "wp-config.php"),
            str(tmp_path / "site" / "wp-config.php"),
        ]

    def test_explicit_list(self, monkeypatch):
        monkeypatch.setenv("SALT_ROTATION_CONFIG_PATHS", os.pathsep.join(["/a/wp-config.php", "", "/b/wp-config.php"]))
        assert get_config_candidates() == ["/a/wp-config.php", "/b/wp-config.php"]


class TestValidateRotationConfig:

    def test_valid_defaults(self):
        assert validate_rotation_config() == []

    @pytest.mark.parametrize("var,value,fragment", [
        ("SALT_ROTATION_BACKUP_KEEP", "-1", "must be >= 0"),
        ("SALT_ROTATION_BACKUP_KEEP", "five", "Invalid SALT_ROTATION_BACKUP_KEEP"),
        ("ROTATION_SCHEDULE_TIME", "24:00", "Invalid ROTATION_SCHEDULE_TIME"),
        ("ROTATION_SCHEDULE_TIME", "midnight", "Invalid ROTATION_SCHEDULE_TIME"),
        ("ROTATION_COMMAND_TIMEOUT_SEC", "0", "must be >= 1"),
        ("ROTATION_COMMAND_TIMEOUT_SEC", "soon", "Invalid ROTATION_COMMAND_TIMEOUT_SEC"),
    ])
    def test_invalid_values(self, monkeypatch, var, value, fragment):
        monkeypatch.setenv(var, value)
        issues = validate_rotation_config()
        assert len(issues) == 1
        assert fragment in issues[0]
