"""
Shared fixtures: an isolated database per test, a wp-config.php with salts,
and wired orchestrators using the fakes.
"""

from datetime import datetime

import pytest

from salt_rotation.core import heartbeat
from salt_rotation.core.audit_log import AuditLog
from salt_rotation.core.locking import RotationLock
from salt_rotation.core.orchestrator import RotationOrchestrator, reset_orchestrator
from salt_rotation.core.secret_store import SecretStore

from fakes import FakeNotifier, FakeRunner, render_wp_config


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Point every component at a temp database, keep the background scheduler off, and clear overrides."""
    monkeypatch.setenv("DB_PATH", str(tmp_path / "rotation.db"))
    monkeypatch.setenv("ROTATION_SCHEDULER_ENABLED", "false")
    for var in ("SALT_ROTATION_DISABLED", "SALT_ROTATION_BACKUP_KEEP", "SALT_ROTATION_NOTIFY_FAILURES",
                "WPCLI_PATH", "SALT_ROTATION_CONFIG_PATHS", "ROTATION_ADMIN_TOKEN", "ROTATION_NOTIFY_EMAIL",
                "ROTATION_SCHEDULE_TIME", "ROTATION_LOCK_WAIT_SEC", "WP_ROOT",
                "ROTATION_PHP_BINARY", "ROTATION_COMMAND_TIMEOUT_SEC", "ROTATION_COMMAND_EXEC_ENABLED",
                "ROTATION_BACKUP_ENCRYPTION_ENABLED", "ROTATION_BACKUP_MASTER_PASSWORD"):
        monkeypatch.delenv(var, raising=False)

    heartbeat.tasks.clear()
    heartbeat.running = False
    heartbeat.shutdown_event = None
    reset_orchestrator()
    yield
    heartbeat.tasks.clear()
    reset_orchestrator()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "rotation.db")


@pytest.fixture
def wp_config(tmp_path):
    path = tmp_path / "wp-config.php"
    path.write_text(render_wp_config())
    return path


@pytest.fixture
def store(wp_config, db_path):
    return SecretStore(config_paths=[str(wp_config)], db_path=db_path, encrypt=False)


@pytest.fixture
def audit_log(db_path):
    return AuditLog(db_path=db_path)


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def notifier():
    return FakeNotifier()


@pytest.fixture
def clock():
    """Mutable wall clock: set ``clock.now`` to move time."""
    class Clock:
        now = datetime(2026, 10, 18, 0, 0, 5)

        def __call__(self):
            return self.now

    return Clock()


@pytest.fixture
def orchestrator(store, runner, audit_log, notifier, clock, db_path):
    return RotationOrchestrator(
        store=store,
        runner=runner,
        audit_log=audit_log,
        notifier=notifier,
        lock=RotationLock("salt_rotation_lock", lease_sec=60, db_path=db_path),
        clock=clock,
        executable_resolver=lambda: "/usr/local/bin/wp",
        command_args=["config", "shuffle-salts"],
    )
