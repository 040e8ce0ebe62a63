"""
Rotation orchestrator - backup-before-mutate state machine.

One invocation walks:

    START -> BACKING_UP -> (BACKUP_FAILED | INVOKING) -> (SUCCEEDED | FAILED)
          -> LOGGED -> (CLEANING_UP | NOTIFYING_FAILURE) -> DONE

The external command never runs unless a snapshot of the current secrets was
stored first. There are no retries inside an invocation; the next scheduled
or overdue-triggered run is the retry.
"""

import sqlite3
import threading
import time
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Union

from .audit_log import AuditLog
from .command_runner import CommandRunner, resolve_executable_path
from .config import (
    OVERDUE_AFTER_HOURS,
    ROTATION_LOCK_ID,
    are_failure_notifications_enabled,
    get_backup_keep,
    get_command_timeout,
    get_lock_wait_seconds,
    get_rotation_command_args,
    is_rotation_disabled,
)
from .locking import RotationLock
from .notifier import Notifier
from .schema import RotationAttempt, RotationReport, RotationState, RotationStatus, TriggerSource
from .secret_store import ConfigUnreadable, InsufficientSecrets, PersistFailure, SecretStore
from ..util.logging import logger

BACKUP_FAILED_ERROR = "Backup failed"


class RotationOrchestrator:
    """Coordinates snapshot, rotation command, audit record, cleanup and alerting."""

    def __init__(self, store: SecretStore, runner: CommandRunner, audit_log: AuditLog, notifier: Notifier,
                 lock: Optional[RotationLock] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 executable_resolver: Callable[[], Optional[str]] = resolve_executable_path,
                 command_args: Optional[List[str]] = None,
                 retention: Optional[int] = None,
                 overdue_after: timedelta = timedelta(hours=OVERDUE_AFTER_HOURS)):
        self.store = store
        self.runner = runner
        self.audit_log = audit_log
        self.notifier = notifier
        self.lock = lock or RotationLock(ROTATION_LOCK_ID, get_command_timeout() + 60, audit_log.db_path)
        self.clock = clock
        self.executable_resolver = executable_resolver
        self.command_args = command_args
        self.retention = retention
        self.overdue_after = overdue_after

    def is_overdue(self) -> bool:
        """True when no success exists or the latest one is older than the staleness window."""
        last = self.audit_log.most_recent_success_timestamp()
        return last is None or last < self.clock() - self.overdue_after

    def execute(self, triggered_by: Union[TriggerSource, str] = TriggerSource.MANUAL) -> Optional[RotationReport]:
        """
        Run one rotation.

        Returns:
            RotationReport, or None when the kill switch is set or another
            rotation holds the lock.
        """
        return self._run(TriggerSource(triggered_by), only_if_overdue=False)

    def check_overdue_and_run(self) -> Optional[RotationReport]:
        """Self-healing path, cheap enough to call on every request."""
        if is_rotation_disabled():
            return None

        if not self.is_overdue():
            return None

        return self._run(TriggerSource.OVERDUE_FALLBACK, only_if_overdue=True)

    def _run(self, trigger: TriggerSource, only_if_overdue: bool) -> Optional[RotationReport]:
        if is_rotation_disabled():
            logger.info(f"Salt rotation disabled (SALT_ROTATION_DISABLED=true); ignoring {trigger.value} trigger")
            return None

        if not self.lock.acquire(get_lock_wait_seconds()):
            logger.warning(f"Rotation already in progress; dropping {trigger.value} trigger")
            return None

        try:
            # Another caller may have rotated while this one waited for the lock
            if only_if_overdue and not self.is_overdue():
                return None
            return self._execute_locked(trigger)
        finally:
            self.lock.release()

    def _execute_locked(self, trigger: TriggerSource) -> RotationReport:
        started = time.monotonic()
        report = RotationReport(triggered_by=trigger, started_at=self.clock())

        report.enter(RotationState.BACKING_UP)
        try:
            snapshot = self.store.backup_current_secrets(report.started_at)
        except (ConfigUnreadable, InsufficientSecrets, PersistFailure) as e:
            logger.warning(f"Backup before rotation failed ({type(e).__name__}): {e}")
            report.enter(RotationState.BACKUP_FAILED)
            self._record(report, RotationAttempt(
                timestamp=self.clock(),
                status=RotationStatus.FAILURE,
                output="",
                error=BACKUP_FAILED_ERROR,
                snapshot_id=None,
                duration=0.0,
                triggered_by=trigger,
            ))
            report.enter(RotationState.DONE)
            return report

        report.snapshot_id = snapshot.id

        report.enter(RotationState.INVOKING)
        args = self.command_args if self.command_args is not None else get_rotation_command_args()
        result = self.runner.run(self.executable_resolver(), args)
        duration = max(time.monotonic() - started, 0.0)

        if result.succeeded:
            report.enter(RotationState.SUCCEEDED)
            self._record(report, RotationAttempt(
                timestamp=self.clock(),
                status=RotationStatus.SUCCESS,
                output=result.output,
                error="",
                snapshot_id=snapshot.id,
                duration=duration,
                triggered_by=trigger,
            ))
            report.enter(RotationState.CLEANING_UP)
            self._cleanup(report)
        else:
            report.enter(RotationState.FAILED)
            self._record(report, RotationAttempt(
                timestamp=self.clock(),
                status=RotationStatus.FAILURE,
                output=result.output,
                error=result.error,
                snapshot_id=snapshot.id,
                duration=duration,
                triggered_by=trigger,
            ))
            report.enter(RotationState.NOTIFYING_FAILURE)
            if are_failure_notifications_enabled():
                report.notified = self.notifier.send_failure_alert(result.error, result.output)

        report.enter(RotationState.DONE)
        return report

    def _record(self, report: RotationReport, attempt: RotationAttempt):
        report.attempt = attempt
        report.logged = self.audit_log.append(attempt)
        report.enter(RotationState.LOGGED)

    def _cleanup(self, report: RotationReport):
        keep = None
        try:
            keep = self.retention if self.retention is not None else get_backup_keep()
            report.pruned = self.store.prune_snapshots(keep)
        except (sqlite3.Error, ValueError) as e:
            logger.error(f"Snapshot cleanup failed (keep={keep}): {e}")


_default_orchestrator: Optional[RotationOrchestrator] = None
_default_lock = threading.Lock()


def build_orchestrator(db_path: Optional[str] = None) -> RotationOrchestrator:
    """Wire an orchestrator from environment configuration."""
    return RotationOrchestrator(
        store=SecretStore(db_path=db_path),
        runner=CommandRunner(),
        audit_log=AuditLog(db_path=db_path),
        notifier=Notifier(),
    )


def get_orchestrator() -> RotationOrchestrator:
    """Process-wide default orchestrator."""
    global _default_orchestrator
    with _default_lock:
        if _default_orchestrator is None:
            _default_orchestrator = build_orchestrator()
        return _default_orchestrator


def reset_orchestrator():
    global _default_orchestrator
    with _default_lock:
        _default_orchestrator = None
