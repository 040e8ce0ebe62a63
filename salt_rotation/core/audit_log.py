"""
Append-only rotation audit log backed by the salt_rotation_log table.
"""

import sqlite3
from datetime import datetime
from typing import List, Optional

from .db import get_db, init_db
from .schema import RotationAttempt, RotationStatus, TriggerSource
from ..util.logging import logger


class AuditLog:
    """Durable record of every rotation attempt."""

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path
        self.append_failures = 0
        init_db(db_path)

    def append(self, attempt: RotationAttempt) -> bool:
        """
        Append an attempt.

        A failed insert is logged and counted in ``append_failures`` but never
        raised, so it cannot turn a rotation into a failure.
        """
        try:
            with get_db(self.db_path) as conn:
                conn.execute(
                    """INSERT INTO salt_rotation_log
                       (rotation_date, status, wpcli_output, error_message,
                        backup_option_id, execution_time, triggered_by)
                       VALUES (?, ?, ?, ?, ?, ?, ?)""",
                    (
                        attempt.timestamp.isoformat(sep=" "),
                        attempt.status.value,
                        attempt.output,
                        attempt.error,
                        attempt.snapshot_id,
                        max(float(attempt.duration), 0.0),
                        attempt.triggered_by.value,
                    )
                )
                conn.commit()
        except sqlite3.Error as e:
            self.append_failures += 1
            logger.error(
                f"Failed to append rotation attempt ({attempt.status.value}, "
                f"{attempt.triggered_by.value}): {e} [append_failures={self.append_failures}]"
            )
            return False

        logger.log_rotation_attempt(
            attempt.status.value, attempt.triggered_by.value,
            attempt.snapshot_id, attempt.duration, attempt.error
        )
        return True

    def most_recent_success_timestamp(self) -> Optional[datetime]:
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT rotation_date FROM salt_rotation_log WHERE status = 'success' "
                "ORDER BY rotation_date DESC LIMIT 1"
            ).fetchone()
        return datetime.fromisoformat(row[0]) if row else None

    def recent_attempts(self, limit: int = 20) -> List[RotationAttempt]:
        """Most recent attempts first."""
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                """SELECT rotation_date, status, wpcli_output, error_message,
                          backup_option_id, execution_time, triggered_by
                   FROM salt_rotation_log ORDER BY rotation_date DESC, id DESC LIMIT ?""",
                (limit,)
            ).fetchall()

        return [
            RotationAttempt(
                timestamp=datetime.fromisoformat(date),
                status=RotationStatus(status),
                output=output or "",
                error=error or "",
                snapshot_id=snapshot_id,
                duration=duration or 0.0,
                triggered_by=TriggerSource(triggered_by),
            )
            for date, status, output, error, snapshot_id, duration, triggered_by in rows
        ]

    def count(self, status: Optional[RotationStatus] = None) -> int:
        with get_db(self.db_path) as conn:
            if status is None:
                row = conn.execute("SELECT COUNT(*) FROM salt_rotation_log").fetchone()
            else:
                row = conn.execute(
                    "SELECT COUNT(*) FROM salt_rotation_log WHERE status = ?", (status.value,)
                ).fetchone()
        return row[0]
