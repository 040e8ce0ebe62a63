"""
Rotation mutual exclusion.

A process-wide ``threading.Lock`` serializes threads, and a lease row in the
``rotation_locks`` table serializes worker processes sharing the database.
Leases expire so a crashed holder cannot block rotation forever.
"""

import os
import sqlite3
import threading
import time
import uuid
from typing import Dict, Optional

from .db import get_db, init_db
from ..util.logging import logger

_process_locks: Dict[str, threading.Lock] = {}
_registry_lock = threading.Lock()


def _process_lock(name: str) -> threading.Lock:
    with _registry_lock:
        if name not in _process_locks:
            _process_locks[name] = threading.Lock()
        return _process_locks[name]


class RotationLock:
    """Named lock held around a whole rotation."""

    def __init__(self, name: str, lease_sec: float, db_path: Optional[str] = None):
        self.name = name
        self.lease_sec = lease_sec
        self.db_path = db_path
        self.owner = f"{os.getpid()}:{uuid.uuid4().hex[:8]}"
        self._local = _process_lock(name)
        init_db(db_path)

    def _try_lease(self) -> bool:
        now = time.time()
        try:
            with get_db(self.db_path) as conn:
                conn.execute("BEGIN IMMEDIATE")
                conn.execute(
                    "DELETE FROM rotation_locks WHERE name = ? AND expires_at < ?",
                    (self.name, now)
                )
                cursor = conn.execute(
                    "INSERT OR IGNORE INTO rotation_locks (name, owner, expires_at) VALUES (?, ?, ?)",
                    (self.name, self.owner, now + self.lease_sec)
                )
                conn.commit()
                return cursor.rowcount == 1
        except sqlite3.Error as e:
            logger.warning(f"Rotation lease check failed for '{self.name}': {e}")
            return False

    def acquire(self, wait_sec: float = 0.0) -> bool:
        """Acquire within ``wait_sec`` seconds; False means another holder kept it."""
        deadline = time.monotonic() + max(wait_sec, 0.0)
        if wait_sec > 0:
            acquired = self._local.acquire(timeout=wait_sec)
        else:
            acquired = self._local.acquire(blocking=False)
        if not acquired:
            return False

        while True:
            if self._try_lease():
                return True
            if time.monotonic() >= deadline:
                self._local.release()
                return False
            time.sleep(min(0.2, max(deadline - time.monotonic(), 0.01)))

    def release(self):
        try:
            with get_db(self.db_path) as conn:
                conn.execute(
                    "DELETE FROM rotation_locks WHERE name = ? AND owner = ?",
                    (self.name, self.owner)
                )
                conn.commit()
        except sqlite3.Error as e:
            logger.error(f"Failed to release rotation lease '{self.name}': {e}")
        finally:
            self._local.release()
