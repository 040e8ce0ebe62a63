"""
Tests for the rotation lock: thread exclusion inside a process and lease
exclusion across processes sharing the database.
"""

import threading
import time

from salt_rotation.core.db import get_db
from salt_rotation.core.locking import RotationLock


def lease_rows(db_path):
    with get_db(db_path) as conn:
        return conn.execute("SELECT name, owner FROM rotation_locks").fetchall()


class TestInProcess:

    def test_acquire_and_release(self, db_path):
        lock = RotationLock("test_lock", lease_sec=60, db_path=db_path)

        assert lock.acquire() is True
        assert lease_rows(db_path) == [("test_lock", lock.owner)]

        lock.release()
        assert lease_rows(db_path) == []
        assert lock.acquire() is True
        lock.release()

    def test_second_holder_refused_without_wait(self, db_path):
        first = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        second = RotationLock("test_lock", lease_sec=60, db_path=db_path)

        assert first.acquire()
        try:
            assert second.acquire(0) is False
        finally:
            first.release()

    def test_waiter_gets_lock_after_release(self, db_path):
        first = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        second = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        first.acquire()

        releaser = threading.Timer(0.2, first.release)
        releaser.start()
        try:
            assert second.acquire(wait_sec=3) is True
        finally:
            releaser.join()
            second.release()

    def test_names_are_independent(self, db_path):
        a = RotationLock("lock_a", lease_sec=60, db_path=db_path)
        b = RotationLock("lock_b", lease_sec=60, db_path=db_path)

        assert a.acquire() and b.acquire()
        a.release()
        b.release()


class TestLease:

    def test_foreign_lease_blocks(self, db_path):
        lock = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        with get_db(db_path) as conn:
            conn.execute("INSERT INTO rotation_locks (name, owner, expires_at) VALUES (?, ?, ?)",
                         ("test_lock", "other-process", time.time() + 60))
            conn.commit()

        assert lock.acquire(0) is False
        # The in-process lock must not leak when the lease is refused
        assert lock._local.acquire(blocking=False)
        lock._local.release()

    def test_expired_lease_is_taken_over(self, db_path):
        lock = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        with get_db(db_path) as conn:
            conn.execute("INSERT INTO rotation_locks (name, owner, expires_at) VALUES (?, ?, ?)",
                         ("test_lock", "crashed-process", time.time() - 1))
            conn.commit()

        assert lock.acquire(0) is True
        assert lease_rows(db_path) == [("test_lock", lock.owner)]
        lock.release()

    def test_release_leaves_foreign_lease(self, db_path):
        lock = RotationLock("test_lock", lease_sec=60, db_path=db_path)
        lock.acquire()
        with get_db(db_path) as conn:
            conn.execute("UPDATE rotation_locks SET owner = 'someone-else'")
            conn.commit()

        lock.release()

        assert lease_rows(db_path) == [("test_lock", "someone-else")]
