"""
SQLite storage for the rotation core.
Holds the audit log, the option store used for snapshots and the scheduler marker, and lock leases.
"""

import sqlite3
from contextlib import contextmanager
from typing import Generator, Optional
from .config import get_db_path, ensure_db_directory


@contextmanager
def get_db(db_path: Optional[str] = None) -> Generator[sqlite3.Connection, None, None]:
    """Get a SQLite database connection."""
    path = db_path or get_db_path()
    ensure_db_directory(path)
    conn = sqlite3.connect(path, timeout=10)
    try:
        yield conn
    finally:
        conn.close()


def init_db(db_path: Optional[str] = None):
    """Initialize the database with required tables."""
    with get_db(db_path) as conn:
        cursor = conn.cursor()

        # Append-only rotation audit log
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS salt_rotation_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                rotation_date TIMESTAMP NOT NULL,
                status TEXT NOT NULL CHECK (status IN ('success', 'failure')),
                wpcli_output TEXT,
                error_message TEXT,
                backup_option_id TEXT,
                execution_time REAL,
                triggered_by TEXT
            )
        ''')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_rotation_date ON salt_rotation_log(rotation_date)')
        cursor.execute('CREATE INDEX IF NOT EXISTS idx_status ON salt_rotation_log(status)')

        # Key-value option store (snapshots, scheduler marker)
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS options (
                option_name TEXT PRIMARY KEY,
                option_value TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        ''')

        # Cross-process rotation leases
        cursor.execute('''
            CREATE TABLE IF NOT EXISTS rotation_locks (
                name TEXT PRIMARY KEY,
                owner TEXT NOT NULL,
                expires_at REAL NOT NULL
            )
        ''')

        conn.commit()


def get_option(name: str, db_path: Optional[str] = None) -> Optional[str]:
    with get_db(db_path) as conn:
        row = conn.execute(
            "SELECT option_value FROM options WHERE option_name = ?", (name,)
        ).fetchone()
        return row[0] if row else None


def set_option(name: str, value: str, db_path: Optional[str] = None):
    with get_db(db_path) as conn:
        conn.execute(
            "INSERT INTO options (option_name, option_value) VALUES (?, ?) "
            "ON CONFLICT(option_name) DO UPDATE SET option_value = excluded.option_value",
            (name, value)
        )
        conn.commit()


def health_check(db_path: Optional[str] = None):
    """Check database health."""
    try:
        with get_db(db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT name FROM sqlite_master WHERE type='table';")
            tables = cursor.fetchall()

            # Check if required tables exist
            table_names = [table[0] for table in tables]
            required_tables = ['salt_rotation_log', 'options', 'rotation_locks']

            return all(table in table_names for table in required_tables)
    except Exception:
        return False
