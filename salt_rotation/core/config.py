"""
Rotation core configuration.
Environment-driven settings for backup, command execution, scheduling and notification.
"""

import os
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from ..util.logging import logger

load_dotenv()

# Database path configuration (audit log, snapshots, scheduler marker, locks)
DB_PATH = os.getenv("DB_PATH", "./data/salt_rotation.db")

# Secret slots that must be backed up before rotating
SALT_KEYS = [
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
]
MIN_KEYS_FOR_BACKUP = 4

BACKUP_OPTION_PREFIX = "salt_rotation_backup_"
BACKUPS_TO_KEEP = 5
SCHEDULE_MARKER_OPTION = "salt_rotation_next_scheduled"
ROTATION_LOCK_ID = "salt_rotation_lock"
ROTATION_TASK_NAME = "daily_salt_rotation_event"

# A success older than this makes the rotation overdue (nominal period is 24h)
OVERDUE_AFTER_HOURS = 25

# External rotation command
WP_ROOT = os.getenv("WP_ROOT", "")
DEFAULT_WPCLI_PATH = "/usr/local/bin/wp"
ROTATION_COMMAND_ARGS = ["config", "shuffle-salts"]
SUCCESS_MARKERS = ["success", "shuffled the salt keys"]
ROTATION_COMMAND_TIMEOUT_SEC = int(os.getenv("ROTATION_COMMAND_TIMEOUT_SEC", "120"))

# Backup encryption (default true)
ROTATION_BACKUP_ENCRYPTION_ENABLED = os.getenv("ROTATION_BACKUP_ENCRYPTION_ENABLED", "true").lower() == "true"

# Daily scheduler (default enabled; the overdue check covers runs it misses)
ROTATION_SCHEDULER_ENABLED = os.getenv("ROTATION_SCHEDULER_ENABLED", "true").lower() == "true"
ROTATION_SCHEDULE_TIME = os.getenv("ROTATION_SCHEDULE_TIME", "00:00")
ROTATION_SCHEDULER_POLL_SEC = float(os.getenv("ROTATION_SCHEDULER_POLL_SEC", "30"))

# SMTP notification transport
SMTP_HOST = os.getenv("SMTP_HOST", "localhost")
SMTP_PORT = int(os.getenv("SMTP_PORT", "25"))
SMTP_USER = os.getenv("SMTP_USER")
SMTP_PASSWORD = os.getenv("SMTP_PASSWORD")
SMTP_USE_TLS = os.getenv("SMTP_USE_TLS", "false").lower() == "true"
ROTATION_NOTIFY_FROM = os.getenv("ROTATION_NOTIFY_FROM", "salt-rotation@localhost")

VERSION = "1.0.1"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_db_path() -> str:
    """Get the SQLite database path (re-read so tests can point at a temp file)."""
    return os.getenv("DB_PATH", DB_PATH)


def ensure_db_directory(db_path: Optional[str] = None):
    """Ensure the database directory exists."""
    Path(db_path or get_db_path()).parent.mkdir(parents=True, exist_ok=True)


# Administrative overrides are read on every call so they take effect without a restart

def is_rotation_disabled() -> bool:
    """Global kill switch."""
    return os.getenv("SALT_ROTATION_DISABLED", "false").lower() == "true"


def are_failure_notifications_enabled() -> bool:
    return os.getenv("SALT_ROTATION_NOTIFY_FAILURES", "true").lower() != "false"


def get_backup_keep() -> int:
    """Get how many snapshots survive cleanup."""
    raw = os.getenv("SALT_ROTATION_BACKUP_KEEP")
    if raw is None or not raw.strip():
        return BACKUPS_TO_KEEP
    try:
        keep = int(raw)
    except ValueError:
        keep = -1

    if keep < 0:
        logger.warning(f"Invalid SALT_ROTATION_BACKUP_KEEP={raw!r}; keeping {BACKUPS_TO_KEEP} snapshots")
        return BACKUPS_TO_KEEP
    return keep


def get_wpcli_path_override() -> Optional[str]:
    return os.getenv("WPCLI_PATH") or None


def get_php_binary() -> Optional[str]:
    """Interpreter used to launch the rotation tool. Empty means run the tool directly."""
    value = os.getenv("ROTATION_PHP_BINARY", "php")
    return value.strip() or None


def is_command_execution_enabled() -> bool:
    return os.getenv("ROTATION_COMMAND_EXEC_ENABLED", "true").lower() == "true"


def get_command_timeout() -> int:
    return int(os.getenv("ROTATION_COMMAND_TIMEOUT_SEC", str(ROTATION_COMMAND_TIMEOUT_SEC)))


def get_lock_wait_seconds() -> float:
    return float(os.getenv("ROTATION_LOCK_WAIT_SEC", "0"))


def get_wp_root() -> str:
    return os.getenv("WP_ROOT", WP_ROOT)


def get_config_candidates() -> List[str]:
    """
    Get candidate configuration files in lookup order.

    SALT_ROTATION_CONFIG_PATHS (os.pathsep separated) wins. Otherwise the
    parent of WP_ROOT is checked before WP_ROOT itself.
    """
    explicit = os.getenv("SALT_ROTATION_CONFIG_PATHS", "")
    if explicit.strip():
        return [p for p in explicit.split(os.pathsep) if p.strip()]

    root = Path(get_wp_root() or ".").resolve()
    return [
        str(root.parent / "wp-config.php"),
        str(root / "wp-config.php"),
    ]


def get_rotation_command_args() -> List[str]:
    args = list(ROTATION_COMMAND_ARGS)
    wp_root = get_wp_root()
    if wp_root:
        args.append(f"--path={wp_root}")
    return args


def get_backup_master_password() -> str:
    return os.getenv("ROTATION_BACKUP_MASTER_PASSWORD", "default_master_key_change_in_production")


def is_backup_encryption_enabled() -> bool:
    return os.getenv(
        "ROTATION_BACKUP_ENCRYPTION_ENABLED",
        "true" if ROTATION_BACKUP_ENCRYPTION_ENABLED else "false"
    ).lower() == "true"


def get_notify_address() -> Optional[str]:
    return os.getenv("ROTATION_NOTIFY_EMAIL") or None


def get_admin_token() -> Optional[str]:
    return os.getenv("ROTATION_ADMIN_TOKEN") or None


def is_scheduler_enabled() -> bool:
    """Check if the in-process daily scheduler is enabled."""
    return os.getenv("ROTATION_SCHEDULER_ENABLED", "true" if ROTATION_SCHEDULER_ENABLED else "false").lower() == "true"


def get_schedule_time() -> str:
    return os.getenv("ROTATION_SCHEDULE_TIME", ROTATION_SCHEDULE_TIME)


def validate_rotation_config():
    """Validate rotation configuration and return any issues."""
    issues = []

    keep = os.getenv("SALT_ROTATION_BACKUP_KEEP")
    if keep is not None and keep.strip():
        try:
            if int(keep) < 0:
                issues.append("SALT_ROTATION_BACKUP_KEEP must be >= 0")
        except ValueError:
            issues.append(f"Invalid SALT_ROTATION_BACKUP_KEEP: {keep}")

    schedule_time = get_schedule_time()
    parts = schedule_time.split(":")
    if len(parts) != 2 or not all(p.isdigit() for p in parts) \
            or not (0 <= int(parts[0]) < 24 and 0 <= int(parts[1]) < 60):
        issues.append(f"Invalid ROTATION_SCHEDULE_TIME: {schedule_time}")

    try:
        if get_command_timeout() < 1:
            issues.append("ROTATION_COMMAND_TIMEOUT_SEC must be >= 1")
    except ValueError:
        issues.append("Invalid ROTATION_COMMAND_TIMEOUT_SEC")

    return issues
