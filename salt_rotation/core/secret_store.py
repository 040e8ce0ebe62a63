"""
Secret store - reads the current salts and keeps encrypted pre-rotation snapshots.

Snapshots live in the ``options`` table under ``salt_rotation_backup_<stamp>``
keys. Stamps are microsecond epoch values issued by a process-wide monotonic
generator and zero padded, so ids are unique and sort chronologically as
plain strings.
"""

import json
import os
import re
import secrets
import sqlite3
import threading
import time
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from .config import (
    BACKUP_OPTION_PREFIX,
    MIN_KEYS_FOR_BACKUP,
    SALT_KEYS,
    get_backup_master_password,
    get_config_candidates,
    is_backup_encryption_enabled,
)
from .db import get_db, init_db
from .schema import SecretSnapshot
from ..util.logging import logger

STAMP_WIDTH = 17


class RotationError(Exception):
    """Base class for every recoverable rotation failure."""
    pass


class ConfigUnreadable(RotationError):
    """No candidate configuration file could be read."""
    pass


class InsufficientSecrets(RotationError):
    """Too few required keys were found to make a usable snapshot."""
    pass


class PersistFailure(RotationError):
    """The snapshot could not be written."""
    pass


class SnapshotNotFound(RotationError):
    pass


_stamp_lock = threading.Lock()
_last_stamp = 0


def next_snapshot_stamp() -> int:
    """Return a microsecond stamp strictly greater than any issued before in this process."""
    global _last_stamp
    with _stamp_lock:
        stamp = max(time.time_ns() // 1000, _last_stamp + 1)
        _last_stamp = stamp
        return stamp


def _define_pattern(key: str) -> "re.Pattern":
    name = re.escape(key)
    return re.compile(
        r"define\s*\(\s*['\"]" + name + r"['\"]\s*,\s*['\"](.+?)['\"]\s*\)"
        r"|(?<![\w$])\$?" + name + r"\s*=\s*(['\"])(.+?)\2"
    )


def extract_secrets(raw_config: str, key_names: Sequence[str] = SALT_KEYS) -> Dict[str, str]:
    """
    Pull secret values out of configuration text.

    Recognizes ``define('KEY', 'value')`` calls and ``KEY = "value"``
    assignments, single or double quoted. Keys without a match are left out.
    """
    found = {}
    for key in key_names:
        match = _define_pattern(key).search(raw_config)
        if match:
            found[key] = match.group(1) if match.group(1) is not None else match.group(3)
    return found


def _derive_key(password: str, salt: bytes) -> bytes:
    """Derive encryption key from password using PBKDF2."""
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=32,
        salt=salt,
        iterations=100000,
    )
    return kdf.derive(password.encode())


def _encrypt_data(data: bytes, key: bytes) -> bytes:
    """Encrypt data using AES-256-GCM."""
    nonce = os.urandom(12)
    cipher = Cipher(algorithms.AES(key), modes.GCM(nonce))
    encryptor = cipher.encryptor()

    ciphertext = encryptor.update(data) + encryptor.finalize()

    # nonce + tag + ciphertext
    return nonce + encryptor.tag + ciphertext


def _decrypt_data(encrypted_data: bytes, key: bytes) -> bytes:
    """Decrypt data using AES-256-GCM."""
    if len(encrypted_data) < 28:  # nonce (12) + tag (16)
        raise ValueError("Encrypted snapshot too short")

    nonce = encrypted_data[:12]
    tag = encrypted_data[12:28]
    ciphertext = encrypted_data[28:]

    cipher = Cipher(algorithms.AES(key), modes.GCM(nonce, tag))
    decryptor = cipher.decryptor()
    return decryptor.update(ciphertext) + decryptor.finalize()


class SecretStore:
    """Reads live secrets and owns the snapshot records."""

    def __init__(self, config_paths: Optional[List[str]] = None, db_path: Optional[str] = None,
                 key_names: Sequence[str] = SALT_KEYS, min_keys: int = MIN_KEYS_FOR_BACKUP,
                 encrypt: Optional[bool] = None):
        self.config_paths = config_paths
        self.db_path = db_path
        self.key_names = list(key_names)
        self.min_keys = min_keys
        self.encrypt = is_backup_encryption_enabled() if encrypt is None else encrypt
        init_db(db_path)

    def read_current_secrets(self) -> str:
        """Return the text of the first readable configuration candidate."""
        candidates = self.config_paths if self.config_paths is not None else get_config_candidates()
        for path in candidates:
            if os.path.isfile(path) and os.access(path, os.R_OK):
                try:
                    with open(path, "r", encoding="utf-8", errors="replace") as f:
                        return f.read()
                except OSError as e:
                    logger.warning(f"Config candidate {path} became unreadable: {e}")
        raise ConfigUnreadable(f"No readable configuration among: {candidates}")

    def extract_secrets(self, raw_config: str) -> Dict[str, str]:
        return extract_secrets(raw_config, self.key_names)

    def backup_current_secrets(self, captured_at: Optional[datetime] = None) -> SecretSnapshot:
        """
        Read, extract and persist the current secrets.

        Raises:
            ConfigUnreadable, InsufficientSecrets, PersistFailure
        """
        captured_at = captured_at or datetime.now()
        values = self.extract_secrets(self.read_current_secrets())

        if len(values) < self.min_keys:
            raise InsufficientSecrets(
                f"Only {len(values)} of {len(self.key_names)} keys found (need {self.min_keys})"
            )

        snapshot_id = self.save_snapshot(values, captured_at)
        return SecretSnapshot(id=snapshot_id, values=dict(values), captured_at=captured_at)

    def _encode(self, values: Dict[str, str], captured_at: datetime) -> str:
        payload = json.dumps({
            "salts": values,
            "date": captured_at.strftime("%Y-%m-%d %H:%M:%S"),
        }).encode("utf-8")

        if not self.encrypt:
            return json.dumps({"encrypted": False, "data": payload.decode("utf-8")})

        salt = secrets.token_bytes(16)
        key = _derive_key(get_backup_master_password(), salt)
        return json.dumps({
            "encrypted": True,
            "salt": salt.hex(),
            "data": _encrypt_data(payload, key).hex(),
        })

    def save_snapshot(self, values: Dict[str, str], captured_at: datetime) -> str:
        """Persist a snapshot and return its id."""
        snapshot_id = f"{BACKUP_OPTION_PREFIX}{next_snapshot_stamp():0{STAMP_WIDTH}d}"

        try:
            record = self._encode(values, captured_at)
            with get_db(self.db_path) as conn:
                conn.execute(
                    "INSERT INTO options (option_name, option_value) VALUES (?, ?)",
                    (snapshot_id, record)
                )
                conn.commit()
        except (sqlite3.Error, OSError, ValueError) as e:
            raise PersistFailure(f"Snapshot {snapshot_id} not saved: {e}") from e

        logger.log_snapshot(snapshot_id, len(values), self.encrypt)
        return snapshot_id

    def list_snapshot_ids(self) -> List[str]:
        """Snapshot ids, most recent first."""
        with get_db(self.db_path) as conn:
            rows = conn.execute(
                "SELECT option_name FROM options WHERE option_name LIKE ? ESCAPE '\\' "
                "ORDER BY option_name DESC",
                (BACKUP_OPTION_PREFIX.replace("_", "\\_") + "%",)
            ).fetchall()
        return [row[0] for row in rows]

    def prune_snapshots(self, keep: int) -> List[str]:
        """Delete every snapshot beyond the ``keep`` most recent. Returns deleted ids."""
        if keep < 0:
            raise ValueError(f"keep must be >= 0: {keep}")

        stale = self.list_snapshot_ids()[keep:]
        if not stale:
            return []

        with get_db(self.db_path) as conn:
            conn.executemany("DELETE FROM options WHERE option_name = ?", [(s,) for s in stale])
            conn.commit()

        logger.log_prune(keep, stale)
        return stale

    def load_snapshot(self, snapshot_id: str) -> SecretSnapshot:
        """Decode a stored snapshot for manual recovery."""
        with get_db(self.db_path) as conn:
            row = conn.execute(
                "SELECT option_value FROM options WHERE option_name = ?", (snapshot_id,)
            ).fetchone()
        if not row or not snapshot_id.startswith(BACKUP_OPTION_PREFIX):
            raise SnapshotNotFound(f"Snapshot not found: {snapshot_id}")

        envelope = json.loads(row[0])
        if envelope.get("encrypted"):
            key = _derive_key(get_backup_master_password(), bytes.fromhex(envelope["salt"]))
            payload = json.loads(_decrypt_data(bytes.fromhex(envelope["data"]), key).decode("utf-8"))
        else:
            payload = json.loads(envelope["data"])

        return SecretSnapshot(
            id=snapshot_id,
            values=payload["salts"],
            captured_at=datetime.strptime(payload["date"], "%Y-%m-%d %H:%M:%S"),
        )
