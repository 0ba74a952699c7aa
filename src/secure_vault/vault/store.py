# Vault - Envelope Store
#
# The store only ever sees opaque envelopes: two rows per user, keyed by
# the identity provider's user id.
#
#   user_vaults   {user_id, encrypted_data (hex), iv (hex), salt (hex), updated_at}
#   user_settings {user_id, encrypted_settings (hex), iv (hex), updated_at}
#
# Upsert semantics (insert-or-replace by user_id). A missing row is the
# "empty vault" state, not an error. Every backend failure is raised as
# StoreUnavailable; retry policy belongs to the caller.

import logging
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Optional, Union

from ..core.db import reading, transaction
from ..core.exceptions import StoreUnavailable
from .encryption import EncryptionEnvelope
from .models import format_timestamp, utc_now

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return format_timestamp(utc_now())


@dataclass
class StoredVault:
    """One ``user_vaults`` row."""

    user_id: str
    encrypted_data: str
    iv: str
    salt: str = ""
    updated_at: str = field(default_factory=_now_iso)

    def to_envelope(self) -> EncryptionEnvelope:
        return EncryptionEnvelope.from_hex(self.encrypted_data, self.iv, self.salt or None)

    @classmethod
    def from_envelope(cls, user_id: str, envelope: EncryptionEnvelope) -> "StoredVault":
        return cls(
            user_id=user_id,
            encrypted_data=envelope.ciphertext_hex,
            iv=envelope.nonce_hex,
            salt=envelope.salt_hex,
        )


@dataclass
class StoredSettings:
    """One ``user_settings`` row."""

    user_id: str
    encrypted_settings: str
    iv: str
    updated_at: str = field(default_factory=_now_iso)

    def to_envelope(self) -> EncryptionEnvelope:
        return EncryptionEnvelope.from_hex(self.encrypted_settings, self.iv)

    @classmethod
    def from_envelope(cls, user_id: str, envelope: EncryptionEnvelope) -> "StoredSettings":
        return cls(
            user_id=user_id,
            encrypted_settings=envelope.ciphertext_hex,
            iv=envelope.nonce_hex,
        )


class VaultStore(ABC):
    """Contract for the external envelope store."""

    @abstractmethod
    def fetch_vault(self, user_id: str) -> Optional[StoredVault]:
        """Return the user's vault row, or None if there is none yet."""

    @abstractmethod
    def upsert_vault(self, row: StoredVault) -> None:
        """Insert or replace the user's vault row atomically."""

    @abstractmethod
    def delete_vault(self, user_id: str) -> None:
        """Remove the user's vault row; a missing row is not an error."""

    @abstractmethod
    def fetch_settings(self, user_id: str) -> Optional[StoredSettings]:
        """Return the user's settings row, or None if there is none yet."""

    @abstractmethod
    def upsert_settings(self, row: StoredSettings) -> None:
        """Insert or replace the user's settings row atomically."""


class InMemoryVaultStore(VaultStore):
    """Dict-backed store for tests and embedding."""

    def __init__(self):
        self._lock = threading.Lock()
        self._vaults: Dict[str, StoredVault] = {}
        self._settings: Dict[str, StoredSettings] = {}

    def fetch_vault(self, user_id: str) -> Optional[StoredVault]:
        with self._lock:
            row = self._vaults.get(user_id)
            return replace(row) if row else None

    def upsert_vault(self, row: StoredVault) -> None:
        with self._lock:
            self._vaults[row.user_id] = replace(row)

    def delete_vault(self, user_id: str) -> None:
        with self._lock:
            self._vaults.pop(user_id, None)

    def fetch_settings(self, user_id: str) -> Optional[StoredSettings]:
        with self._lock:
            row = self._settings.get(user_id)
            return replace(row) if row else None

    def upsert_settings(self, row: StoredSettings) -> None:
        with self._lock:
            self._settings[row.user_id] = replace(row)


class SQLiteVaultStore(VaultStore):
    """SQLite store with the same two tables as the remote backend.

    Args:
        db_path: Path to SQLite file. Defaults to data/vault.db.
    """

    def __init__(self, db_path: Optional[Union[str, Path]] = None):
        self.db_path = Path(db_path) if db_path else Path("data/vault.db")
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()

    def _init_database(self):
        try:
            with transaction(self.db_path) as conn:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS user_vaults (
                        user_id TEXT PRIMARY KEY,
                        encrypted_data TEXT NOT NULL,
                        iv TEXT NOT NULL,
                        salt TEXT NOT NULL DEFAULT '',
                        updated_at TEXT NOT NULL
                    )
                """)
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS user_settings (
                        user_id TEXT PRIMARY KEY,
                        encrypted_settings TEXT NOT NULL,
                        iv TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                """)
        except sqlite3.Error as exc:
            raise StoreUnavailable(f"Cannot initialise vault database: {exc}") from exc

    def fetch_vault(self, user_id: str) -> Optional[StoredVault]:
        row = self._fetch_one(
            "SELECT user_id, encrypted_data, iv, salt, updated_at "
            "FROM user_vaults WHERE user_id = ?",
            user_id,
        )
        return StoredVault(**dict(row)) if row else None

    def upsert_vault(self, row: StoredVault) -> None:
        self._write(
            """INSERT INTO user_vaults (user_id, encrypted_data, iv, salt, updated_at)
               VALUES (?, ?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   encrypted_data = excluded.encrypted_data,
                   iv = excluded.iv,
                   salt = excluded.salt,
                   updated_at = excluded.updated_at""",
            (row.user_id, row.encrypted_data, row.iv, row.salt, row.updated_at),
        )

    def delete_vault(self, user_id: str) -> None:
        self._write("DELETE FROM user_vaults WHERE user_id = ?", (user_id,))

    def fetch_settings(self, user_id: str) -> Optional[StoredSettings]:
        row = self._fetch_one(
            "SELECT user_id, encrypted_settings, iv, updated_at "
            "FROM user_settings WHERE user_id = ?",
            user_id,
        )
        return StoredSettings(**dict(row)) if row else None

    def upsert_settings(self, row: StoredSettings) -> None:
        self._write(
            """INSERT INTO user_settings (user_id, encrypted_settings, iv, updated_at)
               VALUES (?, ?, ?, ?)
               ON CONFLICT(user_id) DO UPDATE SET
                   encrypted_settings = excluded.encrypted_settings,
                   iv = excluded.iv,
                   updated_at = excluded.updated_at""",
            (row.user_id, row.encrypted_settings, row.iv, row.updated_at),
        )

    def _fetch_one(self, sql: str, user_id: str) -> Optional[sqlite3.Row]:
        try:
            with reading(self.db_path) as conn:
                return conn.execute(sql, (user_id,)).fetchone()
        except sqlite3.Error as exc:
            logger.error("Vault store read failed: %s", exc)
            raise StoreUnavailable(f"Vault store read failed: {exc}") from exc

    def _write(self, sql: str, params: tuple) -> None:
        try:
            with transaction(self.db_path) as conn:
                conn.execute(sql, params)
        except sqlite3.Error as exc:
            logger.error("Vault store write failed: %s", exc)
            raise StoreUnavailable(f"Vault store write failed: {exc}") from exc
