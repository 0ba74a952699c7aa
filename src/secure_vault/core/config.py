# Vault - Configuration
#
# Environment-driven settings for the vault runtime. Values are read once
# through VaultConfig.from_env(), after python-dotenv has loaded a .env file
# from the working directory (if any):
#
#   SECURE_VAULT_AUTO_LOCK_MINUTES  inactivity timeout before auto-lock (15)
#   SECURE_VAULT_DB_PATH            SQLite store location (data/vault.db)
#   SECURE_VAULT_AUDIT_DIR          audit log directory (./audit_logs)
#   SECURE_VAULT_STORE_URL          PostgREST base URL; enables the remote store
#   SECURE_VAULT_STORE_KEY          API key sent to the remote store
#
# Never put the master password in the environment.

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_AUTO_LOCK_MINUTES = 15
DEFAULT_DB_PATH = "data/vault.db"
DEFAULT_AUDIT_DIR = "./audit_logs"

# Bounds shared with the Settings model
MIN_AUTO_LOCK_MINUTES = 1
MAX_AUTO_LOCK_MINUTES = 120


def _int_from_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r, using %d", name, raw, default)
        return default


@dataclass
class VaultConfig:
    """Validated runtime configuration."""

    auto_lock_minutes: int = DEFAULT_AUTO_LOCK_MINUTES
    db_path: Path = Path(DEFAULT_DB_PATH)
    audit_dir: Path = Path(DEFAULT_AUDIT_DIR)
    store_url: Optional[str] = None
    store_key: Optional[str] = None

    def __post_init__(self):
        self.db_path = Path(self.db_path)
        self.audit_dir = Path(self.audit_dir)
        if not MIN_AUTO_LOCK_MINUTES <= self.auto_lock_minutes <= MAX_AUTO_LOCK_MINUTES:
            raise ValueError(
                f"auto_lock_minutes must be between {MIN_AUTO_LOCK_MINUTES} "
                f"and {MAX_AUTO_LOCK_MINUTES}, got {self.auto_lock_minutes}"
            )
        if self.store_url:
            self.store_url = self.store_url.rstrip("/")

    @property
    def uses_remote_store(self) -> bool:
        return bool(self.store_url)

    @classmethod
    def from_env(cls, dotenv: bool = True) -> "VaultConfig":
        """Create a VaultConfig from environment variables.

        Args:
            dotenv: Load a ``.env`` file first (existing variables win).

        Returns:
            Populated VaultConfig instance.
        """
        if dotenv:
            load_dotenv(find_dotenv(usecwd=True), override=False)
        return cls(
            auto_lock_minutes=_int_from_env(
                "SECURE_VAULT_AUTO_LOCK_MINUTES", DEFAULT_AUTO_LOCK_MINUTES
            ),
            db_path=Path(os.getenv("SECURE_VAULT_DB_PATH") or DEFAULT_DB_PATH),
            audit_dir=Path(os.getenv("SECURE_VAULT_AUDIT_DIR") or DEFAULT_AUDIT_DIR),
            store_url=os.getenv("SECURE_VAULT_STORE_URL") or None,
            store_key=os.getenv("SECURE_VAULT_STORE_KEY") or None,
        )

    def build_store(self):
        """Return the store this configuration points at.

        The remote PostgREST store when a URL is configured, otherwise the
        local SQLite store.
        """
        if self.uses_remote_store:
            from ..vault.remote_store import RestVaultStore

            return RestVaultStore(self.store_url, api_key=self.store_key)

        from ..vault.store import SQLiteVaultStore

        return SQLiteVaultStore(self.db_path)
