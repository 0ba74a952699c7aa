"""
Shared pytest fixtures for the Secure Vault test suite.

Autouse fixtures below isolate tests from live application data:
  - Audit logger -> temp directory  (prevents test events in ./audit_logs)
  - Environment  -> no SECURE_VAULT_* variables leak in from the shell
"""

import pytest

from secure_vault.core import audit_log as audit_mod
from secure_vault.vault.encryption import KeyDerivation
from secure_vault.vault.session import SessionManager
from secure_vault.vault.store import InMemoryVaultStore
from secure_vault.vault.vault_manager import VaultManager

# Lowest work factor KeyDerivation accepts; keeps the suite fast.
FAST_ITERATIONS = KeyDerivation.MIN_ITERATIONS


@pytest.fixture(autouse=True)
def _isolate_audit_logs(tmp_path):
    """Point the global AuditLogger at a temp directory for every test.

    Without this, anything that calls ``get_audit_logger()`` writes into the
    real ``./audit_logs/`` directory.
    """
    old_logger = audit_mod._audit_logger
    test_logger = audit_mod.AuditLogger(log_dir=tmp_path / "audit_logs")
    audit_mod.set_audit_logger(test_logger)

    yield

    test_logger.close()
    audit_mod.set_audit_logger(old_logger)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in (
        "SECURE_VAULT_AUTO_LOCK_MINUTES",
        "SECURE_VAULT_DB_PATH",
        "SECURE_VAULT_AUDIT_DIR",
        "SECURE_VAULT_STORE_URL",
        "SECURE_VAULT_STORE_KEY",
    ):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fast_kdf():
    return KeyDerivation(iterations=FAST_ITERATIONS)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(fast_kdf, clock):
    s = SessionManager(kdf=fast_kdf, clock=clock)
    yield s
    s.close()


@pytest.fixture
def store():
    return InMemoryVaultStore()


@pytest.fixture
def manager(store, session):
    return VaultManager(store, session=session)
