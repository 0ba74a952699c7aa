# Vault Module - Encrypted Credential Vault
#
# PBKDF2-HMAC-SHA256 key derivation, AES-256-GCM sealing, the session key
# lifecycle and the envelope stores the sealed vault is written to.

from .codec import VaultCodec
from .encryption import (
    AuthenticatedCipher,
    DerivedKey,
    EncryptionEnvelope,
    KeyDerivation,
    RandomSource,
)
from .models import CredentialRecord, ImportResult, Settings, VaultSnapshot
from .remote_store import RestVaultStore
from .session import LockReason, SessionManager, SessionState
from .store import (
    InMemoryVaultStore,
    SQLiteVaultStore,
    StoredSettings,
    StoredVault,
    VaultStore,
)
from .vault_manager import VaultManager

__all__ = [
    "VaultManager",
    "SessionManager",
    "SessionState",
    "LockReason",
    "VaultCodec",
    "KeyDerivation",
    "AuthenticatedCipher",
    "DerivedKey",
    "EncryptionEnvelope",
    "RandomSource",
    "CredentialRecord",
    "VaultSnapshot",
    "Settings",
    "ImportResult",
    "VaultStore",
    "StoredVault",
    "StoredSettings",
    "InMemoryVaultStore",
    "SQLiteVaultStore",
    "RestVaultStore",
]
