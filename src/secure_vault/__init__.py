# Secure Vault - Main Package
#
# Cryptographic and data-integrity core of a personal credential vault:
# master-password key derivation, AES-256-GCM sealed vault snapshots,
# session key lifecycle with auto-lock, password generation and strength
# scoring, and plaintext JSON export/import.

__version__ = "0.1.0"
__description__ = "Encrypted personal credential vault core"

from .core import (
    EventSeverity,
    EventType,
    VaultConfig,
    get_audit_logger,
)
from .generator import GeneratorPolicy, generate, score
from .vault import SessionManager, VaultManager

__all__ = [
    "__version__",
    "VaultManager",
    "SessionManager",
    "VaultConfig",
    "GeneratorPolicy",
    "generate",
    "score",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
