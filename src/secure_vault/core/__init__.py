# Core Module - Shared Utilities
#
# Core module provides shared functionality across all vault modules:
# - Audit logging
# - Configuration
# - Error taxonomy
# - SQLite connection helper

from .audit_log import (
    AuditLogger,
    EventSeverity,
    EventType,
    get_audit_logger,
    log_security_event,
    set_audit_logger,
)
from .config import VaultConfig
from .exceptions import (
    AuthenticationFailed,
    DecryptionFailed,
    EmptyCharset,
    ImportFormatInvalid,
    InvalidCredential,
    InvalidPolicy,
    MalformedEnvelope,
    NotAuthenticated,
    RecordNotFound,
    StoreUnavailable,
    VaultCorruptOrWrongKey,
    VaultException,
)

__all__ = [
    # Audit Logging
    "AuditLogger",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
    "set_audit_logger",
    "log_security_event",
    # Configuration
    "VaultConfig",
    # Errors
    "VaultException",
    "InvalidCredential",
    "AuthenticationFailed",
    "DecryptionFailed",
    "VaultCorruptOrWrongKey",
    "NotAuthenticated",
    "EmptyCharset",
    "InvalidPolicy",
    "ImportFormatInvalid",
    "MalformedEnvelope",
    "StoreUnavailable",
    "RecordNotFound",
]
