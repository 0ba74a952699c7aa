# Vault - Audit Trail
#
# Append-only JSON-lines record of every security-relevant vault transition:
# unlock, lock, auto-lock, sign-out, load/save, import/export and record
# mutations. One file per UTC day under the audit directory.
#
# Each AuditLogger owns its own structlog pipeline (wrap_logger over a
# WriteLogger), so creating one never reconfigures structlog for the host
# application. Key material, master secrets and decrypted credentials are
# never passed to this module.

import logging
import os
import socket
import threading
from datetime import date, datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, TextIO
from uuid import uuid4

import structlog

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_DIR = "./audit_logs"


class EventType(str, Enum):
    """Vault events written to the audit trail."""

    # Session lifecycle
    VAULT_UNLOCKED = "vault.unlocked"
    VAULT_UNLOCK_FAILED = "vault.unlock.failed"
    VAULT_LOCKED = "vault.locked"
    VAULT_AUTO_LOCKED = "vault.auto_locked"
    VAULT_SIGNED_OUT = "vault.signed_out"

    # Snapshot persistence
    VAULT_LOADED = "vault.loaded"
    VAULT_SAVED = "vault.saved"
    VAULT_SAVE_FAILED = "vault.save.failed"
    VAULT_DECRYPT_FAILED = "vault.decrypt.failed"
    SETTINGS_SAVED = "vault.settings.saved"

    # Backup
    VAULT_EXPORTED = "vault.exported"
    VAULT_IMPORTED = "vault.imported"
    VAULT_IMPORT_REJECTED = "vault.import.rejected"

    # Records
    RECORD_CREATED = "vault.record.created"
    RECORD_UPDATED = "vault.record.updated"
    RECORD_DELETED = "vault.record.deleted"

    SYSTEM_START = "system.start"


class EventSeverity(str, Enum):
    """
    - INFO: normal activity
    - ALERT: a failed or suspicious operation (wrong password, failed write)
    - CRITICAL: stored data could not be read back
    """
    INFO = "info"
    ALERT = "alert"
    CRITICAL = "critical"


_PROCESSORS = [
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.JSONRenderer(sort_keys=True),
]


class AuditLogger:
    """
    Writes one JSON object per line, flushed as it is written.

    Line fields: ``event`` (the EventType value), ``event_id``,
    ``severity``, ``message``, ``user_id``, ``details``, ``timestamp`` and
    the host context (``host``, ``pid``, ``os_user``).

    Args:
        log_dir: Directory for the daily files (default: ./audit_logs)
    """

    FILE_PREFIX = "audit_"

    def __init__(self, log_dir: Optional[Path] = None):
        self.log_dir = Path(log_dir) if log_dir else Path(DEFAULT_AUDIT_DIR)
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._day: Optional[date] = None
        self._stream: Optional[TextIO] = None
        self._bound = None
        self._context = {
            "host": socket.gethostname(),
            "pid": os.getpid(),
            "os_user": os.getenv("USER") or os.getenv("USERNAME"),
        }

    @staticmethod
    def _today() -> date:
        return datetime.now(timezone.utc).date()

    def path_for(self, day: date) -> Path:
        return self.log_dir / f"{self.FILE_PREFIX}{day.isoformat()}.log"

    @property
    def log_file(self) -> Path:
        """Today's file."""
        return self.path_for(self._today())

    def _logger_for_today(self):
        today = self._today()
        if self._bound is None or today != self._day:
            self._close_stream()
            self._stream = open(self.path_for(today), "a", encoding="utf-8")
            self._day = today
            self._bound = structlog.wrap_logger(
                structlog.WriteLogger(self._stream),
                processors=_PROCESSORS,
                wrapper_class=structlog.BoundLogger,
            ).bind(**self._context)
        return self._bound

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """
        Append one event.

        Returns:
            str: The event's UUID
        """
        event_id = str(uuid4())
        with self._lock:
            self._logger_for_today().msg(
                event_type.value,
                event_id=event_id,
                severity=severity.value,
                message=message,
                user_id=user_id,
                details=details or {},
            )
        if severity is not EventSeverity.INFO:
            logger.warning("Audit %s: %s (%s)", severity.value, message, event_type.value)
        return event_id

    def _close_stream(self) -> None:
        if self._stream is not None:
            self._stream.close()
        self._stream = None
        self._bound = None

    def close(self) -> None:
        with self._lock:
            self._close_stream()


_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Process-wide audit logger, created from VaultConfig on first use."""
    global _audit_logger
    if _audit_logger is None:
        from .config import VaultConfig

        _audit_logger = AuditLogger(log_dir=VaultConfig.from_env().audit_dir)
    return _audit_logger


def set_audit_logger(instance: Optional[AuditLogger]) -> None:
    """Replace the process-wide audit logger (tests, embedding)."""
    global _audit_logger
    _audit_logger = instance


def log_security_event(
    event_type: EventType,
    severity: EventSeverity,
    message: str,
    **kwargs
) -> str:
    """Shorthand for ``get_audit_logger().log_event(...)``."""
    return get_audit_logger().log_event(event_type, severity, message, **kwargs)
