# Vault Manager - Encrypted Credential Vault Facade
#
# Load/save/export/import orchestration over SessionManager, VaultCodec and
# an external VaultStore. The whole record list is sealed as one envelope
# and replaced wholesale on every write; settings travel in a second,
# independently sealed envelope.
#
# Security:
# - The session key never leaves SessionManager except through a lease
# - The salt is kept in the vault row so the same master password
#   re-derives the same key in a later session
# - A wrong master password is only detected when an envelope fails to open;
#   writes are refused until the existing envelope has opened with the key
# - Every transition is written to the audit log (never secrets)

import json
import logging
import threading
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Union

from ..core import EventSeverity, EventType, get_audit_logger
from ..core.audit_log import AuditLogger
from ..core.exceptions import (
    AuthenticationFailed,
    ImportFormatInvalid,
    MalformedEnvelope,
    RecordNotFound,
    StoreUnavailable,
    VaultCorruptOrWrongKey,
    VaultException,
)
from .codec import VaultCodec
from .encryption import DerivedKey, from_hex
from .models import (
    MUTABLE_RECORD_FIELDS,
    SCHEMA_VERSION,
    CredentialRecord,
    ImportResult,
    Settings,
    VaultSnapshot,
    format_timestamp,
    utc_now,
)
from .session import LockReason, SessionManager, SessionState
from .store import StoredSettings, StoredVault, VaultStore

logger = logging.getLogger(__name__)

_LOCK_EVENTS = {
    LockReason.MANUAL: (EventType.VAULT_LOCKED, "Vault locked"),
    LockReason.AUTO: (EventType.VAULT_AUTO_LOCKED, "Vault auto-locked after inactivity"),
    LockReason.SIGN_OUT: (EventType.VAULT_SIGNED_OUT, "Signed out"),
}


class VaultManager:
    """
    Manages the encrypted vault of one signed-in user.

    Usage::

        manager = VaultManager(SQLiteVaultStore("data/vault.db"))
        manager.unlock("user-123", master_password)
        record = manager.create_record("Example", "s3cret!", username="me")
        backup = manager.export()
        manager.lock()

    Args:
        store: Envelope store (rows keyed by user id)
        session: Session holding the derived key (a new one if omitted)
        codec: Snapshot/settings codec (default AES-256-GCM cipher)
        audit: Audit logger (default: process-wide singleton)
    """

    def __init__(
        self,
        store: VaultStore,
        session: Optional[SessionManager] = None,
        codec: Optional[VaultCodec] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.session = session or SessionManager()
        self.codec = codec or VaultCodec()
        self.logger = audit or get_audit_logger()

        # Serialises writes so a stale envelope can never land last
        self._write_lock = threading.RLock()
        self._snapshot: Optional[VaultSnapshot] = None
        self._user_id: Optional[str] = None
        # True once the stored envelope opened with the live key
        # (or there was no envelope to open)
        self._verified = False

        self.session.on_lock(self._on_lock)

    # ── Session ─────────────────────────────────────────────────

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def is_unlocked(self) -> bool:
        return self.session.is_unlocked

    def unlock(self, user_id: str, master_secret: str) -> None:
        """
        Derive the session key for user_id with the stored salt.

        Unlock succeeds for any non-empty master password; a wrong one is
        reported by the first load as VaultCorruptOrWrongKey.

        Raises:
            AuthenticationFailed: Empty identity, empty password or KDF failure
            VaultCorruptOrWrongKey: The stored salt is not valid hex
            StoreUnavailable: The store could not be read
        """
        row: Optional[StoredVault] = None
        salt: Optional[bytes] = None
        if user_id:
            try:
                row = self.store.fetch_vault(user_id)
                if row is not None and row.salt:
                    salt = from_hex(row.salt)
            except MalformedEnvelope as exc:
                self._abandon_session()
                self._audit(
                    EventType.VAULT_UNLOCK_FAILED,
                    "Stored salt is malformed",
                    user_id,
                    severity=EventSeverity.CRITICAL,
                )
                raise VaultCorruptOrWrongKey() from exc
            except StoreUnavailable:
                self._abandon_session()
                self._audit(
                    EventType.VAULT_UNLOCK_FAILED,
                    "Vault store unavailable at unlock",
                    user_id,
                    severity=EventSeverity.ALERT,
                )
                raise

        try:
            self.session.unlock(master_secret, user_id, salt)
        except AuthenticationFailed as exc:
            self._abandon_session()
            self._audit(
                EventType.VAULT_UNLOCK_FAILED,
                "Unlock rejected",
                user_id or None,
                details={"reason": type(exc.__cause__).__name__},
                severity=EventSeverity.ALERT,
            )
            raise

        self._user_id = user_id
        self._snapshot = None
        self._verified = row is None
        self._audit(
            EventType.VAULT_UNLOCKED,
            "Vault unlocked",
            user_id,
            details={"existing_vault": row is not None},
        )

    def lock(self) -> None:
        self.session.lock()

    def sign_out(self) -> None:
        self.session.sign_out()

    def _abandon_session(self) -> None:
        """Sign out after a failed unlock and forget anything decrypted."""
        self.session.sign_out()
        self._snapshot = None
        self._verified = False
        self._user_id = None

    def _on_lock(self, reason: LockReason) -> None:
        self._snapshot = None
        self._verified = False
        event_type, message = _LOCK_EVENTS[reason]
        self._audit(event_type, message, self._user_id)
        if reason is LockReason.SIGN_OUT:
            self._user_id = None

    # ── Snapshot persistence ────────────────────────────────────

    def save(self, snapshot: VaultSnapshot) -> VaultSnapshot:
        """
        Seal snapshot and replace the stored vault row.

        Returns:
            The snapshot as stored (lastSync refreshed)

        Raises:
            NotAuthenticated: Session is not unlocked
            VaultCorruptOrWrongKey: The stored vault does not open with this key
            StoreUnavailable: Write failed; the previous row is untouched
        """
        with self._write_lock, self.session.lease() as key:
            user_id = self.session.require_user()
            return self._write_snapshot(user_id, key, snapshot)

    def load(self) -> VaultSnapshot:
        """
        Fetch and open the user's vault.

        Returns:
            The stored snapshot, or an empty one if the user has no vault yet

        Raises:
            NotAuthenticated: Session is not unlocked
            VaultCorruptOrWrongKey: Wrong master password, corrupted or tampered row
            StoreUnavailable: Read failed
        """
        with self.session.lease() as key:
            user_id = self.session.require_user()
            return self._read_snapshot(user_id, key)

    @property
    def snapshot(self) -> VaultSnapshot:
        """Last loaded or saved snapshot (loads on first access).

        Raises:
            NotAuthenticated: Session is not unlocked
        """
        with self.session.lease() as key:
            if self._snapshot is not None:
                return self._snapshot
            return self._read_snapshot(self.session.require_user(), key)

    def _read_snapshot(self, user_id: str, key: DerivedKey) -> VaultSnapshot:
        row = self.store.fetch_vault(user_id)
        if row is None:
            snapshot = VaultSnapshot.empty()
        else:
            try:
                snapshot = self.codec.open_snapshot(row.to_envelope(), key)
            except (MalformedEnvelope, VaultCorruptOrWrongKey) as exc:
                self._audit(
                    EventType.VAULT_DECRYPT_FAILED,
                    "Vault could not be opened with the session key",
                    user_id,
                    details={"reason": type(exc).__name__},
                    severity=EventSeverity.CRITICAL,
                )
                if isinstance(exc, VaultCorruptOrWrongKey):
                    raise
                raise VaultCorruptOrWrongKey() from exc

        self._verified = True
        self._snapshot = snapshot
        self._audit(
            EventType.VAULT_LOADED,
            "Vault loaded",
            user_id,
            details={"records": len(snapshot.records)},
        )
        return snapshot

    def _write_snapshot(self, user_id: str, key: DerivedKey, snapshot: VaultSnapshot) -> VaultSnapshot:
        self._check_key(user_id, key)
        snapshot = replace(snapshot, last_sync=utc_now())
        envelope = self.codec.seal_snapshot(snapshot, key)
        try:
            self.store.upsert_vault(StoredVault.from_envelope(user_id, envelope))
        except Exception as exc:
            self._audit(
                EventType.VAULT_SAVE_FAILED,
                "Vault save failed",
                user_id,
                details={"error": type(exc).__name__},
                severity=EventSeverity.ALERT,
            )
            if isinstance(exc, StoreUnavailable):
                raise
            raise StoreUnavailable(f"Failed to save vault: {exc}") from exc

        self._snapshot = snapshot
        self._audit(
            EventType.VAULT_SAVED,
            "Vault saved",
            user_id,
            details={"records": len(snapshot.records)},
        )
        return snapshot

    def _check_key(self, user_id: str, key: DerivedKey) -> None:
        """Refuse to overwrite a vault the live key has never opened."""
        if not self._verified:
            self._read_snapshot(user_id, key)

    # ── Settings ────────────────────────────────────────────────

    def save_settings(self, settings: Settings) -> None:
        """
        Seal settings into the user's settings row.

        The first settings save for a user without a vault row writes an
        empty vault so the salt is on record.
        """
        with self._write_lock, self.session.lease() as key:
            user_id = self.session.require_user()
            self._check_key(user_id, key)
            if self.store.fetch_vault(user_id) is None:
                self._write_snapshot(user_id, key, VaultSnapshot.empty())
            self._write_settings(user_id, key, settings)

    def load_settings(self) -> Optional[Settings]:
        """
        Fetch and open the user's settings.

        Returns:
            Stored settings, or None if none were ever saved

        Raises:
            VaultCorruptOrWrongKey: Settings row does not open with this key
        """
        with self.session.lease() as key:
            user_id = self.session.require_user()
            row = self.store.fetch_settings(user_id)
            if row is None:
                return None
            try:
                settings = self.codec.open_settings(row.to_envelope(), key)
            except MalformedEnvelope as exc:
                raise VaultCorruptOrWrongKey() from exc
        self.session.set_auto_lock_minutes(settings.auto_lock_minutes)
        return settings

    def effective_settings(self) -> Settings:
        """Stored settings, or defaults when none were saved."""
        return self.load_settings() or Settings()

    def _write_settings(self, user_id: str, key: DerivedKey, settings: Settings) -> None:
        envelope = self.codec.seal_settings(settings, key)
        try:
            self.store.upsert_settings(StoredSettings.from_envelope(user_id, envelope))
        except Exception as exc:
            self._audit(
                EventType.VAULT_SAVE_FAILED,
                "Settings save failed",
                user_id,
                details={"error": type(exc).__name__},
                severity=EventSeverity.ALERT,
            )
            if isinstance(exc, StoreUnavailable):
                raise
            raise StoreUnavailable(f"Failed to save settings: {exc}") from exc

        self.session.set_auto_lock_minutes(settings.auto_lock_minutes)
        self._audit(EventType.SETTINGS_SAVED, "Settings saved", user_id)

    # ── Export / import ─────────────────────────────────────────

    def export(self) -> str:
        """
        Plaintext JSON backup of records and settings.

        Shape: {passwords, settings (or null), exportDate, version}. The
        document is not encrypted; it is the user's own backup.
        """
        snapshot = self.load()
        settings = self.load_settings()
        document = {
            "passwords": [r.to_dict() for r in snapshot.records],
            "settings": settings.to_dict() if settings else None,
            "exportDate": format_timestamp(utc_now()),
            "version": SCHEMA_VERSION,
        }
        self._audit(
            EventType.VAULT_EXPORTED,
            "Vault exported",
            self._user_id,
            details={"records": len(snapshot.records), "settings": settings is not None},
        )
        return json.dumps(document, indent=2, ensure_ascii=False)

    def import_document(self, document: Union[str, bytes]) -> ImportResult:
        """
        Replace stored records and settings from an export document.

        Any ``passwords`` list replaces the vault wholesale; any ``settings``
        object replaces stored settings. Missing or null parts are left alone.
        The whole document is validated before anything is written, and a
        failed settings write puts the previous vault row back.

        Raises:
            ImportFormatInvalid: Not JSON, or not the export shape
        """
        try:
            snapshot, settings = self._parse_import(document)
        except ImportFormatInvalid as exc:
            self._audit(
                EventType.VAULT_IMPORT_REJECTED,
                "Import rejected",
                self._user_id,
                details={"reason": str(exc)},
                severity=EventSeverity.ALERT,
            )
            raise

        with self._write_lock, self.session.lease() as key:
            user_id = self.session.require_user()
            self._check_key(user_id, key)
            previous = self.store.fetch_vault(user_id)
            if snapshot is not None:
                self._write_snapshot(user_id, key, snapshot)
            elif settings is not None and previous is None:
                self._write_snapshot(user_id, key, VaultSnapshot.empty())
            if settings is not None:
                try:
                    self._write_settings(user_id, key, settings)
                except VaultException:
                    self._restore_vault_row(user_id, previous)
                    raise

        result = ImportResult(
            passwords=len(snapshot.records) if snapshot is not None else 0,
            settings=settings is not None,
        )
        self._audit(EventType.VAULT_IMPORTED, "Vault imported", user_id, details=result.to_dict())
        return result

    import_ = import_document

    def _restore_vault_row(self, user_id: str, previous: Optional[StoredVault]) -> None:
        """Put back the vault row an unfinished import replaced."""
        self._snapshot = None
        try:
            if previous is None:
                self.store.delete_vault(user_id)
            else:
                self.store.upsert_vault(previous)
        except Exception as exc:
            # The settings error is the one the caller sees
            logger.error("Could not restore vault row after failed import: %s", type(exc).__name__)
            self._audit(
                EventType.VAULT_SAVE_FAILED,
                "Vault row could not be restored after a failed import",
                user_id,
                details={"error": type(exc).__name__},
                severity=EventSeverity.CRITICAL,
            )

    @staticmethod
    def _parse_import(document: Union[str, bytes]):
        try:
            parsed = json.loads(document)
        except (TypeError, ValueError) as exc:
            raise ImportFormatInvalid("Invalid JSON format") from exc
        if not isinstance(parsed, dict):
            raise ImportFormatInvalid("Import document must be a JSON object")

        snapshot: Optional[VaultSnapshot] = None
        passwords = parsed.get("passwords")
        if passwords is not None:
            if not isinstance(passwords, list):
                raise ImportFormatInvalid("passwords must be a list")
            snapshot = VaultSnapshot.from_dict({"passwords": passwords})

        settings: Optional[Settings] = None
        if parsed.get("settings") is not None:
            settings = Settings.from_dict(parsed["settings"])

        return snapshot, settings

    # ── Records ─────────────────────────────────────────────────

    def create_record(self, title: str, password: str, **fields: Any) -> CredentialRecord:
        """
        Add a record and save the vault.

        Args:
            title: Entry title (e.g., "Gmail Account")
            password: Secret to store
            **fields: username, website, category, notes, is_favorite, tags

        Returns:
            The new record (with its assigned id)
        """
        unknown = set(fields) - MUTABLE_RECORD_FIELDS
        if unknown:
            raise ValueError(f"Unknown record field(s): {', '.join(sorted(unknown))}")
        if not title:
            raise ValueError("Record title is required")
        record = CredentialRecord(title=title, password=password, **fields)

        self._mutate(
            lambda snap: snap.with_records(snap.records + [record]),
            EventType.RECORD_CREATED,
            record,
        )
        return record

    def update_record(self, record_id: str, **changes: Any) -> CredentialRecord:
        """
        Change fields of an existing record and save the vault.

        Raises:
            RecordNotFound: No record with record_id
            ValueError: A field that cannot be changed (id, timestamps, ...)
        """
        updated: Dict[str, CredentialRecord] = {}

        def change(snap: VaultSnapshot) -> VaultSnapshot:
            current = snap.find(record_id)
            if current is None:
                raise RecordNotFound(f"Password not found: {record_id}")
            updated["record"] = current.with_changes(**changes)
            return snap.with_records(
                [updated["record"] if r.id == record_id else r for r in snap.records]
            )

        self._mutate(change, EventType.RECORD_UPDATED, record_id)
        return updated["record"]

    def delete_record(self, record_id: str) -> CredentialRecord:
        """
        Remove a record and save the vault.

        Returns:
            The removed record

        Raises:
            RecordNotFound: No record with record_id
        """
        removed: Dict[str, CredentialRecord] = {}

        def change(snap: VaultSnapshot) -> VaultSnapshot:
            current = snap.find(record_id)
            if current is None:
                raise RecordNotFound(f"Password not found: {record_id}")
            removed["record"] = current
            return snap.with_records([r for r in snap.records if r.id != record_id])

        self._mutate(change, EventType.RECORD_DELETED, record_id)
        return removed["record"]

    def get_record(self, record_id: str) -> Optional[CredentialRecord]:
        return self.snapshot.find(record_id)

    def list_records(self, category: Optional[str] = None) -> List[CredentialRecord]:
        """
        List records in vault order.

        Args:
            category: Optional filter by category
        """
        records = self.snapshot.records
        if category:
            records = [r for r in records if r.category == category]
        return list(records)

    def _mutate(
        self,
        change: Callable[[VaultSnapshot], VaultSnapshot],
        event_type: EventType,
        subject: Union[CredentialRecord, str],
    ) -> None:
        """Load, apply change, save; reload from the store if the save fails."""
        record_id = subject.id if isinstance(subject, CredentialRecord) else subject
        with self._write_lock, self.session.lease() as key:
            user_id = self.session.require_user()
            current = self._read_snapshot(user_id, key)
            updated = change(current)
            try:
                self._write_snapshot(user_id, key, updated)
            except VaultException:
                self._reload_after_failure(user_id, key)
                raise

        self._audit(event_type, f"Record {event_type.value.rsplit('.', 1)[-1]}", user_id,
                    details={"record_id": record_id})

    def _reload_after_failure(self, user_id: str, key: DerivedKey) -> None:
        self._snapshot = None
        try:
            self._read_snapshot(user_id, key)
        except VaultException as exc:
            # The original write error is the one the caller sees
            logger.warning("Reload after failed save also failed: %s", type(exc).__name__)

    # ── Audit ───────────────────────────────────────────────────

    def _audit(
        self,
        event_type: EventType,
        message: str,
        user_id: Optional[str],
        details: Optional[Dict[str, Any]] = None,
        severity: EventSeverity = EventSeverity.INFO,
    ) -> None:
        self.logger.log_event(event_type, severity, message, details=details, user_id=user_id)
