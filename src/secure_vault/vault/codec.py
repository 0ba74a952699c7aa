"""Vault codec: canonical byte encoding of the data model, sealed at rest.

Snapshots and settings are encoded as compact, key-sorted UTF-8 JSON and
sealed as independent envelopes. Authenticated plaintext that does not parse
back into the model is treated the same as a failed tag: the caller sees
``VaultCorruptOrWrongKey`` and nothing else.
"""

import json
import logging
from typing import Any, Dict, Optional

from ..core.exceptions import (
    DecryptionFailed,
    ImportFormatInvalid,
    VaultCorruptOrWrongKey,
)
from .encryption import AuthenticatedCipher, DerivedKey, EncryptionEnvelope
from .models import Settings, VaultSnapshot

logger = logging.getLogger(__name__)


def encode_document(document: Dict[str, Any]) -> bytes:
    """Canonical JSON bytes: sorted keys, no whitespace, UTF-8."""
    return json.dumps(
        document, sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def decode_document(data: bytes) -> Dict[str, Any]:
    parsed = json.loads(data.decode("utf-8"))
    if not isinstance(parsed, dict):
        raise ValueError("Top-level JSON value must be an object")
    return parsed


class VaultCodec:
    """Serialize, seal and open VaultSnapshot and Settings payloads."""

    def __init__(self, cipher: Optional[AuthenticatedCipher] = None):
        self.cipher = cipher or AuthenticatedCipher()

    # ── Plain bytes ─────────────────────────────────────────────────

    @staticmethod
    def encode_snapshot(snapshot: VaultSnapshot) -> bytes:
        return encode_document(snapshot.to_dict())

    @staticmethod
    def decode_snapshot(data: bytes) -> VaultSnapshot:
        return VaultSnapshot.from_dict(decode_document(data))

    @staticmethod
    def encode_settings(settings: Settings) -> bytes:
        return encode_document(settings.to_dict())

    @staticmethod
    def decode_settings(data: bytes) -> Settings:
        return Settings.from_dict(decode_document(data))

    # ── Sealed ──────────────────────────────────────────────────────

    def seal_snapshot(self, snapshot: VaultSnapshot, key: DerivedKey) -> EncryptionEnvelope:
        """Seal a snapshot; the envelope carries the key's salt."""
        return self.cipher.seal(self.encode_snapshot(snapshot), key, salt=key.salt)

    def open_snapshot(self, envelope: EncryptionEnvelope, key: DerivedKey) -> VaultSnapshot:
        plaintext = self._open(envelope, key, "vault")
        try:
            return self.decode_snapshot(plaintext)
        except (ValueError, ImportFormatInvalid) as exc:
            logger.error("Vault payload authenticated but did not decode: %s", type(exc).__name__)
            raise VaultCorruptOrWrongKey() from exc

    def seal_settings(self, settings: Settings, key: DerivedKey) -> EncryptionEnvelope:
        return self.cipher.seal(self.encode_settings(settings), key)

    def open_settings(self, envelope: EncryptionEnvelope, key: DerivedKey) -> Settings:
        plaintext = self._open(envelope, key, "settings")
        try:
            return self.decode_settings(plaintext)
        except (ValueError, ImportFormatInvalid) as exc:
            logger.error("Settings payload authenticated but did not decode: %s", type(exc).__name__)
            raise VaultCorruptOrWrongKey() from exc

    def _open(self, envelope: EncryptionEnvelope, key: DerivedKey, label: str) -> bytes:
        try:
            return self.cipher.open(envelope, key)
        except DecryptionFailed as exc:
            logger.warning("Failed to open %s envelope", label)
            raise VaultCorruptOrWrongKey() from exc
