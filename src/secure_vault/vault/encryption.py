# Vault - Encryption Service
#
# Master password → derived key (PBKDF2-HMAC-SHA256)
# Payload sealing (AES-256-GCM, fresh 96-bit nonce per seal)
# Hex encoding of envelope fields for the store boundary

import logging
import re
import secrets
import threading
from dataclasses import dataclass
from typing import Optional, Tuple

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..core.exceptions import (
    DecryptionFailed,
    InvalidCredential,
    MalformedEnvelope,
    NotAuthenticated,
)

logger = logging.getLogger(__name__)

_HEX_RE = re.compile(r"[0-9a-fA-F]*")


# ── Hex encoding ────────────────────────────────────────────────────


def to_hex(data: bytes) -> str:
    """Encode bytes as a lowercase, even-length hex string."""
    return bytes(data).hex()


def from_hex(value: str) -> bytes:
    """Decode a hex string from the store.

    Stores write lowercase (see to_hex); uppercase digits are accepted on
    read since they decode to the same bytes.

    Raises:
        MalformedEnvelope: Odd length, non-hex characters, or not a string.
    """
    if not isinstance(value, str):
        raise MalformedEnvelope(f"Expected hex string, got {type(value).__name__}")
    if len(value) % 2 != 0:
        raise MalformedEnvelope("Hex string has odd length")
    if not _HEX_RE.fullmatch(value):
        raise MalformedEnvelope("Hex string contains non-hex characters")
    return bytes.fromhex(value)


# ── Randomness ──────────────────────────────────────────────────────


class RandomSource:
    """CSPRNG byte supplier backed by the operating system.

    Every salt, nonce and generated password draws from an instance of this
    class. Tests substitute a subclass; production code uses SYSTEM_RANDOM.
    """

    def token_bytes(self, n: int) -> bytes:
        if n < 0:
            raise ValueError("Cannot draw a negative number of bytes")
        return secrets.token_bytes(n)


SYSTEM_RANDOM = RandomSource()


# ── Derived key ─────────────────────────────────────────────────────


class DerivedKey:
    """256-bit key material plus the salt it was derived with.

    The material lives in a bytearray so it can be overwritten in place.
    Copying and pickling are refused so the only reference is the one the
    session holds. ``retain()``/``release()`` let an operation that started
    before a lock finish with the key; ``destroy()`` zeroes the material as
    soon as no holder remains.

    Python cannot guarantee that no other copy of the bytes ever existed
    (the KDF returns an immutable ``bytes`` object first); this class limits
    the exposure window of the copy the process keeps.
    """

    def __init__(self, material: bytes, salt: bytes):
        if len(material) != KeyDerivation.KEY_LENGTH:
            raise ValueError(
                f"Key material must be {KeyDerivation.KEY_LENGTH} bytes, got {len(material)}"
            )
        self._material = bytearray(material)
        self._salt = bytes(salt)
        self._holders = 0
        self._retired = False
        self._destroyed = False
        self._guard = threading.Lock()

    @property
    def salt(self) -> bytes:
        return self._salt

    @property
    def material(self) -> bytearray:
        """Raw key bytes. Raises NotAuthenticated once destroyed."""
        if self._destroyed:
            raise NotAuthenticated("Key material has been destroyed")
        return self._material

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    @property
    def holders(self) -> int:
        return self._holders

    def retain(self) -> "DerivedKey":
        with self._guard:
            if self._destroyed:
                raise NotAuthenticated("Key material has been destroyed")
            self._holders += 1
        return self

    def release(self) -> None:
        with self._guard:
            if self._holders > 0:
                self._holders -= 1
            if self._retired and self._holders == 0:
                self._wipe()

    def destroy(self) -> None:
        """Retire the key; zero it now or when the last holder releases."""
        with self._guard:
            self._retired = True
            if self._holders == 0:
                self._wipe()

    def _wipe(self) -> None:
        for i in range(len(self._material)):
            self._material[i] = 0
        self._destroyed = True

    def __copy__(self):
        raise TypeError("DerivedKey cannot be copied")

    def __deepcopy__(self, memo):
        raise TypeError("DerivedKey cannot be copied")

    def __reduce_ex__(self, protocol):
        raise TypeError("DerivedKey cannot be pickled")

    def __repr__(self) -> str:
        state = "destroyed" if self._destroyed else "live"
        return f"<DerivedKey salt={to_hex(self._salt)} {state}>"

    def __del__(self):
        # Process teardown path; the guard may already be gone.
        material = getattr(self, "_material", None)
        if material is not None:
            for i in range(len(material)):
                material[i] = 0


# ── Key derivation ──────────────────────────────────────────────────


class KeyDerivation:
    """
    Derives the vault key from the master password.

    The same (master password, salt) pair always yields the same key, which
    is what lets a later session open data sealed by an earlier one. The
    salt is public; without the master password it is useless.
    """

    # PBKDF2 parameters (OWASP recommendations)
    PBKDF2_ITERATIONS = 600_000  # OWASP 2023: 600k iterations for PBKDF2-SHA256
    MIN_ITERATIONS = 100_000
    KEY_LENGTH = 32  # 256 bits for AES-256
    SALT_LENGTH = 16  # 128-bit salt

    def __init__(
        self,
        random_source: Optional[RandomSource] = None,
        iterations: int = PBKDF2_ITERATIONS,
    ):
        if iterations < self.MIN_ITERATIONS:
            raise ValueError(
                f"PBKDF2 iterations must be at least {self.MIN_ITERATIONS}, got {iterations}"
            )
        self._random = random_source or SYSTEM_RANDOM
        self.iterations = iterations

    def generate_salt(self) -> bytes:
        """Generate cryptographically random salt."""
        return self._random.token_bytes(self.SALT_LENGTH)

    def derive(self, master_secret: str, salt: Optional[bytes] = None) -> Tuple[DerivedKey, bytes]:
        """
        Derive a 256-bit key from the master password.

        Args:
            master_secret: User's master password
            salt: Stored salt; a fresh one is generated when omitted

        Returns:
            (key, salt) - the salt must be stored to re-derive the key later

        Raises:
            InvalidCredential: Empty or non-string master password
            MalformedEnvelope: Supplied salt shorter than 16 bytes
        """
        if not isinstance(master_secret, str) or master_secret == "":
            raise InvalidCredential("Master password must be a non-empty string")

        if salt is None:
            salt = self.generate_salt()
        elif len(salt) < self.SALT_LENGTH:
            raise MalformedEnvelope(
                f"Salt must be at least {self.SALT_LENGTH} bytes, got {len(salt)}"
            )

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=self.KEY_LENGTH,
            salt=bytes(salt),
            iterations=self.iterations,
        )
        raw = kdf.derive(master_secret.encode("utf-8"))
        key = DerivedKey(raw, salt)
        del raw
        return key, bytes(salt)


# ── Authenticated cipher ────────────────────────────────────────────


@dataclass(frozen=True)
class EncryptionEnvelope:
    """Ciphertext (with GCM tag) plus the public parameters needed to open it."""

    ciphertext: bytes
    nonce: bytes
    salt: Optional[bytes] = None

    @property
    def ciphertext_hex(self) -> str:
        return to_hex(self.ciphertext)

    @property
    def nonce_hex(self) -> str:
        return to_hex(self.nonce)

    @property
    def salt_hex(self) -> str:
        return to_hex(self.salt) if self.salt else ""

    @classmethod
    def from_hex(
        cls,
        ciphertext: str,
        nonce: str,
        salt: Optional[str] = None,
    ) -> "EncryptionEnvelope":
        """Rebuild an envelope from the hex fields of a store row."""
        return cls(
            ciphertext=from_hex(ciphertext),
            nonce=from_hex(nonce),
            salt=from_hex(salt) if salt else None,
        )


class AuthenticatedCipher:
    """
    Seals and opens payloads with AES-256-GCM.

    Flow:
    1. Draw a random 96-bit nonce (never a counter, never reused)
    2. Encrypt; the 16-byte tag is appended to the ciphertext
    3. Opening verifies the tag; a mismatch is the only wrong-key signal
    """

    NONCE_LENGTH = 12  # 96-bit nonce for GCM (recommended)
    TAG_LENGTH = 16

    def __init__(self, random_source: Optional[RandomSource] = None):
        self._random = random_source or SYSTEM_RANDOM

    def seal(
        self,
        plaintext: bytes,
        key: DerivedKey,
        salt: Optional[bytes] = None,
    ) -> EncryptionEnvelope:
        """
        Encrypt plaintext under key.

        Args:
            plaintext: Payload bytes
            key: Live session key
            salt: Salt to carry alongside the payload, if it must travel with it

        Returns:
            EncryptionEnvelope with a fresh nonce
        """
        nonce = self._random.token_bytes(self.NONCE_LENGTH)
        key.retain()
        try:
            ciphertext = AESGCM(key.material).encrypt(nonce, bytes(plaintext), None)
        finally:
            key.release()
        return EncryptionEnvelope(ciphertext=ciphertext, nonce=nonce, salt=salt)

    def open(self, envelope: EncryptionEnvelope, key: DerivedKey) -> bytes:
        """
        Decrypt and verify an envelope.

        Raises:
            MalformedEnvelope: Wrong nonce size or truncated ciphertext
            DecryptionFailed: Authentication tag did not verify
        """
        if len(envelope.nonce) != self.NONCE_LENGTH:
            raise MalformedEnvelope(
                f"Nonce must be {self.NONCE_LENGTH} bytes, got {len(envelope.nonce)}"
            )
        if len(envelope.ciphertext) < self.TAG_LENGTH:
            raise MalformedEnvelope("Ciphertext too short to contain an authentication tag")

        key.retain()
        try:
            return AESGCM(key.material).decrypt(envelope.nonce, envelope.ciphertext, None)
        except InvalidTag as exc:
            logger.debug("AES-GCM tag verification failed")
            raise DecryptionFailed("Authentication tag did not verify") from exc
        finally:
            key.release()
