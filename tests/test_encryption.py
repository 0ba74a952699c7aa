"""Tests for key derivation, the AES-256-GCM cipher and the DerivedKey holder.

Covers:
  - PBKDF2 determinism and salt independence
  - Seal/open round-trip, fresh nonce per seal
  - Wrong key, tampering and malformed envelopes
  - Hex boundary encoding
  - DerivedKey zeroization and copy refusal
"""

import copy
import pickle

import pytest

from secure_vault.core.exceptions import (
    DecryptionFailed,
    InvalidCredential,
    MalformedEnvelope,
    NotAuthenticated,
)
from secure_vault.vault.encryption import (
    AuthenticatedCipher,
    DerivedKey,
    EncryptionEnvelope,
    KeyDerivation,
    RandomSource,
    from_hex,
    to_hex,
)

SALT = bytes(range(16))


class CountingRandom(RandomSource):
    """Deterministic byte source: 0, 1, 2, ... wrapping at 256."""

    def __init__(self):
        self.counter = 0

    def token_bytes(self, n: int) -> bytes:
        out = bytes((self.counter + i) % 256 for i in range(n))
        self.counter += n
        return out


# ── KeyDerivation ────────────────────────────────────────────────────


class TestKeyDerivation:

    def test_default_work_factor(self):
        kdf = KeyDerivation()
        assert kdf.iterations == 600_000
        assert kdf.iterations >= KeyDerivation.MIN_ITERATIONS

    def test_rejects_weak_work_factor(self):
        with pytest.raises(ValueError):
            KeyDerivation(iterations=1000)

    def test_deterministic_for_same_secret_and_salt(self, fast_kdf):
        k1, s1 = fast_kdf.derive("Correct1!", SALT)
        k2, s2 = fast_kdf.derive("Correct1!", SALT)
        assert bytes(k1.material) == bytes(k2.material)
        assert s1 == s2 == SALT

    def test_key_is_256_bits(self, fast_kdf):
        key, _ = fast_kdf.derive("Correct1!", SALT)
        assert len(key.material) == 32

    def test_different_salts_give_different_keys(self, fast_kdf):
        k1, _ = fast_kdf.derive("Correct1!", SALT)
        k2, _ = fast_kdf.derive("Correct1!", bytes(16))
        assert bytes(k1.material) != bytes(k2.material)

    def test_different_secrets_give_different_keys(self, fast_kdf):
        k1, _ = fast_kdf.derive("Correct1!", SALT)
        k2, _ = fast_kdf.derive("Wrong2?", SALT)
        assert bytes(k1.material) != bytes(k2.material)

    def test_generates_16_byte_salt_when_omitted(self, fast_kdf):
        key, salt = fast_kdf.derive("Correct1!")
        assert len(salt) == 16
        assert key.salt == salt

    def test_fresh_salts_differ(self, fast_kdf):
        assert fast_kdf.generate_salt() != fast_kdf.generate_salt()

    def test_empty_secret_rejected(self, fast_kdf):
        with pytest.raises(InvalidCredential):
            fast_kdf.derive("", SALT)

    def test_non_string_secret_rejected(self, fast_kdf):
        with pytest.raises(InvalidCredential):
            fast_kdf.derive(None, SALT)

    def test_short_salt_rejected(self, fast_kdf):
        with pytest.raises(MalformedEnvelope):
            fast_kdf.derive("Correct1!", b"short")

    def test_unicode_secret(self, fast_kdf):
        k1, _ = fast_kdf.derive("pässwörd-🔑", SALT)
        k2, _ = fast_kdf.derive("pässwörd-🔑", SALT)
        assert bytes(k1.material) == bytes(k2.material)


# ── AuthenticatedCipher ──────────────────────────────────────────────


class TestAuthenticatedCipher:

    @pytest.fixture
    def key(self, fast_kdf):
        key, _ = fast_kdf.derive("Correct1!", SALT)
        return key

    @pytest.fixture
    def cipher(self):
        return AuthenticatedCipher()

    def test_round_trip(self, cipher, key):
        envelope = cipher.seal(b"hello vault", key)
        assert cipher.open(envelope, key) == b"hello vault"

    def test_round_trip_empty_payload(self, cipher, key):
        envelope = cipher.seal(b"", key)
        assert len(envelope.ciphertext) == AuthenticatedCipher.TAG_LENGTH
        assert cipher.open(envelope, key) == b""

    def test_nonce_is_96_bits(self, cipher, key):
        assert len(cipher.seal(b"x", key).nonce) == 12

    def test_ciphertext_hides_plaintext(self, cipher, key):
        envelope = cipher.seal(b"super secret password", key)
        assert b"super secret password" not in envelope.ciphertext

    def test_no_repeated_nonce_over_10k_seals(self, cipher, key):
        nonces = {cipher.seal(b"payload", key).nonce for _ in range(10_000)}
        assert len(nonces) == 10_000

    def test_same_plaintext_gives_different_ciphertext(self, cipher, key):
        a = cipher.seal(b"same", key)
        b = cipher.seal(b"same", key)
        assert a.ciphertext != b.ciphertext

    def test_nonce_drawn_from_random_source(self, key):
        rng = CountingRandom()
        cipher = AuthenticatedCipher(random_source=rng)
        assert cipher.seal(b"x", key).nonce == bytes(range(12))
        assert cipher.seal(b"x", key).nonce == bytes(range(12, 24))

    def test_wrong_key_fails(self, cipher, key, fast_kdf):
        wrong, _ = fast_kdf.derive("Wrong2?", SALT)
        envelope = cipher.seal(b"data", key)
        with pytest.raises(DecryptionFailed):
            cipher.open(envelope, wrong)

    def test_tampered_ciphertext_fails(self, cipher, key):
        envelope = cipher.seal(b"data", key)
        flipped = bytes([envelope.ciphertext[0] ^ 0x01]) + envelope.ciphertext[1:]
        with pytest.raises(DecryptionFailed):
            cipher.open(EncryptionEnvelope(flipped, envelope.nonce), key)

    def test_tampered_nonce_fails(self, cipher, key):
        envelope = cipher.seal(b"data", key)
        nonce = bytes([envelope.nonce[0] ^ 0x01]) + envelope.nonce[1:]
        with pytest.raises(DecryptionFailed):
            cipher.open(EncryptionEnvelope(envelope.ciphertext, nonce), key)

    def test_wrong_nonce_length_is_malformed(self, cipher, key):
        envelope = cipher.seal(b"data", key)
        with pytest.raises(MalformedEnvelope):
            cipher.open(EncryptionEnvelope(envelope.ciphertext, b"\x00" * 8), key)

    def test_truncated_ciphertext_is_malformed(self, cipher, key):
        with pytest.raises(MalformedEnvelope):
            cipher.open(EncryptionEnvelope(b"\x00" * 4, b"\x00" * 12), key)

    def test_carries_salt_when_given(self, cipher, key):
        envelope = cipher.seal(b"data", key, salt=SALT)
        assert envelope.salt == SALT

    def test_destroyed_key_cannot_seal(self, cipher, key):
        key.destroy()
        with pytest.raises(NotAuthenticated):
            cipher.seal(b"data", key)


# ── Hex boundary ─────────────────────────────────────────────────────


class TestHexEncoding:

    def test_lowercase_even_length(self):
        assert to_hex(b"\xab\xcd\x01") == "abcd01"

    def test_from_hex_accepts_uppercase(self):
        assert from_hex("ABCD") == b"\xab\xcd"

    def test_odd_length_rejected(self):
        with pytest.raises(MalformedEnvelope):
            from_hex("abc")

    def test_non_hex_rejected(self):
        with pytest.raises(MalformedEnvelope):
            from_hex("zz")

    def test_whitespace_rejected(self):
        with pytest.raises(MalformedEnvelope):
            from_hex("ab cd ")

    def test_trailing_newline_rejected(self):
        with pytest.raises(MalformedEnvelope):
            from_hex("abc\n")

    def test_non_string_rejected(self):
        with pytest.raises(MalformedEnvelope):
            from_hex(b"abcd")

    def test_envelope_hex_round_trip(self, fast_kdf):
        key, salt = fast_kdf.derive("Correct1!", SALT)
        cipher = AuthenticatedCipher()
        envelope = cipher.seal(b"payload", key, salt=salt)
        rebuilt = EncryptionEnvelope.from_hex(
            envelope.ciphertext_hex, envelope.nonce_hex, envelope.salt_hex
        )
        assert rebuilt == envelope
        assert cipher.open(rebuilt, key) == b"payload"

    def test_envelope_without_salt(self):
        envelope = EncryptionEnvelope(ciphertext=b"\x00" * 16, nonce=b"\x01" * 12)
        assert envelope.salt_hex == ""
        assert EncryptionEnvelope.from_hex(envelope.ciphertext_hex, envelope.nonce_hex).salt is None


# ── DerivedKey ───────────────────────────────────────────────────────


class TestDerivedKey:

    def test_rejects_wrong_length(self):
        with pytest.raises(ValueError):
            DerivedKey(b"\x01" * 16, SALT)

    def test_destroy_zeroes_material(self):
        key = DerivedKey(b"\x01" * 32, SALT)
        buffer = key._material
        key.destroy()
        assert key.destroyed
        assert bytes(buffer) == b"\x00" * 32
        with pytest.raises(NotAuthenticated):
            _ = key.material

    def test_destroy_deferred_while_retained(self):
        key = DerivedKey(b"\x01" * 32, SALT)
        key.retain()
        key.destroy()
        assert not key.destroyed
        assert bytes(key.material) == b"\x01" * 32
        key.release()
        assert key.destroyed
        assert key.holders == 0

    def test_retain_after_destroy_refused(self):
        key = DerivedKey(b"\x01" * 32, SALT)
        key.destroy()
        with pytest.raises(NotAuthenticated):
            key.retain()

    def test_copy_refused(self):
        key = DerivedKey(b"\x01" * 32, SALT)
        with pytest.raises(TypeError):
            copy.copy(key)
        with pytest.raises(TypeError):
            copy.deepcopy(key)

    def test_pickle_refused(self):
        key = DerivedKey(b"\x01" * 32, SALT)
        with pytest.raises(TypeError):
            pickle.dumps(key)

    def test_repr_hides_material(self):
        key = DerivedKey(b"\xaa" * 32, SALT)
        assert "aa" * 32 not in repr(key)
        assert "live" in repr(key)
