"""
Tests for the envelope cipher.

Tests cover:
- seal/open round trip and envelope freshness
- Generic failure on wrong password or tampering
- Unusable KDF parameters carried by an envelope
- Input validation before any key derivation
- KDF parameters carried by the envelope
- Async variants
"""
import asyncio
import base64
import secrets

import pytest

from session_keystore.exceptions import CryptoError, ValidationError
from session_keystore.vault import crypto
from session_keystore.vault.config import ScryptParams
from session_keystore.vault.crypto import Cipher
from session_keystore.vault.models import Envelope, dump_record

from .conftest import PASSWORD


@pytest.fixture
def secret():
    """A random 32-byte secret."""
    return secrets.token_bytes(32)


def _flip_first_byte(value: str) -> str:
    raw = bytearray(base64.b64decode(value))
    raw[0] ^= 0x01
    return base64.b64encode(bytes(raw)).decode("ascii")


# --- Test Round Trip ---

class TestSealOpen:
    """Tests for sealing and opening envelopes."""

    def test_roundtrip(self, cipher, secret):
        """Test a sealed secret opens with the same password."""
        envelope = cipher.seal(secret, PASSWORD)
        assert cipher.open(envelope, PASSWORD) == secret

    def test_roundtrip_minimum_password(self, cipher, secret):
        """Test an eight-character password is accepted."""
        envelope = cipher.seal(secret, "12345678")
        assert cipher.open(envelope, "12345678") == secret

    def test_seal_is_fresh_every_time(self, cipher, secret):
        """Test salt, nonce and ciphertext differ on every seal."""
        first = cipher.seal(secret, PASSWORD)
        second = cipher.seal(secret, PASSWORD)
        assert first.ciphertext != second.ciphertext
        assert first.salt != second.salt
        assert first.iv != second.iv

    def test_envelope_does_not_contain_secret(self, cipher, secret):
        """Test the ciphertext is not the plaintext."""
        envelope = cipher.seal(secret, PASSWORD)
        assert base64.b64decode(envelope.ciphertext) != secret

    def test_component_sizes(self, cipher, secret):
        """Test ciphertext, nonce, salt and tag lengths."""
        envelope = cipher.seal(secret, PASSWORD)
        assert len(base64.b64decode(envelope.ciphertext)) == 32
        assert len(base64.b64decode(envelope.iv)) == crypto.NONCE_SIZE
        assert len(base64.b64decode(envelope.salt)) == crypto.SALT_SIZE
        assert len(base64.b64decode(envelope.auth_tag)) == crypto.TAG_SIZE


# --- Test Failures ---

class TestFailures:
    """Tests that every failure surfaces as a generic CryptoError."""

    def test_wrong_password(self, cipher, secret):
        """Test opening with another password fails."""
        envelope = cipher.seal(secret, PASSWORD)
        with pytest.raises(CryptoError):
            cipher.open(envelope, "another-password")

    def test_tampered_ciphertext(self, cipher, secret):
        """Test a flipped ciphertext bit is detected."""
        envelope = cipher.seal(secret, PASSWORD)
        tampered = envelope.model_copy(
            update={"ciphertext": _flip_first_byte(envelope.ciphertext)}
        )
        with pytest.raises(CryptoError):
            cipher.open(tampered, PASSWORD)

    def test_tampered_tag(self, cipher, secret):
        """Test a flipped tag bit is detected."""
        envelope = cipher.seal(secret, PASSWORD)
        tampered = envelope.model_copy(
            update={"auth_tag": _flip_first_byte(envelope.auth_tag)}
        )
        with pytest.raises(CryptoError):
            cipher.open(tampered, PASSWORD)

    def test_malformed_base64(self, cipher, secret):
        """Test undecodable fields fail as CryptoError."""
        envelope = cipher.seal(secret, PASSWORD)
        broken = envelope.model_copy(update={"salt": "not base64!"})
        with pytest.raises(CryptoError):
            cipher.open(broken, PASSWORD)

    @pytest.mark.parametrize("field, value", [
        ("n", 2 ** 63),
        ("n", 2 ** 64),
        ("n", 1000),
        ("r", 2 ** 63),
        ("r", 2 ** 64),
        ("p", 2 ** 63),
        ("p", 2 ** 64),
        ("dk_len", 16),
    ])
    def test_unusable_kdf_params(self, cipher, secret, field, value):
        """Test out-of-range scrypt parameters fail as CryptoError."""
        envelope = cipher.seal(secret, PASSWORD)
        params = envelope.kdf_params.model_copy(update={field: value})
        broken = envelope.model_copy(update={"kdf_params": params})
        with pytest.raises(CryptoError):
            cipher.open(broken, PASSWORD)

    def test_failure_messages_are_identical(self, cipher, secret):
        """Wrong password and corruption must not be distinguishable."""
        envelope = cipher.seal(secret, PASSWORD)
        tampered = envelope.model_copy(
            update={"ciphertext": _flip_first_byte(envelope.ciphertext)}
        )
        with pytest.raises(CryptoError) as wrong:
            cipher.open(envelope, "another-password")
        with pytest.raises(CryptoError) as corrupt:
            cipher.open(tampered, PASSWORD)
        assert str(wrong.value) == str(corrupt.value)
        assert wrong.value.code == "CRYPTO_ERROR"


# --- Test Input Validation ---

class TestValidation:
    """Tests for input checks that run before key derivation."""

    def test_short_password_skips_kdf(self, cipher, secret, monkeypatch):
        """Test a short password is rejected without running scrypt."""
        def boom(*args, **kwargs):
            raise AssertionError("key derivation must not run")

        monkeypatch.setattr(crypto, "derive_key", boom)
        with pytest.raises(ValidationError):
            cipher.seal(secret, "short")

    def test_empty_password(self, cipher, secret):
        """Test an empty password is rejected."""
        with pytest.raises(ValidationError):
            cipher.seal(secret, "")

    @pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
    def test_secret_length(self, cipher, length):
        """Test secrets must be exactly 32 bytes."""
        with pytest.raises(ValidationError):
            cipher.seal(b"\x01" * length, PASSWORD)

    def test_validation_error_is_value_error(self, cipher, secret):
        with pytest.raises(ValueError):
            cipher.seal(secret, "short")

    def test_min_password_length_never_below_eight(self, fast_params):
        """Test the password floor cannot be lowered."""
        assert Cipher(fast_params, min_password_length=4).min_password_length == 8


# --- Test KDF Parameters ---

class TestKdfParams:
    """Tests for KDF parameters recorded in envelopes."""

    def test_envelope_records_params(self, cipher, fast_params, secret):
        """Test the envelope carries the cipher's parameters."""
        envelope = cipher.seal(secret, PASSWORD)
        assert envelope.kdf == "scrypt"
        assert envelope.kdf_params == fast_params

    def test_open_uses_envelope_params(self, fast_params, secret):
        """Envelopes from older cost settings still open after tuning."""
        old = Cipher(ScryptParams(n=2 ** 11, r=8, p=1))
        envelope = old.seal(secret, PASSWORD)
        tuned = Cipher(fast_params)
        assert tuned.open(envelope, PASSWORD) == secret
        assert tuned.needs_rehash(envelope) is True
        assert tuned.needs_rehash(tuned.seal(secret, PASSWORD)) is False

    def test_json_shape(self, cipher, secret):
        """Test the camelCase JSON layout of an envelope."""
        data = dump_record(cipher.seal(secret, PASSWORD))
        assert set(data) == {
            "ciphertext", "iv", "salt", "authTag", "kdf", "kdfParams",
        }
        assert data["kdfParams"] == {"n": 1024, "r": 8, "p": 1, "dkLen": 32}

    def test_envelope_from_json(self, cipher, secret):
        """Test an envelope parsed from JSON still opens."""
        data = dump_record(cipher.seal(secret, PASSWORD))
        assert cipher.open(Envelope.model_validate(data), PASSWORD) == secret


# --- Test Async Variants ---

class TestAsync:
    """Tests for aseal/aopen."""

    def test_async_roundtrip(self, cipher, secret):
        """Test the async round trip."""
        async def roundtrip():
            envelope = await cipher.aseal(secret, PASSWORD)
            return await cipher.aopen(envelope, PASSWORD)

        assert asyncio.run(roundtrip()) == secret

    def test_async_wrong_password(self, cipher, secret):
        """Test aopen raises CryptoError on a wrong password."""
        envelope = cipher.seal(secret, PASSWORD)
        with pytest.raises(CryptoError):
            asyncio.run(cipher.aopen(envelope, "another-password"))
