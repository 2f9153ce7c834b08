"""
Keystore Crypto Core — Password-based key derivation and envelope sealing.

Implements the at-rest encryption for every private key in the keystore:
    scrypt(password, salt, N, r, p) → 32-byte key → AES-256-GCM → Envelope

The KDF parameters travel inside each envelope, so envelopes sealed under
older cost settings stay decryptable after the defaults are tuned.

Security Note:
    Never log plaintext, passwords or derived keys.
    Salt and nonce are random per seal; two seals of the same secret never
    produce the same envelope.
"""
import asyncio
import base64
import binascii
import logging
import secrets
from typing import Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.scrypt import Scrypt

from ..exceptions import CryptoError, ValidationError
from .config import MIN_PASSWORD_LENGTH, ScryptParams
from .models import Envelope

logger = logging.getLogger("keystore.vault")

SECRET_LENGTH = 32  # secp256k1 private key
NONCE_SIZE = 12  # 96-bit nonce
SALT_SIZE = 32
TAG_SIZE = 16  # GCM tag

_DECRYPT_FAILED = "Failed to decrypt secret: wrong password or corrupted envelope"


def b64e(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def b64d(data: str) -> bytes:
    return base64.b64decode(data.encode("ascii"), validate=True)


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(password: str, salt: bytes, params: ScryptParams) -> bytes:
    """Derive a 32-byte encryption key from a password using scrypt.

    Args:
        password: User password.
        salt: Random per-envelope salt.
        params: scrypt cost parameters.

    Returns:
        Derived key of ``params.dk_len`` bytes.
    """
    kdf = Scrypt(
        salt=salt,
        length=params.dk_len,
        n=params.n,
        r=params.r,
        p=params.p,
    )
    return kdf.derive(password.encode("utf-8"))


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def validate_password(password: str, min_length: int = MIN_PASSWORD_LENGTH) -> None:
    """Raise ValidationError if password is missing or too short."""
    if not isinstance(password, str) or len(password) < min_length:
        raise ValidationError(
            f"Password must be at least {min_length} characters long."
        )


def validate_secret(secret: bytes) -> None:
    if not isinstance(secret, (bytes, bytearray)) or len(secret) != SECRET_LENGTH:
        raise ValidationError(
            f"Secret must be exactly {SECRET_LENGTH} bytes."
        )


# ---------------------------------------------------------------------------
# Envelope cipher
# ---------------------------------------------------------------------------

class Cipher:
    """Seals fixed-length secrets into password-protected envelopes.

    The scrypt call dominates the cost of both operations (around a second
    at the default parameters). Use :meth:`aseal` / :meth:`aopen` from async
    code so the event loop keeps running while the KDF works.
    """

    def __init__(
        self,
        params: Optional[ScryptParams] = None,
        min_password_length: int = MIN_PASSWORD_LENGTH,
    ):
        self.params = params or ScryptParams()
        self.min_password_length = max(min_password_length, MIN_PASSWORD_LENGTH)

    def seal(self, secret: bytes, password: str) -> Envelope:
        """Encrypt a secret under a password.

        Args:
            secret: Exactly 32 raw bytes.
            password: At least ``min_password_length`` characters.

        Returns:
            Envelope carrying ciphertext, nonce, salt, tag and KDF params.

        Raises:
            ValidationError: If the secret or password is malformed.
        """
        validate_secret(secret)
        validate_password(password, self.min_password_length)

        salt = secrets.token_bytes(SALT_SIZE)
        nonce = secrets.token_bytes(NONCE_SIZE)
        key = derive_key(password, salt, self.params)
        ct_and_tag = AESGCM(key).encrypt(nonce, bytes(secret), None)

        return Envelope(
            ciphertext=b64e(ct_and_tag[:-TAG_SIZE]),
            iv=b64e(nonce),
            salt=b64e(salt),
            auth_tag=b64e(ct_and_tag[-TAG_SIZE:]),
            kdf="scrypt",
            kdf_params=self.params,
        )

    def open(self, envelope: Envelope, password: str) -> bytes:
        """Decrypt an envelope with the KDF parameters it carries.

        Raises:
            CryptoError: On any failure. The message never says whether the
                password or the envelope was at fault.
        """
        try:
            salt = b64d(envelope.salt)
            nonce = b64d(envelope.iv)
            tag = b64d(envelope.auth_tag)
            ciphertext = b64d(envelope.ciphertext)
            if len(tag) != TAG_SIZE:
                raise ValueError("malformed envelope")
            # envelopes built with model_copy or model_construct skip validation
            params = ScryptParams.model_validate(envelope.kdf_params.model_dump())
            key = derive_key(str(password), salt, params)
            return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except (
            InvalidTag,
            ValueError,
            TypeError,
            OverflowError,
            binascii.Error,
            MemoryError,
        ) as err:
            logger.debug("Envelope decryption failed: %s", type(err).__name__)
            raise CryptoError(_DECRYPT_FAILED) from None

    def needs_rehash(self, envelope: Envelope) -> bool:
        """True when the envelope was sealed with other KDF parameters."""
        return envelope.kdf_params != self.params

    async def aseal(self, secret: bytes, password: str) -> Envelope:
        return await asyncio.to_thread(self.seal, secret, password)

    async def aopen(self, envelope: Envelope, password: str) -> bytes:
        return await asyncio.to_thread(self.open, envelope, password)
