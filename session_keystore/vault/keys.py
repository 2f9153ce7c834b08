"""
KeyManager — raw secp256k1 key generation, address derivation and sealing.
"""
import re
import logging
from typing import Optional, Union

from eth_account import Account
from eth_utils import ValidationError as KeyFormatError

from ..exceptions import ValidationError
from .crypto import SECRET_LENGTH, Cipher, validate_password
from .models import Envelope

logger = logging.getLogger("keystore.vault")

_HEX_KEY_PATTERN = re.compile(r"^0x[0-9a-fA-F]{64}$")

RawKey = Union[bytes, str]


def to_key_bytes(key: RawKey) -> bytes:
    """Normalize a private key to 32 raw bytes.

    Accepts raw bytes or a ``0x``-prefixed 64-character hex string.

    Raises:
        ValidationError: If the key is neither.
    """
    if isinstance(key, (bytes, bytearray)):
        if len(key) != SECRET_LENGTH:
            raise ValidationError(
                "Invalid private key format. Must be 32 bytes."
            )
        return bytes(key)
    if isinstance(key, str) and _HEX_KEY_PATTERN.match(key):
        return bytes.fromhex(key[2:])
    raise ValidationError(
        "Invalid private key format. Must be a 32-byte hex string with 0x prefix."
    )


class KeyManager:
    """Generates owner keys and seals them with a :class:`Cipher`."""

    def __init__(self, cipher: Optional[Cipher] = None):
        self.cipher = cipher or Cipher()

    def generate_key(self) -> bytes:
        """Return a fresh private key from the OS CSPRNG."""
        return bytes(Account.create().key)

    def derive_address(self, key: RawKey) -> str:
        """Checksummed address controlled by ``key``. Pure and deterministic."""
        key_bytes = to_key_bytes(key)
        try:
            return Account.from_key(key_bytes).address
        except (ValueError, KeyFormatError) as err:
            # zero or out-of-range scalars
            raise ValidationError(f"Invalid private key: {err}") from err

    def encrypt(self, key: RawKey, password: str) -> Envelope:
        key_bytes = to_key_bytes(key)
        validate_password(password, self.cipher.min_password_length)
        return self.cipher.seal(key_bytes, password)

    def decrypt(self, envelope: Envelope, password: str) -> bytes:
        """Open an envelope.

        Raises:
            CryptoError: Wrong password or corrupted envelope.
        """
        return self.cipher.open(envelope, password)
