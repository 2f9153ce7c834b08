"""Keystore Vault — Encrypted wallet and session-key storage.

Security Note (Threat Model):
    Private keys are encrypted at rest with a password-derived key and
    decrypted in process memory only when a caller asks for them. A memory
    dump of the process while a key is in use can expose it; mitigating that
    requires HSM/secure enclave integration, which is out of scope.
"""

from .config import KeystoreConfig, ScryptParams
from .crypto import Cipher
from .storage import CredentialStore
from .keys import KeyManager
from .models import (
    Envelope,
    PermissionSchema,
    SessionKey,
    SessionKeyConfig,
    SessionKeyData,
    SessionKeyInfo,
    SessionState,
    WalletRecord,
)
from .session_keys import SessionKeyManager
from .wallets import WalletKeystore
from .key_rotation import rotate_password

__all__ = [
    "KeystoreConfig",
    "ScryptParams",
    "Cipher",
    "CredentialStore",
    "KeyManager",
    "Envelope",
    "PermissionSchema",
    "SessionKey",
    "SessionKeyConfig",
    "SessionKeyData",
    "SessionKeyInfo",
    "SessionState",
    "WalletRecord",
    "SessionKeyManager",
    "WalletKeystore",
    "rotate_password",
]
