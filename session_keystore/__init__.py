"""Session Keystore.

Encrypted credential store and session-key lifecycle manager.
"""
from .version import __version__
from .exceptions import (
    KeystoreError,
    ValidationError,
    CryptoError,
    StateError,
    SessionNotFound,
    SessionRevoked,
    SessionExpired,
    WalletNotFound,
    StorageError,
)
from .vault import (
    KeystoreConfig,
    ScryptParams,
    Cipher,
    CredentialStore,
    KeyManager,
    Envelope,
    PermissionSchema,
    SessionKey,
    SessionKeyConfig,
    SessionKeyData,
    SessionKeyInfo,
    SessionState,
    WalletRecord,
    SessionKeyManager,
    WalletKeystore,
    rotate_password,
)


def open_keystore(config: KeystoreConfig) -> tuple[WalletKeystore, SessionKeyManager]:
    """Wire a wallet keystore and a session manager over one store."""
    store = CredentialStore(config.base_dir)
    cipher = Cipher(config.scrypt, config.min_password_length)
    wallets = WalletKeystore(
        store,
        KeyManager(cipher),
        networks=config.networks,
        providers=config.providers,
    )
    return wallets, SessionKeyManager(store, cipher)


__all__ = [
    "__version__",
    "open_keystore",
    "KeystoreError",
    "ValidationError",
    "CryptoError",
    "StateError",
    "SessionNotFound",
    "SessionRevoked",
    "SessionExpired",
    "WalletNotFound",
    "StorageError",
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
