"""
Keystore exceptions.

Every error raised by the keystore carries a machine-readable ``code`` so
callers can branch without parsing messages.
"""
from typing import Optional


class KeystoreError(Exception):
    """Base class for all keystore errors."""

    code: str = "KEYSTORE_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r}, message={self.message!r})"


class ValidationError(KeystoreError, ValueError):
    """Malformed input, rejected before any I/O or cryptography."""

    code = "VALIDATION_ERROR"


class CryptoError(KeystoreError):
    """Authenticated decryption failed.

    Wrong password and corrupted data produce the same message.
    """

    code = "CRYPTO_ERROR"


class StateError(KeystoreError):
    code = "STATE_ERROR"


class SessionNotFound(StateError):
    code = "SESSION_NOT_FOUND"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session key not found: {session_id}")
        self.session_id = session_id


class SessionRevoked(StateError):
    code = "SESSION_REVOKED"

    def __init__(self, session_id: str) -> None:
        super().__init__(f"Session key has been revoked: {session_id}")
        self.session_id = session_id


class SessionExpired(StateError):
    code = "SESSION_EXPIRED"

    def __init__(self, session_id: str, valid_until: int) -> None:
        super().__init__(
            f"Session key {session_id} expired at {valid_until}"
        )
        self.session_id = session_id
        self.valid_until = valid_until


class WalletNotFound(StateError):
    code = "WALLET_NOT_FOUND"

    def __init__(self, wallet_id: str) -> None:
        super().__init__(f"Wallet not found: {wallet_id}")
        self.wallet_id = wallet_id


class StorageError(KeystoreError):
    """I/O failure in the credential store. Never retried internally."""

    code = "STORAGE_ERROR"
