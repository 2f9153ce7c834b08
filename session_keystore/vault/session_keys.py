"""
SessionKeyManager — lifecycle of delegated session keys.

Provides the public API for session keys:
- ``create_session_key(wallet, config, password)``: mint and persist a key
- ``list_sessions(wallet)``: descriptors with activity computed now
- ``get_session(wallet, id)``: raw record or None
- ``get_session_private_key(wallet, id, password)``: decrypt a usable key
- ``revoke_session(wallet, id)``: terminal revocation

States are a pure function of the clock and the stored window::

    PENDING  now < validAfter
    ACTIVE   validAfter <= now < validUntil
    EXPIRED  now >= validUntil
    REVOKED  after revoke_session(), from any state, forever

There is no timer or sweep; state is recomputed on every read.

Security Note:
    Never log private keys, passwords or envelopes. Only log session ids,
    wallet addresses and operations.
"""
import time
import uuid
import asyncio
import logging
from typing import Any, Callable, Optional, Union

import pydantic
from eth_account import Account
from eth_utils import is_address

from ..exceptions import (
    SessionExpired,
    SessionNotFound,
    SessionRevoked,
    StorageError,
    ValidationError,
)
from .crypto import Cipher, validate_password
from .models import (
    SessionKey,
    SessionKeyConfig,
    SessionKeyData,
    SessionKeyInfo,
    dump_record,
    normalize_address,
)
from .storage import CredentialStore

logger = logging.getLogger("keystore.vault")

SESSION_COLLECTION = "sessions"


def _validation_message(err: pydantic.ValidationError) -> str:
    return "; ".join(
        f"{'.'.join(str(p) for p in e['loc']) or 'config'}: {e['msg']}"
        for e in err.errors()
    )


class SessionKeyManager:
    """Creates, lists, unlocks and revokes session keys of one store.

    Session records live under ``sessions/<lower-cased wallet address>/``.
    Each session has its own random keypair, so leaking one session key
    exposes neither the wallet's owner key nor any other session.
    """

    def __init__(
        self,
        store: CredentialStore,
        cipher: Optional[Cipher] = None,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._cipher = cipher or Cipher()
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    # ------------------------------------------------------------------
    # Record helpers
    # ------------------------------------------------------------------

    def _collection(self, wallet_address: str) -> str:
        if not isinstance(wallet_address, str) or not is_address(wallet_address):
            raise ValidationError(
                f"Wallet address is not a valid address: {wallet_address!r}"
            )
        return f"{SESSION_COLLECTION}/{normalize_address(wallet_address)}"

    def _load(self, collection: str, session_id: str) -> Optional[SessionKeyData]:
        raw = self._store.get(collection, session_id)
        if raw is None:
            return None
        try:
            return SessionKeyData.model_validate(raw)
        except pydantic.ValidationError as err:
            raise StorageError(
                f"Corrupt session record {collection}/{session_id}: "
                f"{_validation_message(err)}"
            ) from err

    def _save(self, collection: str, data: SessionKeyData) -> None:
        self._store.put(collection, data.info.id, dump_record(data))

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def create_session_key(
        self,
        wallet_address: str,
        config: Union[SessionKeyConfig, dict[str, Any]],
        password: str,
    ) -> SessionKeyData:
        """Mint a new session key for a wallet.

        Args:
            wallet_address: Address of the owning wallet.
            config: Label, validity window and permission schema.
            password: Password sealing the session's private key.

        Returns:
            The persisted record (descriptor plus encrypted key).

        Raises:
            ValidationError: Empty label, invalid or already-expired window,
                malformed permissions, bad address or weak password.
            StorageError: If the record cannot be written.
        """
        collection = self._collection(wallet_address)
        if not isinstance(config, SessionKeyConfig):
            try:
                config = SessionKeyConfig.model_validate(config)
            except pydantic.ValidationError as err:
                raise ValidationError(_validation_message(err)) from err

        now = self._now()
        if config.valid_until <= now:
            raise ValidationError("Session validUntil must be in the future.")
        validate_password(password, self._cipher.min_password_length)

        account = Account.create()
        envelope = self._cipher.seal(bytes(account.key), password)
        info = SessionKey(
            id=str(uuid.uuid4()),
            session_key_address=account.address,
            label=config.label,
            valid_after=config.valid_after,
            valid_until=config.valid_until,
            permissions=config.permissions,
            is_revoked=False,
            created_at=now,
        )
        data = SessionKeyData(info=info, encrypted_private_key=envelope)
        self._save(collection, data)

        logger.info(
            "Session created: wallet=%s id=%s label=%s valid=[%d, %d)",
            normalize_address(wallet_address), info.id, info.label,
            info.valid_after, info.valid_until,
        )
        if info.permissions.is_unrestricted():
            logger.warning(
                "Session %s has no permission limits; the execution layer "
                "will not constrain its calls", info.id,
            )
        return data

    def list_sessions(self, wallet_address: str) -> list[SessionKeyInfo]:
        """Describe every session of a wallet.

        ``is_active`` reflects the clock at call time. Order follows storage
        enumeration and is not stable; sort by ``created_at`` if needed.
        """
        collection = self._collection(wallet_address)
        now = self._now()
        sessions = []
        for session_id in self._store.list(collection):
            data = self._load(collection, session_id)
            if data is None:
                # removed between list() and get()
                continue
            sessions.append(data.info.describe(now))
        return sessions

    def get_session(
        self, wallet_address: str, session_id: str,
    ) -> Optional[SessionKeyData]:
        """Return the stored record, or None if there is none."""
        return self._load(self._collection(wallet_address), session_id)

    def get_session_private_key(
        self, wallet_address: str, session_id: str, password: str,
    ) -> bytes:
        """Decrypt the private key of a usable session.

        Pending sessions can be unlocked; only revocation and expiry block it.

        Raises:
            SessionNotFound: No such session for this wallet.
            SessionRevoked: The session was revoked.
            SessionExpired: ``now >= validUntil``.
            CryptoError: Wrong password, or an envelope whose bytes do not
                authenticate.
            StorageError: The record does not parse, including an envelope
                whose ``kdfParams`` are out of range. The record is rejected
                before any decryption is attempted.
        """
        data = self.get_session(wallet_address, session_id)
        if data is None:
            raise SessionNotFound(session_id)
        if data.info.is_revoked:
            raise SessionRevoked(session_id)
        if self._now() >= data.info.valid_until:
            raise SessionExpired(session_id, data.info.valid_until)
        return self._cipher.open(data.encrypted_private_key, password)

    def revoke_session(self, wallet_address: str, session_id: str) -> bool:
        """Revoke a session permanently.

        Revoking an already-revoked session succeeds without rewriting it.

        Raises:
            SessionNotFound: No such session for this wallet.
        """
        collection = self._collection(wallet_address)
        data = self._load(collection, session_id)
        if data is None:
            raise SessionNotFound(session_id)
        if data.info.is_revoked:
            logger.debug("Session already revoked: id=%s", session_id)
            return True
        self._save(collection, data.revoke())
        logger.info(
            "Session revoked: wallet=%s id=%s",
            normalize_address(wallet_address), session_id,
        )
        return True

    # ------------------------------------------------------------------
    # Async variants (KDF runs in a worker thread)
    # ------------------------------------------------------------------

    async def acreate_session_key(
        self,
        wallet_address: str,
        config: Union[SessionKeyConfig, dict[str, Any]],
        password: str,
    ) -> SessionKeyData:
        return await asyncio.to_thread(
            self.create_session_key, wallet_address, config, password,
        )

    async def aget_session_private_key(
        self, wallet_address: str, session_id: str, password: str,
    ) -> bytes:
        return await asyncio.to_thread(
            self.get_session_private_key, wallet_address, session_id, password,
        )
