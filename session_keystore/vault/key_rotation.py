"""
Keystore Password Rotation — Re-encryption of every stored envelope.

Re-seals all wallet and session envelopes from one password to another,
using the cipher's current KDF parameters. Each record is rewritten on its
own (atomic per file), so an interrupted run can be resumed: records already
moved to the new password fail to open with the old one and are counted as
errors, and running with old == new upgrades only the envelopes sealed under
outdated KDF parameters.

Security Note:
    Plaintext keys exist in memory only during re-encryption of each record.
    Never log plaintext, passwords or ciphertext values.
"""
import logging
from typing import Any, Callable, Iterator, Optional

import pydantic
from pydantic import BaseModel

from ..exceptions import CryptoError, StorageError
from .crypto import Cipher, validate_password
from .models import (
    Envelope,
    SessionKeyData,
    WalletRecord,
    dump_record,
)
from .session_keys import SESSION_COLLECTION
from .storage import CredentialStore
from .wallets import WALLET_COLLECTION

logger = logging.getLogger("keystore.vault")


def _records(store: CredentialStore) -> Iterator[tuple[str, str, type]]:
    for record_id in sorted(store.list(WALLET_COLLECTION)):
        yield WALLET_COLLECTION, record_id, WalletRecord
    for wallet in sorted(store.collections(SESSION_COLLECTION)):
        collection = f"{SESSION_COLLECTION}/{wallet}"
        for record_id in sorted(store.list(collection)):
            yield collection, record_id, SessionKeyData


def _envelope_of(record: BaseModel) -> Envelope:
    if isinstance(record, WalletRecord):
        return record.encrypted_key
    return record.encrypted_private_key


def _with_envelope(record: BaseModel, envelope: Envelope) -> BaseModel:
    if isinstance(record, WalletRecord):
        return record.model_copy(update={"encrypted_key": envelope})
    return record.model_copy(update={"encrypted_private_key": envelope})


def rotate_password(
    store: CredentialStore,
    cipher: Cipher,
    old_password: str,
    new_password: str,
    on_progress: Optional[Callable[[str, str], Any]] = None,
) -> dict:
    """Re-encrypt every wallet and session key under ``new_password``.

    Args:
        store: Credential store holding the records.
        cipher: Cipher whose KDF parameters the new envelopes use.
        old_password: Password currently sealing the records.
        new_password: Password to seal them with.
        on_progress: Optional callback ``(collection, record_id)`` invoked
            after each rewritten record.

    Returns:
        Stats dict with keys: total, rotated, errors, skipped.

    Raises:
        ValidationError: If ``new_password`` is too weak.
        StorageError: If a record cannot be read or written.
    """
    validate_password(new_password, cipher.min_password_length)
    same_password = old_password == new_password
    stats = {"total": 0, "rotated": 0, "errors": 0, "skipped": 0}

    logger.info("Starting password rotation (scrypt_n=%d)", cipher.params.n)

    for collection, record_id, model in _records(store):
        raw = store.get(collection, record_id)
        if raw is None:
            continue
        stats["total"] += 1
        try:
            record = model.model_validate(raw)
        except pydantic.ValidationError as err:
            raise StorageError(
                f"Corrupt record {collection}/{record_id}: {err}"
            ) from err

        envelope = _envelope_of(record)
        if same_password and not cipher.needs_rehash(envelope):
            stats["skipped"] += 1
            continue

        try:
            secret = cipher.open(envelope, old_password)
        except CryptoError:
            logger.error(
                "Cannot open %s/%s with the current password", collection, record_id,
            )
            stats["errors"] += 1
            continue

        store.put(
            collection,
            record_id,
            dump_record(_with_envelope(record, cipher.seal(secret, new_password))),
        )
        stats["rotated"] += 1
        if on_progress is not None:
            on_progress(collection, record_id)

    logger.info("Password rotation complete: %s", stats)
    return stats
