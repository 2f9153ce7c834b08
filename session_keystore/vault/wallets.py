"""
WalletKeystore — persistence of primary wallets and their owner keys.

A wallet record is written once, on create or import, under
``wallets/<lower-cased owner address>``. The smart-account address is
computed by the caller's account provider and passed in as
``resolve_account``; this module never talks to a chain.
"""
import time
import logging
from typing import Callable, Optional

import pydantic

from ..exceptions import StorageError, ValidationError, WalletNotFound
from .config import DEFAULT_NETWORKS, DEFAULT_PROVIDERS
from .keys import KeyManager, RawKey, to_key_bytes
from .models import WalletRecord, dump_record, normalize_address
from .storage import CredentialStore

logger = logging.getLogger("keystore.vault")

WALLET_COLLECTION = "wallets"

AccountResolver = Callable[[bytes], str]


class WalletKeystore:
    """Creates, imports and unlocks primary wallets."""

    def __init__(
        self,
        store: CredentialStore,
        key_manager: Optional[KeyManager] = None,
        networks: tuple[str, ...] = DEFAULT_NETWORKS,
        providers: tuple[str, ...] = DEFAULT_PROVIDERS,
        clock: Callable[[], float] = time.time,
    ):
        self._store = store
        self._keys = key_manager or KeyManager()
        self._networks = networks
        self._providers = providers
        self._clock = clock

    def _validate_tags(self, network: str, provider: str) -> None:
        if network not in self._networks:
            raise ValidationError(
                f'Unsupported network: "{network}". '
                f"Supported networks: {', '.join(self._networks)}"
            )
        if provider not in self._providers:
            raise ValidationError(
                f'Unsupported provider: "{provider}". '
                f"Supported providers: {', '.join(self._providers)}"
            )

    def _store_wallet(
        self,
        private_key: bytes,
        password: str,
        network: str,
        provider: str,
        resolve_account: AccountResolver,
    ) -> WalletRecord:
        owner_address = self._keys.derive_address(private_key)
        envelope = self._keys.encrypt(private_key, password)
        account_address = resolve_account(private_key)
        try:
            record = WalletRecord(
                id=normalize_address(owner_address),
                address=account_address,
                owner_address=owner_address,
                encrypted_key=envelope,
                network=network,
                provider=provider,
                created_at=int(self._clock()),
            )
        except pydantic.ValidationError as err:
            raise ValidationError(
                f"Invalid smart account address: {account_address!r}"
            ) from err
        self._store.put(WALLET_COLLECTION, record.id, dump_record(record))
        logger.info(
            "Wallet stored: id=%s account=%s network=%s provider=%s",
            record.id, record.address, network, provider,
        )
        return record

    def create_wallet(
        self,
        password: str,
        *,
        network: str,
        provider: str,
        resolve_account: AccountResolver,
    ) -> WalletRecord:
        """Generate a fresh owner key and store it as a new wallet."""
        self._validate_tags(network, provider)
        private_key = self._keys.generate_key()
        return self._store_wallet(
            private_key, password, network, provider, resolve_account,
        )

    def import_wallet(
        self,
        private_key: RawKey,
        password: str,
        *,
        network: str,
        provider: str,
        resolve_account: AccountResolver,
    ) -> WalletRecord:
        """Store an existing owner key. Re-importing overwrites the record."""
        self._validate_tags(network, provider)
        return self._store_wallet(
            to_key_bytes(private_key), password, network, provider, resolve_account,
        )

    def get_wallet(self, wallet_id: str) -> Optional[WalletRecord]:
        """Return the wallet record, or None. Ids are case-insensitive."""
        wallet_id = normalize_address(wallet_id)
        raw = self._store.get(WALLET_COLLECTION, wallet_id)
        if raw is None:
            return None
        try:
            return WalletRecord.model_validate(raw)
        except pydantic.ValidationError as err:
            raise StorageError(f"Corrupt wallet record {wallet_id}: {err}") from err

    def list_wallets(self) -> set[str]:
        return self._store.list(WALLET_COLLECTION)

    def unlock_wallet(self, wallet_id: str, password: str) -> bytes:
        """Decrypt the owner key of a wallet.

        Raises:
            WalletNotFound: No such wallet.
            CryptoError: Wrong password or corrupted envelope.
            StorageError: The record does not parse, including out-of-range
                ``kdfParams``.
        """
        record = self.get_wallet(wallet_id)
        if record is None:
            raise WalletNotFound(wallet_id)
        return self._keys.decrypt(record.encrypted_key, password)
