import time

import pytest

from session_keystore.vault.config import ScryptParams
from session_keystore.vault.crypto import Cipher
from session_keystore.vault.storage import CredentialStore
from session_keystore.vault.session_keys import SessionKeyManager


WALLET_ADDRESS = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
PASSWORD = "test-password-12345"


class FakeClock:
    """Settable wall clock in epoch seconds."""

    def __init__(self, now: int):
        self.now = now

    def __call__(self) -> float:
        return float(self.now)

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def fast_params():
    """Cheap scrypt parameters so tests don't spend a second per seal."""
    return ScryptParams(n=2 ** 10, r=8, p=1)


@pytest.fixture
def cipher(fast_params):
    """Cipher using the fast parameters."""
    return Cipher(fast_params)


@pytest.fixture
def store(tmp_path):
    """CredentialStore in a per-test directory."""
    return CredentialStore(tmp_path / "keystore")


@pytest.fixture
def clock():
    """FakeClock starting at the current time."""
    return FakeClock(int(time.time()))


@pytest.fixture
def sessions(store, cipher, clock):
    """SessionKeyManager wired to the test store, cipher and clock."""
    return SessionKeyManager(store, cipher, clock=clock)
