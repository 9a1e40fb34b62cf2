"""Shared test fixtures."""

from __future__ import annotations

from typing import List, Optional

import pytest

from pearanoid.config import KDF_PBKDF2
from pearanoid.crypto.engine import CryptoEngine
from pearanoid.errors import NotFoundError, TransportError
from pearanoid.storage.backend import VaultStorage
from pearanoid.vault.session import VaultSession

# Low iteration count for speed; production never goes below 100k (see Config)
FAST_KDF = {"algorithm": KDF_PBKDF2, "iterations": 1_000}
GOOD_PASSWORD = "MyStr0ng!Pass#99"


class MemoryStorage(VaultStorage):
    """In-process stand-in for the remote store, with switchable failures."""

    def __init__(self, blob: Optional[bytes] = None):
        self.blob = blob
        self.saves: List[bytes] = []
        self.fail_fetch = False
        self.fail_save = False

    def fetch_encrypted_vault(self) -> bytes:
        if self.fail_fetch:
            raise TransportError("store unreachable")
        if self.blob is None:
            raise NotFoundError("Vault not found")
        return self.blob

    def save_encrypted_vault(self, blob: bytes) -> None:
        if self.fail_save:
            raise TransportError("store unreachable")
        self.blob = blob
        self.saves.append(blob)


class FakeClock:
    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def sample_password():
    return GOOD_PASSWORD


@pytest.fixture
def fast_engine():
    return CryptoEngine(FAST_KDF)


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(storage, fast_engine, clock):
    """An initialized, still-locked session with no vault in the store."""
    s = VaultSession(storage, fast_engine, timeout=600, clock=clock, auto_lock=False)
    s.initialize()
    yield s
    s.close()


@pytest.fixture
def unlocked(session):
    session.unlock(GOOD_PASSWORD)
    return session
