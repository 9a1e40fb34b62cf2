"""Pearanoid cryptographic modules."""

from pearanoid.crypto.engine import CryptoEngine, PasswordGenerator, VaultKey
from pearanoid.crypto.formats import (
    KEY_SIZE,
    MIN_BLOB_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    TAG_SIZE,
    EncryptedBlob,
)

__all__ = [
    "CryptoEngine",
    "PasswordGenerator",
    "VaultKey",
    "EncryptedBlob",
    "KEY_SIZE",
    "MIN_BLOB_SIZE",
    "NONCE_SIZE",
    "SALT_SIZE",
    "TAG_SIZE",
]
