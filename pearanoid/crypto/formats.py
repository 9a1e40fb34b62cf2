"""Encrypted vault blob layout and protocol constants."""

from __future__ import annotations

from dataclasses import dataclass

from pearanoid.errors import AuthenticationError

# ============================================================================
#  Protocol constants
# ============================================================================
SALT_SIZE = 16  # 128 bits
NONCE_SIZE = 12  # 96 bits (AES-GCM)
KEY_SIZE = 32  # 256 bits
TAG_SIZE = 16  # 128 bits

# -- blob layout ------------------------------------------------------------
#  salt(16) || nonce(12) || ciphertext || tag(16)
SALT_OFFSET = 0
NONCE_OFFSET = SALT_OFFSET + SALT_SIZE
BODY_OFFSET = NONCE_OFFSET + NONCE_SIZE  # 28
MIN_BLOB_SIZE = BODY_OFFSET + TAG_SIZE  # 44


# ============================================================================
#  EncryptedBlob
# ============================================================================
@dataclass(frozen=True)
class EncryptedBlob:
    salt: bytes
    nonce: bytes
    body: bytes  # ciphertext with the GCM tag appended

    def to_bytes(self) -> bytes:
        return self.salt + self.nonce + self.body

    @classmethod
    def from_bytes(cls, data: bytes) -> EncryptedBlob:
        """Split raw bytes at the fixed offsets.

        A blob too short to hold the header and a tag can never verify, so it
        is reported the same way as a failed tag.
        """
        if len(data) < MIN_BLOB_SIZE:
            raise AuthenticationError()
        data = bytes(data)
        return cls(
            salt=data[SALT_OFFSET:NONCE_OFFSET],
            nonce=data[NONCE_OFFSET:BODY_OFFSET],
            body=data[BODY_OFFSET:],
        )
