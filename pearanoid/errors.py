"""Error taxonomy shared by the crypto, storage and session layers."""

from __future__ import annotations


class PearanoidError(Exception):
    """Base class for every error raised by pearanoid."""


class TransportError(PearanoidError):
    """The encrypted blob could not be fetched or saved."""


class NotFoundError(PearanoidError):
    """No vault exists in the store yet."""


class AuthenticationError(PearanoidError):
    """Decryption failed: wrong master password or corrupted blob."""

    def __init__(self, message: str = "Invalid master password or corrupted vault"):
        super().__init__(message)


class VaultFormatError(AuthenticationError):
    """Blob authenticated but its payload is not a vault we understand."""


class ValidationError(PearanoidError, ValueError):
    """Caller supplied input that can never succeed (bad fields, bad lengths)."""
