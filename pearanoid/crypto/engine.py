"""CryptoEngine (KDF + AES-GCM over the whole vault) and PasswordGenerator."""

from __future__ import annotations

import json
import logging
import math
import secrets
import string
from typing import Tuple, Union

import argon2
import argon2.low_level
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from pearanoid.config import KDF_ARGON2ID, KDF_PBKDF2, PBKDF2_MIN_ITERATIONS, Config
from pearanoid.crypto.formats import (
    KEY_SIZE,
    NONCE_SIZE,
    SALT_SIZE,
    EncryptedBlob,
)
from pearanoid.errors import AuthenticationError, ValidationError, VaultFormatError
from pearanoid.util.memory import KeyObfuscator, SecureMemory, exposed, wipe
from pearanoid.vault.models import VAULT_SCHEMA_VERSION, Vault

logger = logging.getLogger("pearanoid.crypto")

Password = Union[str, bytes, SecureMemory]


def _password_bytes(password: Password) -> bytes:
    if isinstance(password, SecureMemory):
        return password.get_bytes() if len(password) else b""
    if isinstance(password, str):
        return password.encode("utf-8")
    return bytes(password)


# ============================================================================
#  VaultKey
# ============================================================================
class VaultKey:
    """A derived key bound to the salt it was derived with."""

    def __init__(self, salt: bytes, key: bytes):
        if len(salt) != SALT_SIZE or len(key) != KEY_SIZE:
            raise ValueError("Bad salt or key length")
        self.salt = bytes(salt)
        self._ko = KeyObfuscator(key)

    @property
    def cleared(self) -> bool:
        return self._ko.cleared

    def exposed(self):
        return exposed(self._ko)

    def clear(self) -> None:
        self._ko.clear()

    def __repr__(self) -> str:
        state = "cleared" if self.cleared else "live"
        return f"<VaultKey {state}>"


# ============================================================================
#  CryptoEngine
# ============================================================================
class CryptoEngine:
    """PBKDF2-HMAC-SHA256 (or Argon2id) KDF + AES-256-GCM for vault blobs."""

    def __init__(self, kdf_params: dict | None = None):
        if kdf_params is None:
            kdf_params = Config.get_kdf_params()

        self.algorithm = kdf_params.get("algorithm", KDF_PBKDF2)
        self.iterations = kdf_params.get("iterations", PBKDF2_MIN_ITERATIONS)
        self.time_cost = kdf_params.get("time_cost")
        self.memory_cost = kdf_params.get("memory_cost")
        self.parallelism = kdf_params.get("parallelism")

        if self.algorithm == KDF_ARGON2ID:
            logger.info(
                "CryptoEngine: Argon2id(t=%d, m=%d KiB, p=%d)",
                self.time_cost,
                self.memory_cost,
                self.parallelism,
            )
        elif self.algorithm == KDF_PBKDF2:
            logger.info("CryptoEngine: PBKDF2-SHA256(i=%d)", self.iterations)
        else:
            raise ValueError(f"Unsupported KDF: {self.algorithm}")

    # ------------------------------------------------------------------
    #  Key derivation
    # ------------------------------------------------------------------
    def derive_key(self, password: Password, salt: bytes) -> bytes:
        pw = _password_bytes(password)
        if not pw:
            raise ValidationError("Empty password")
        if len(salt) != SALT_SIZE:
            raise ValueError(f"Salt must be {SALT_SIZE} bytes")

        if self.algorithm == KDF_ARGON2ID:
            try:
                return argon2.low_level.hash_secret_raw(
                    pw,
                    salt,
                    time_cost=self.time_cost,
                    memory_cost=self.memory_cost,
                    parallelism=self.parallelism,
                    hash_len=KEY_SIZE,
                    type=argon2.Type.ID,
                )
            except MemoryError:
                raise RuntimeError(
                    f"Not enough RAM for KDF ({self.memory_cost // 1024} MiB required). "
                    "Try a lower KDF profile."
                )

        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=KEY_SIZE,
            salt=salt,
            iterations=self.iterations,
        )
        return kdf.derive(pw)

    def new_key(self, password: Password) -> VaultKey:
        """Derive a key under a fresh random salt."""
        salt = secrets.token_bytes(SALT_SIZE)
        return VaultKey(salt, self.derive_key(password, salt))

    # ------------------------------------------------------------------
    #  Whole-vault AEAD
    # ------------------------------------------------------------------
    def seal(self, vault: Vault, key: VaultKey) -> bytes:
        """Encrypt *vault* under *key* with a fresh nonce."""
        plaintext = bytearray(serialize_vault(vault))
        nonce = secrets.token_bytes(NONCE_SIZE)
        try:
            with key.exposed() as raw:
                body = AESGCM(raw).encrypt(nonce, bytes(plaintext), None)
        finally:
            wipe(plaintext)
        return EncryptedBlob(salt=key.salt, nonce=nonce, body=body).to_bytes()

    def open(self, data: bytes, password: Password) -> Tuple[Vault, VaultKey]:
        """Decrypt *data*; return the vault and the key it was sealed with."""
        blob = EncryptedBlob.from_bytes(data)
        key = VaultKey(blob.salt, self.derive_key(password, blob.salt))
        try:
            with key.exposed() as raw:
                plaintext = bytearray(AESGCM(raw).decrypt(blob.nonce, blob.body, None))
        except InvalidTag:
            key.clear()
            raise AuthenticationError() from None

        try:
            vault = deserialize_vault(plaintext)
        except VaultFormatError:
            key.clear()
            raise
        finally:
            wipe(plaintext)
        return vault, key

    def encrypt(self, vault: Vault, password: Password) -> bytes:
        key = self.new_key(password)
        try:
            return self.seal(vault, key)
        finally:
            key.clear()

    def decrypt(self, data: bytes, password: Password) -> Vault:
        vault, key = self.open(data, password)
        key.clear()
        return vault


# ============================================================================
#  Canonical serialisation
# ============================================================================
def serialize_vault(vault: Vault) -> bytes:
    return json.dumps(
        vault.to_dict(), sort_keys=True, separators=(",", ":"), ensure_ascii=False
    ).encode("utf-8")


def deserialize_vault(plaintext: bytes) -> Vault:
    try:
        data = json.loads(bytes(plaintext).decode("utf-8"))
        if not isinstance(data, dict):
            raise TypeError("vault payload is not an object")
        vault = Vault.from_dict(data)
    except (ValueError, KeyError, TypeError) as exc:
        raise VaultFormatError(f"Unreadable vault payload: {type(exc).__name__}") from None
    if vault.version != VAULT_SCHEMA_VERSION:
        raise VaultFormatError(f"Unsupported vault version: {vault.version}")
    return vault


# ============================================================================
#  PasswordGenerator
# ============================================================================
UPPERCASE = string.ascii_uppercase
LOWERCASE = string.ascii_lowercase
DIGITS = string.digits
SYMBOLS = "!@#$%^&*()_-+=<>?/[]{}|~"


class PasswordGenerator:
    """Random passwords with at least one character from every chosen class."""

    _rng = secrets.SystemRandom()

    @staticmethod
    def generate(
        length: int = Config.DEFAULT_PASSWORD_LENGTH,
        uppercase: bool = True,
        lowercase: bool = True,
        digits: bool = True,
        symbols: bool = True,
    ) -> str:
        if length < Config.MIN_GENERATED_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password length must be at least {Config.MIN_GENERATED_PASSWORD_LENGTH}"
            )
        if length > Config.MAX_GENERATED_PASSWORD_LENGTH:
            raise ValidationError(
                f"Password length must be at most {Config.MAX_GENERATED_PASSWORD_LENGTH}"
            )

        classes = [
            chars
            for chars, wanted in (
                (UPPERCASE, uppercase),
                (LOWERCASE, lowercase),
                (DIGITS, digits),
                (SYMBOLS, symbols),
            )
            if wanted
        ]
        if not classes:
            raise ValidationError("At least one character set must be selected")

        alphabet = "".join(classes)
        chars = [secrets.choice(c) for c in classes]
        chars += [secrets.choice(alphabet) for _ in range(length - len(chars))]
        PasswordGenerator._rng.shuffle(chars)
        return "".join(chars)

    @staticmethod
    def calculate_entropy(password: str, charset: str) -> float:
        if not password or not charset:
            return 0.0
        return len(password) * math.log2(len(set(charset)))
