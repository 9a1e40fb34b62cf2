"""Storage contract plus FileStorage: atomic writes, backup, file locking, permissions."""

from __future__ import annotations

import abc
import logging
import os
import platform
import shutil
import tempfile
import time
from pathlib import Path

from pearanoid.config import Config
from pearanoid.crypto.formats import MIN_BLOB_SIZE
from pearanoid.errors import NotFoundError, TransportError

logger = logging.getLogger("pearanoid.storage")


class VaultStorage(abc.ABC):
    """Where the opaque encrypted blob lives. Never sees plaintext."""

    @abc.abstractmethod
    def fetch_encrypted_vault(self) -> bytes:
        """Return the stored blob; raise NotFoundError or TransportError."""

    @abc.abstractmethod
    def save_encrypted_vault(self, blob: bytes) -> None:
        """Replace the stored blob; raise TransportError on failure."""

    def close(self) -> None:
        pass


class FileStorage(VaultStorage):
    """Vault file I/O with atomic writes, one backup, and cross-platform locking."""

    def __init__(self, vault_path: Path):
        self.vault_path = vault_path
        self.backup_path = vault_path.parent / (vault_path.name + ".backup")
        self.lock_path = vault_path.parent / (vault_path.name + ".lock")
        self._lock_file = None

        # Ensure directory exists
        self.vault_path.parent.mkdir(parents=True, exist_ok=True)
        if platform.system() != "Windows":
            try:
                os.chmod(self.vault_path.parent, 0o700)
            except OSError:
                pass

        self._acquire_lock()

    # -- locking ------------------------------------------------------------
    def _acquire_lock(self) -> None:
        try:
            self.lock_path.touch(mode=0o600, exist_ok=True)
            self._lock_file = open(self.lock_path, "r+b")
            if platform.system() != "Windows":
                import fcntl

                fcntl.flock(self._lock_file.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError as exc:
            if self._lock_file is not None:
                try:
                    self._lock_file.close()
                except OSError:
                    pass
                self._lock_file = None
            raise TransportError("Vault is already in use by another process") from exc

    def _release_lock(self) -> None:
        if self._lock_file:
            try:
                self._lock_file.close()
            except OSError:
                pass
            finally:
                self._lock_file = None
            try:
                self.lock_path.unlink()
            except OSError:
                pass

    # -- contract -----------------------------------------------------------
    def fetch_encrypted_vault(self) -> bytes:
        """Read the vault, falling back to the backup if the file is gone or truncated."""
        try:
            data = self._read_or_none()
            if data is not None and len(data) >= MIN_BLOB_SIZE:
                return data
            if self.restore_backup():
                logger.warning("Vault file missing or truncated; restored from backup")
                return self.read()
        except OSError as exc:
            raise TransportError(f"Could not read vault: {exc}") from exc
        if data is None:
            raise NotFoundError("Vault not found")
        return data

    def save_encrypted_vault(self, blob: bytes) -> None:
        if len(blob) > Config.MAX_VAULT_SIZE:
            raise TransportError(f"Vault too large: {len(blob)} bytes")
        try:
            self.write_atomic(blob)
        except OSError as exc:
            raise TransportError(f"Could not write vault: {exc}") from exc

    # -- read / write -------------------------------------------------------
    def write_atomic(self, data: bytes) -> None:
        # 1. Back up current file
        if self.vault_path.exists():
            shutil.copy2(self.vault_path, self.backup_path)
            self._secure_permissions(self.backup_path)

        # 2. Write to temp file with restricted permissions via umask
        old_umask = None
        try:
            if os.name != "nt":
                old_umask = os.umask(0o077)
            with tempfile.NamedTemporaryFile(
                mode="wb",
                dir=self.vault_path.parent,
                prefix="pv_tmp_",
                suffix=".dat",
                delete=False,
            ) as tmp:
                tmp.write(data)
                tmp.flush()
                os.fsync(tmp.fileno())
                temp_path = Path(tmp.name)
        finally:
            if old_umask is not None:
                os.umask(old_umask)

        # 3. Atomic rename
        self._secure_permissions(temp_path)
        temp_path.replace(self.vault_path)
        self._secure_permissions(self.vault_path)

        self._cleanup_temp_files()
        logger.info("Vault saved (%d bytes)", len(data))

    def read(self) -> bytes:
        size = self.vault_path.stat().st_size
        if size > Config.MAX_VAULT_SIZE:
            raise TransportError(
                f"Vault too large: {size} bytes (max {Config.MAX_VAULT_SIZE})"
            )

        # Fix open permissions
        if platform.system() != "Windows":
            st = self.vault_path.stat()
            if st.st_mode & 0o077:
                logger.warning("Vault permissions too open, fixing...")
                os.chmod(self.vault_path, 0o600)

        return self.vault_path.read_bytes()

    def _read_or_none(self) -> bytes | None:
        try:
            return self.read()
        except FileNotFoundError:
            return None

    # -- backup / restore ---------------------------------------------------
    def restore_backup(self) -> bool:
        if self.verify_backup_integrity():
            shutil.copy2(self.backup_path, self.vault_path)
            logger.info("Vault restored from backup")
            return True
        return False

    def verify_backup_integrity(self) -> bool:
        """Cheap structural check; only a decrypt can prove the backup is good."""
        if not self.backup_path.exists():
            return False
        try:
            size = self.backup_path.stat().st_size
        except OSError as exc:
            logger.error("Backup unreadable: %s", exc)
            return False
        return MIN_BLOB_SIZE <= size <= Config.MAX_VAULT_SIZE

    # -- permissions --------------------------------------------------------
    def _secure_permissions(self, path: Path) -> None:
        if platform.system() == "Windows":
            return
        try:
            os.chmod(path, 0o600)
        except OSError as exc:
            logger.warning("Error setting permissions on %s: %s", path, exc)

    def _cleanup_temp_files(self) -> None:
        for tmp in self.vault_path.parent.glob("pv_tmp_*"):
            try:
                if time.time() - tmp.stat().st_mtime > 3600:
                    tmp.unlink()
            except OSError:
                pass

    # -- lifecycle ----------------------------------------------------------
    def close(self) -> None:
        self._release_lock()

    def __del__(self):
        self._release_lock()
