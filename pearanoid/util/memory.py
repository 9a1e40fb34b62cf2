"""Secure memory for key material: SecureMemory, KeyObfuscator, exposed()."""

from __future__ import annotations

import ctypes
import logging
import platform
import secrets
import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Union

logger = logging.getLogger("pearanoid.memory")


# ---------------------------------------------------------------------------
#  SecureMemory
# ---------------------------------------------------------------------------
class SecureMemory:
    """A bytearray pinned in RAM (best effort) and overwritten on clear."""

    def __init__(self, data: Union[bytes, bytearray, str]):
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._data = bytearray(data)
        self._locked = False
        self._mlock()

    def _mlock(self) -> None:
        if not self._data:
            return
        try:
            address = ctypes.addressof(ctypes.c_char.from_buffer(self._data))
            size = ctypes.c_size_t(len(self._data))
            if platform.system() == "Windows":
                kernel32 = ctypes.WinDLL("kernel32", use_last_error=True)
                self._locked = bool(kernel32.VirtualLock(ctypes.c_void_p(address), size))
            else:
                libc = ctypes.CDLL(None)
                self._locked = libc.mlock(ctypes.c_void_p(address), size) == 0
        except Exception as exc:
            logger.debug("Memory locking unavailable: %s", exc)

    def _munlock(self) -> None:
        try:
            address = ctypes.addressof(ctypes.c_char.from_buffer(self._data))
            size = ctypes.c_size_t(len(self._data))
            if platform.system() == "Windows":
                ctypes.WinDLL("kernel32").VirtualUnlock(ctypes.c_void_p(address), size)
            else:
                ctypes.CDLL(None).munlock(ctypes.c_void_p(address), size)
        except Exception as exc:
            logger.debug("munlock failed: %s", exc)

    def get_bytes(self) -> bytes:
        if not self._data:
            raise ValueError("Memory already cleared")
        return bytes(self._data)

    def clear(self) -> None:
        if not self._data:
            return
        size = len(self._data)
        try:
            self._data[:] = secrets.token_bytes(size)
            self._data[:] = bytes(size)
            if self._locked:
                self._munlock()
        finally:
            self._data = bytearray()
            self._locked = False

    def __len__(self) -> int:
        return len(self._data)

    def __del__(self):
        self.clear()


def wipe(buf: Optional[bytearray]) -> None:
    """Zero a mutable buffer in place."""
    if buf:
        buf[:] = bytes(len(buf))


# ---------------------------------------------------------------------------
#  KeyObfuscator
# ---------------------------------------------------------------------------
class KeyObfuscator:
    """Holds a key XOR-masked so the plain bytes never sit in one buffer."""

    def __init__(self, key: bytes):
        mask = secrets.token_bytes(len(key))
        self._mask: Optional[SecureMemory] = SecureMemory(mask)
        self._masked: Optional[SecureMemory] = SecureMemory(
            bytes(a ^ b for a, b in zip(key, mask))
        )
        self._lock = threading.Lock()

    def reveal(self) -> SecureMemory:
        with self._lock:
            if self._masked is None or self._mask is None:
                raise ValueError("Key already cleared")
            masked = self._masked.get_bytes()
            mask = self._mask.get_bytes()
            return SecureMemory(bytes(a ^ b for a, b in zip(masked, mask)))

    @property
    def cleared(self) -> bool:
        return self._masked is None

    def clear(self) -> None:
        with self._lock:
            for part in (self._mask, self._masked):
                if part is not None:
                    part.clear()
            self._mask = None
            self._masked = None


@contextmanager
def exposed(ko: KeyObfuscator) -> Iterator[bytes]:
    """Reveal the key for the duration of the block, then wipe the copy."""
    plain = ko.reveal()
    try:
        yield plain.get_bytes()
    finally:
        plain.clear()
