"""VaultSession: lock/unlock state machine, CRUD, persistence and auto-lock."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, List, Optional, Tuple

from pearanoid.config import Config
from pearanoid.crypto.engine import CryptoEngine, Password, VaultKey
from pearanoid.errors import AuthenticationError, NotFoundError, PearanoidError
from pearanoid.storage.backend import VaultStorage
from pearanoid.util.idle import IdleTimer
from pearanoid.vault.models import CredentialEntry, Vault, extract_sections

logger = logging.getLogger("pearanoid.vault")

INVALID_PASSWORD = "Invalid master password"

Listener = Callable[["VaultSession"], None]


class SessionState(enum.Enum):
    UNINITIALIZED = "uninitialized"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class VaultSession:
    """Sole owner of the decrypted vault and the only way to change it.

    Every public operation runs under one re-entrant lock, so a mutation and
    the encrypt-then-save that follows it can never interleave with another
    mutation, a lock, or the idle check.

    The plaintext vault and the derived key exist only while the state is
    ``UNLOCKED``; both are dropped before ``lock()`` returns, whichever path
    (explicit or idle) triggered it.
    """

    def __init__(
        self,
        storage: VaultStorage,
        crypto: CryptoEngine,
        timeout: float = Config.SESSION_TIMEOUT,
        check_interval: float = Config.IDLE_CHECK_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        auto_lock: bool = True,
    ):
        self.storage = storage
        self.crypto = crypto
        self.timeout = timeout
        self.check_interval = check_interval
        self._clock = clock
        self._auto_lock = auto_lock

        self._lock = threading.RLock()
        self._state = SessionState.UNINITIALIZED
        self._vault_exists = False
        self._vault: Optional[Vault] = None
        self._key: Optional[VaultKey] = None
        self._sections: List[str] = []
        self._last_activity = clock()
        self._last_error: Optional[str] = None
        self._loading = False
        self._dirty = False
        self._timer: Optional[IdleTimer] = None
        self._listeners: List[Listener] = []

    # ------------------------------------------------------------------
    #  Observers
    # ------------------------------------------------------------------
    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state is not SessionState.UNLOCKED

    @property
    def is_initialized(self) -> bool:
        return self._state is not SessionState.UNINITIALIZED

    @property
    def vault_exists(self) -> bool:
        return self._vault_exists

    @property
    def entries(self) -> Tuple[CredentialEntry, ...]:
        with self._lock:
            if self._vault is None:
                return ()
            return tuple(e.copy() for e in self._vault.entries)

    def get_entry(self, entry_id: str) -> Optional[CredentialEntry]:
        with self._lock:
            if self._vault is None:
                return None
            entry = self._vault.find(entry_id)
            return entry.copy() if entry else None

    @property
    def sections(self) -> List[str]:
        return list(self._sections)

    @property
    def vault(self) -> Optional[Vault]:
        """A detached copy of the vault, or None while locked."""
        with self._lock:
            return self._vault.copy() if self._vault is not None else None

    @property
    def has_key(self) -> bool:
        """True while a derived key is held. The key itself never leaves the session."""
        return self._key is not None

    @property
    def last_error(self) -> Optional[str]:
        return self._last_error

    @property
    def loading(self) -> bool:
        return self._loading

    @property
    def has_unsaved_changes(self) -> bool:
        return self._dirty

    @property
    def last_activity(self) -> float:
        return self._last_activity

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call *listener(session)* after every state change."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener failed")

    # ------------------------------------------------------------------
    #  Initialize / unlock / lock
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Find out whether a vault exists yet. State stays put on transport errors."""
        with self._lock:
            self._begin()
            try:
                self.storage.fetch_encrypted_vault()
                exists = True
            except NotFoundError:
                exists = False
            except PearanoidError as exc:
                self._fail(str(exc))
                raise
            finally:
                self._loading = False

            self._vault_exists = exists
            if self._state is SessionState.UNINITIALIZED:
                self._state = SessionState.LOCKED
            logger.info("Session initialized (vault %s)", "found" if exists else "absent")
            self._notify()

    def unlock(self, password: Password) -> None:
        """Open the stored vault, or create an empty one if none exists."""
        with self._lock:
            if self._state is SessionState.UNLOCKED:
                self.touch_activity()
                return

            self._begin()
            try:
                vault, key = self._open_or_create(password)
            except AuthenticationError:
                self._vault_exists = True
                if self._state is SessionState.UNINITIALIZED:
                    self._state = SessionState.LOCKED
                self._fail(INVALID_PASSWORD)
                logger.warning("Unlock failed: invalid master password")
                raise AuthenticationError(INVALID_PASSWORD) from None
            except PearanoidError as exc:
                self._fail(str(exc))
                raise
            finally:
                self._loading = False

            self._vault = vault
            self._key = key
            self._sections = extract_sections(vault.entries)
            self._vault_exists = True
            self._dirty = False
            self._state = SessionState.UNLOCKED
            self._last_activity = self._clock()
            self._arm_timer()
            logger.info("Vault unlocked: %d entries", len(vault.entries))
            self._notify()

    def _open_or_create(self, password: Password) -> Tuple[Vault, VaultKey]:
        try:
            blob = self.storage.fetch_encrypted_vault()
        except NotFoundError:
            blob = None

        if blob is not None:
            return self.crypto.open(blob, password)

        vault = Vault()
        key = self.crypto.new_key(password)
        try:
            self.storage.save_encrypted_vault(self.crypto.seal(vault, key))
        except BaseException:
            key.clear()
            raise
        logger.info("New vault created")
        return vault, key

    def lock(self, reason: str = "manual") -> None:
        """Drop the plaintext vault and key. No-op unless unlocked."""
        with self._lock:
            if self._state is not SessionState.UNLOCKED:
                return
            self._disarm_timer()
            if self._dirty:
                logger.warning("Locking with unsaved changes; they are discarded")

            key, self._key = self._key, None
            if key is not None:
                key.clear()
            self._vault = None
            self._sections = []
            self._dirty = False
            self._state = SessionState.LOCKED
            self._vault_exists = True
            logger.info("Vault locked (%s)", reason)
            self._notify()

    def close(self) -> None:
        self.lock(reason="close")

    # ------------------------------------------------------------------
    #  Activity / idle timeout
    # ------------------------------------------------------------------
    def touch_activity(self) -> None:
        with self._lock:
            if self._state is SessionState.UNLOCKED:
                self._last_activity = self._clock()

    def check_idle(self, now: Optional[float] = None) -> bool:
        """Lock if idle longer than ``timeout``. True when locked afterwards."""
        with self._lock:
            if self._state is not SessionState.UNLOCKED:
                return True
            if now is None:
                now = self._clock()
            if now - self._last_activity > self.timeout:
                self.lock(reason="idle timeout")
                return True
            return False

    def _arm_timer(self) -> None:
        self._disarm_timer()
        if not self._auto_lock:
            return
        self._timer = IdleTimer(self.check_idle, self.check_interval)
        self._timer.start()

    def _disarm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    # ------------------------------------------------------------------
    #  CRUD (each persists the whole vault)
    # ------------------------------------------------------------------
    def add_entry(self, **fields) -> Optional[CredentialEntry]:
        with self._lock:
            if self._vault is None:
                return None
            entry = self._vault.add(fields)
            self._mutated()
            logger.info("Entry %s added", entry.id)
            self._persist()
            return entry.copy()

    def update_entry(self, entry_id: str, **fields) -> Optional[CredentialEntry]:
        with self._lock:
            if self._vault is None:
                return None
            entry = self._vault.update(entry_id, fields)
            if entry is None:
                self.touch_activity()
                return None
            self._mutated()
            logger.info("Entry %s updated", entry.id)
            self._persist()
            return entry.copy()

    def delete_entry(self, entry_id: str) -> bool:
        with self._lock:
            if self._vault is None:
                return False
            if not self._vault.remove(entry_id):
                self.touch_activity()
                return False
            self._mutated()
            logger.info("Entry %s deleted", entry_id)
            self._persist()
            return True

    def save(self) -> None:
        """Re-encrypt and store the current vault, e.g. after a failed save."""
        with self._lock:
            if self._vault is None:
                return
            self._persist()

    def _mutated(self) -> None:
        self._last_activity = self._clock()
        self._sections = extract_sections(self._vault.entries)
        self._dirty = True
        self._notify()

    def _persist(self) -> None:
        # In-memory state is the source of truth; a failed save is not rolled back.
        self._loading = True
        try:
            blob = self.crypto.seal(self._vault, self._key)
            self.storage.save_encrypted_vault(blob)
        except PearanoidError as exc:
            self._fail(str(exc))
            logger.error("Vault save failed; changes kept in memory")
            raise
        finally:
            self._loading = False

        self._dirty = False
        self._last_error = None
        self._notify()

    # ------------------------------------------------------------------
    def _begin(self) -> None:
        self._loading = True
        self._last_error = None
        self._notify()

    def _fail(self, message: str) -> None:
        self._loading = False
        self._last_error = message
        self._notify()
