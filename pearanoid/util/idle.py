"""IdleTimer: periodic inactivity check that stops itself once it fires."""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

logger = logging.getLogger("pearanoid.idle")


class IdleTimer:
    """Calls *check* every *interval* seconds on a daemon thread.

    ``check`` returns True when it has done its job (the session locked); the
    timer then exits. ``cancel`` never joins, so it is safe to call from the
    check itself or while holding the session lock.
    """

    def __init__(self, check: Callable[[], bool], interval: float = 60.0):
        if interval <= 0:
            raise ValueError("interval must be positive")
        self._check = check
        self._interval = interval
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name="pearanoid-idle", daemon=True
            )
            self._thread.start()

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                fired = self._check()
            except Exception:
                logger.exception("Idle check failed")
                fired = False
            if fired:
                logger.debug("Idle timer finished")
                break
        self._stop.set()

    def cancel(self) -> None:
        self._stop.set()

    @property
    def active(self) -> bool:
        return not self._stop.is_set()

    def join(self, timeout: Optional[float] = None) -> None:
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
