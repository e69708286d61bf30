"""
Idle auto-lock scheduling.

The engine keeps no timers of its own. It hands a lock callback to a
scheduler each time the vault is unlocked or used, and cancels it on
lock. Applications plug in their own scheduler (an app-state listener,
an event loop timer) or use the threading one below.
"""

import logging
import threading
from typing import Callable, Optional

from . import config

logger = logging.getLogger(__name__)


class LockScheduler:
    """Interface the engine uses to arm and disarm auto-lock."""

    def on_unlock_timeout(self, callback: Callable[[], None]) -> None:
        """Arrange for callback to run after the idle timeout, replacing any pending one."""
        raise NotImplementedError

    def cancel(self) -> None:
        """Drop the pending callback, if any."""
        raise NotImplementedError


class ThreadingLockScheduler(LockScheduler):
    """Runs the lock callback on a daemon threading.Timer."""

    def __init__(self, timeout: float = config.AUTO_LOCK_TIMEOUT_DEFAULT):
        """
        Args:
            timeout: Idle seconds before locking; 0 disables auto-lock
        """
        if timeout < 0 or timeout > config.AUTO_LOCK_TIMEOUT_MAX_MINUTES * 60:
            raise ValueError(f"Auto-lock timeout out of range: {timeout}")
        self.timeout = timeout
        self._timer: Optional[threading.Timer] = None
        self._lock = threading.Lock()

    def on_unlock_timeout(self, callback: Callable[[], None]) -> None:
        with self._lock:
            self._cancel_timer()
            if not self.timeout:
                return
            self._timer = threading.Timer(self.timeout, callback)
            self._timer.daemon = True
            self._timer.start()
        logger.debug(f"Auto-lock armed for {self.timeout}s")

    def cancel(self) -> None:
        with self._lock:
            self._cancel_timer()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def pending(self) -> bool:
        timer = self._timer
        return timer is not None and timer.is_alive()
