"""
Per-title serialization and cooperative cancellation.

Borrow, return and catalog edits of the same title run one at a time; the
lock for a title is created on first use and kept for the life of the
registry. Operations on different titles never contend.
"""

import logging
import threading
from collections.abc import Generator
from contextlib import contextmanager

from ..database.exceptions import StorageError

logger = logging.getLogger(__name__)


class LockTimeoutError(StorageError):
    """The per-title lock could not be acquired in time."""


class TitleLockRegistry:
    """Hands out one ``threading.Lock`` per title id."""

    def __init__(self, timeout_seconds: float = 5.0):
        self.timeout_seconds = timeout_seconds
        self._locks: dict[int, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, title_id: int) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(title_id)
            if lock is None:
                lock = self._locks[title_id] = threading.Lock()
            return lock

    @contextmanager
    def hold(self, title_id: int, timeout: float | None = None) -> Generator[None, None, None]:
        """
        Hold the lock for ``title_id`` for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is still taken after ``timeout`` seconds
        """
        wait = self.timeout_seconds if timeout is None else timeout
        lock = self._lock_for(title_id)
        if not lock.acquire(timeout=wait):
            logger.warning("Timed out after %.1fs waiting for title %s", wait, title_id)
            raise LockTimeoutError(f"Title {title_id} is busy; gave up after {wait:.1f}s")
        try:
            yield
        finally:
            lock.release()

    def is_held(self, title_id: int) -> bool:
        return self._lock_for(title_id).locked()


class CancellationToken:
    """
    Cooperative cancellation flag shared between a caller and an operation.

    The coordinator looks at it only before its first write. Once a write has
    happened the operation runs to completion or compensation regardless.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()
