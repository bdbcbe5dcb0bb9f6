"""
Record-level and store-level exclusion for the TRUIDA stores.

A verification reads a passenger, decides, and writes the grant back. That
sequence is serialized per passenger id; different ids proceed in parallel.
Bulk operations (expiry sweep, clear-all) take store-wide exclusion, which
waits for in-flight record holders to finish and holds new ones back.
Every wait is bounded by a timeout.
"""

import threading
from contextlib import contextmanager
from typing import Iterator, Optional, Set

import structlog

from .exceptions import LockTimeoutError

# Initialize structured logger
logger = structlog.get_logger(__name__)

STORE_LOCK_KEY = "<store>"


class RecordLockRegistry:
    """
    Per-key mutual exclusion with an exclusive whole-store mode.

    Locks are not re-entrant: a thread holding ``record(key)`` must not ask
    for the same key or for ``exclusive()`` again.

    Parameters
    ----------
    timeout_seconds : float
        Maximum wait for any acquisition.

    Examples
    --------
    >>> locks = RecordLockRegistry(timeout_seconds=5)
    >>> with locks.record("TRU-1"):
    ...     pass
    >>> with locks.exclusive():
    ...     pass
    """

    def __init__(self, timeout_seconds: float) -> None:
        self.timeout_seconds = timeout_seconds
        self._condition = threading.Condition()
        self._held: Set[str] = set()
        self._exclusive = False

    def _wait(self, predicate, key: str, timeout: Optional[float]) -> None:
        limit = self.timeout_seconds if timeout is None else timeout
        if not self._condition.wait_for(predicate, timeout=limit):
            logger.warning("Lock acquisition timed out", lock_key=key, timeout=limit)
            raise LockTimeoutError(key, limit)

    @contextmanager
    def record(self, key: str, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold exclusion for a single record id."""
        with self._condition:
            self._wait(
                lambda: not self._exclusive and key not in self._held, key, timeout
            )
            self._held.add(key)
        try:
            yield
        finally:
            with self._condition:
                self._held.discard(key)
                self._condition.notify_all()

    @contextmanager
    def exclusive(self, timeout: Optional[float] = None) -> Iterator[None]:
        """Hold exclusion over every record id."""
        with self._condition:
            # Claim the store first so new record holders queue behind us
            self._wait(lambda: not self._exclusive, STORE_LOCK_KEY, timeout)
            self._exclusive = True
            try:
                self._wait(lambda: not self._held, STORE_LOCK_KEY, timeout)
            except LockTimeoutError:
                self._exclusive = False
                self._condition.notify_all()
                raise
        try:
            yield
        finally:
            with self._condition:
                self._exclusive = False
                self._condition.notify_all()
