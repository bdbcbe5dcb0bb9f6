"""
Expiry sweeping of passenger records.

A record expires once its flight's departure time has passed. Sweeping
deletes every expired record unconditionally and irreversibly; there is no
grace period. The sweep can be run on demand or periodically on a
background thread.
"""

import threading
from datetime import datetime
from typing import Optional

import structlog

from . import config
from .exceptions import StorageError
from .record_store import PassengerRecordStore
from .utils import Clock, ensure_aware, utc_now

# Initialize structured logger
logger = structlog.get_logger(__name__)


class LifecycleSweeper:
    """
    Purges passenger records whose flight has departed.

    Parameters
    ----------
    records : PassengerRecordStore
        Store to sweep.
    clock : Clock, optional
        Source of "now" when ``sweep`` is called without one.

    Examples
    --------
    >>> sweeper = LifecycleSweeper(records)
    >>> sweeper.sweep()
    3
    >>> sweeper.sweep()
    0
    """

    def __init__(
        self, records: PassengerRecordStore, clock: Optional[Clock] = None
    ) -> None:
        self.records = records
        self.clock = clock or utc_now
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.total_removed = 0

    def sweep(self, now: Optional[datetime] = None) -> int:
        """
        Delete every record with ``departure_time <= now``.

        Returns
        -------
        int
            Number of records removed (0 when nothing had expired).
        """
        now = ensure_aware(now) if now is not None else ensure_aware(self.clock())
        removed = self.records.sweep_expired(now)
        self.total_removed += removed

        if removed:
            logger.info("Cleaned up expired passengers", removed=removed)
        return removed

    # ------------------------------------------------------------------
    # Background operation
    # ------------------------------------------------------------------
    def _run(self, interval_seconds: float) -> None:
        while not self._stop_event.wait(interval_seconds):
            try:
                self.sweep()
            except StorageError as e:
                # The next tick retries; a failed sweep removes nothing
                logger.error("Scheduled sweep failed", **e.to_dict())

    def start(self, interval_seconds: Optional[float] = None) -> None:
        """Run ``sweep`` every ``interval_seconds`` on a daemon thread."""
        if self.is_running:
            return

        interval = interval_seconds or config.SWEEP_INTERVAL_SECONDS
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(interval,), name="truida-sweeper", daemon=True
        )
        self._thread.start()
        logger.info("Background sweeper started", interval_seconds=interval)

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop the background thread and wait for it to finish."""
        if self._thread is None:
            return

        self._stop_event.set()
        self._thread.join(timeout)
        self._thread = None
        logger.info("Background sweeper stopped", total_removed=self.total_removed)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()
