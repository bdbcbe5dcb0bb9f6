"""
Staff dashboard rollups and administration for the TRUIDA system.

Read-only statistics over the passenger store and access log, plus the
staff actions the dashboard exposes: listing passengers, deleting one
record, and clearing all data.
"""

from datetime import datetime, timedelta
from typing import List, Optional

import structlog

from .access_log import AccessLogStore
from .constants import (
    RECENT_ACTIVITY_LIMIT,
    RECENT_ACTIVITY_WINDOW_SECONDS,
    UNKNOWN_PASSENGER_LABEL,
)
from .data_models import AccessLogEntry, Checkpoint, DashboardStats, PassengerRecord
from .record_store import PassengerRecordStore
from .utils import Clock, ensure_aware, utc_now

# Initialize structured logger
logger = structlog.get_logger(__name__)


class StatsAggregator:
    """
    Monitoring rollups over the passenger store and access log.

    Parameters
    ----------
    records : PassengerRecordStore
        Passenger store.
    access_log : AccessLogStore
        Audit log.
    clock : Clock, optional
        Source of "now". Defaults to the system UTC clock.
    """

    def __init__(
        self,
        records: PassengerRecordStore,
        access_log: AccessLogStore,
        clock: Optional[Clock] = None,
    ) -> None:
        self.records = records
        self.access_log = access_log
        self.clock = clock or utc_now

    def get_stats(self, now: Optional[datetime] = None) -> DashboardStats:
        """
        Compute the dashboard rollup.

        Parameters
        ----------
        now : datetime, optional
            Instant to evaluate against. Defaults to the clock.

        Returns
        -------
        DashboardStats
            Enrolled and active counts, per-checkpoint clearance counts, and
            the log entries of the last hour (at most ten, most recent first).
        """
        now = ensure_aware(now if now is not None else self.clock())
        passengers = self.records.list_all()

        stats = DashboardStats(
            total_enrolled=len(passengers),
            total_active=sum(1 for p in passengers if not p.has_departed(now)),
            checkpoint_counts={
                checkpoint.value: sum(
                    1 for p in passengers if p.checkpoints.is_cleared(checkpoint)
                )
                for checkpoint in Checkpoint
            },
            recent_activity=self.access_log.recent(
                RECENT_ACTIVITY_LIMIT,
                since=now - timedelta(seconds=RECENT_ACTIVITY_WINDOW_SECONDS),
            ),
            generated_at=now,
        )

        logger.debug(
            "Dashboard stats computed",
            total_enrolled=stats.total_enrolled,
            total_active=stats.total_active,
        )
        return stats

    def list_passengers(self) -> List[PassengerRecord]:
        return self.records.list_all()

    def describe_entry(self, entry: AccessLogEntry) -> str:
        """Name of the passenger an entry refers to, or a placeholder if gone."""
        if entry.passenger_id is None:
            return UNKNOWN_PASSENGER_LABEL
        passenger = self.records.get_by_id(entry.passenger_id)
        return passenger.full_name if passenger else UNKNOWN_PASSENGER_LABEL

    def delete_passenger(self, passenger_id: str) -> bool:
        """Staff deletion of one record; log entries referencing it are kept."""
        return self.records.delete_by_id(passenger_id)

    def clear_all(self) -> dict:
        """
        Delete every access log entry and every passenger record.

        The log is cleared first. If that fails the passengers are untouched;
        if the passenger store then fails the log stays empty and the error
        propagates.
        """
        removed_entries = self.access_log.clear_all()
        removed_passengers = self.records.delete_all()

        logger.warning(
            "All passenger data cleared",
            removed_passengers=removed_passengers,
            removed_log_entries=removed_entries,
        )
        return {"passengers": removed_passengers, "log_entries": removed_entries}
