"""
Unit tests for dashboard statistics and staff administration.
"""

from datetime import timedelta

import pytest

from truida.access_log import InMemoryAccessLogStore
from truida.constants import UNKNOWN_PASSENGER_LABEL
from truida.data_models import AccessLogEntry, AccessResult, Checkpoint
from truida.exceptions import StorageError
from truida.stats import StatsAggregator
from tests.factories import NOW, unit_embedding


class UnclearableAccessLog(InMemoryAccessLogStore):
    """Access log that can be appended to but never emptied."""

    def _commit(self) -> None:
        if not self._entries:
            raise StorageError("log offline", operation="save", store=self.store_name)


@pytest.fixture
def aggregator(records, access_log, clock):
    return StatsAggregator(records, access_log, clock=clock)


@pytest.mark.unit
class TestGetStats:
    """Test cases for StatsAggregator.get_stats"""

    def test_empty_system(self, aggregator):
        stats = aggregator.get_stats()

        assert stats.total_enrolled == 0
        assert stats.total_active == 0
        assert stats.checkpoint_counts == {"security": 0, "immigration": 0, "boarding": 0}
        assert stats.recent_activity == []
        assert stats.generated_at == NOW

    def test_counts_reflect_progress(self, aggregator, engine, enroll_passenger):
        enroll_passenger(face_hash="a")
        enroll_passenger(face_hash="b")
        enroll_passenger(face_hash="c", departure_time=NOW - timedelta(minutes=1))
        engine.verify("security", "a", unit_embedding(0))
        engine.verify("immigration", "a", unit_embedding(0))
        engine.verify("security", "b", unit_embedding(0))

        stats = aggregator.get_stats()

        assert stats.total_enrolled == 3
        assert stats.total_active == 2
        assert stats.checkpoint_counts == {"security": 2, "immigration": 1, "boarding": 0}
        assert len(stats.recent_activity) == 3

    def test_recent_activity_window_and_limit(self, aggregator, engine, clock, enroll_passenger):
        """Test the one-hour window and ten-entry cap, most recent first"""
        enroll_passenger(departure_time=NOW + timedelta(days=1))
        clock.advance(hours=-2)
        engine.verify("security", "face-digest-A", unit_embedding(0))
        clock.now = NOW
        for _ in range(12):
            clock.advance(seconds=1)
            engine.verify("security", "face-digest-A", unit_embedding(0))

        stats = aggregator.get_stats()

        assert len(stats.recent_activity) == 10
        timestamps = [e.timestamp for e in stats.recent_activity]
        assert timestamps == sorted(timestamps, reverse=True)
        assert timestamps[0] == NOW + timedelta(seconds=12)

    def test_explicit_now_overrides_clock(self, aggregator, enroll_passenger):
        enroll_passenger(departure_time=NOW + timedelta(hours=1))

        stats = aggregator.get_stats(NOW + timedelta(hours=1))

        assert stats.total_active == 0
        assert stats.generated_at == NOW + timedelta(hours=1)

    def test_stats_do_not_modify_stores(self, aggregator, records, access_log, enroll_passenger):
        enroll_passenger(departure_time=NOW - timedelta(minutes=1))

        aggregator.get_stats()

        assert records.count() == 1
        assert access_log.count() == 0


@pytest.mark.unit
class TestAdministration:
    """Test cases for listing, describing and deleting"""

    def test_describe_entry_resolves_name(self, aggregator, engine, enroll_passenger):
        enroll_passenger()
        outcome = engine.verify("security", "face-digest-A", unit_embedding(0))

        assert aggregator.describe_entry(outcome.log_entry) == "Ada Lovelace"

    def test_describe_entry_after_deletion(self, aggregator, engine, access_log, enroll_passenger):
        """Test that log entries outlive the passenger they reference"""
        record = enroll_passenger()
        engine.verify("security", "face-digest-A", unit_embedding(0))

        assert aggregator.delete_passenger(record.id) is True

        entry = access_log.recent(1)[0]
        assert entry.passenger_id == record.id
        assert aggregator.describe_entry(entry) == UNKNOWN_PASSENGER_LABEL

    def test_list_passengers(self, aggregator, enroll_passenger):
        first = enroll_passenger()
        second = enroll_passenger()

        assert [p.id for p in aggregator.list_passengers()] == [first.id, second.id]

    def test_delete_unknown_passenger(self, aggregator):
        assert aggregator.delete_passenger("TRU-missing") is False

    def test_clear_all_empties_both_stores(
        self, aggregator, engine, records, access_log, enroll_passenger
    ):
        enroll_passenger()
        enroll_passenger(face_hash="other")
        engine.verify("security", "face-digest-A", unit_embedding(0))

        removed = aggregator.clear_all()

        assert removed == {"passengers": 2, "log_entries": 1}
        assert records.count() == 0
        assert access_log.count() == 0

    def test_failed_log_clear_keeps_passengers(self, records, clock, enroll_passenger):
        """Test that clear_all leaves passengers in place when the log cannot be cleared"""
        access_log = UnclearableAccessLog()
        aggregator = StatsAggregator(records, access_log, clock=clock)
        enroll_passenger()
        access_log.append(
            AccessLogEntry(
                passenger_id="TRU-1",
                checkpoint=Checkpoint.SECURITY,
                timestamp=NOW,
                result=AccessResult.GRANTED,
                staff_id="SYSTEM",
            )
        )

        with pytest.raises(StorageError):
            aggregator.clear_all()

        assert records.count() == 1
        assert access_log.count() == 1
