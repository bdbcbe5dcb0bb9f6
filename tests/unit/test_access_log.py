"""
Unit tests for the in-memory access log.
"""

from datetime import timedelta

import pytest

from truida.access_log import InMemoryAccessLogStore
from truida.data_models import AccessLogEntry, AccessResult, Checkpoint
from truida.exceptions import StorageError, ValidationError
from tests.factories import NOW


def entry_at(minutes: int, passenger_id="TRU-1", result=AccessResult.GRANTED, **kwargs):
    return AccessLogEntry(
        passenger_id=passenger_id,
        checkpoint=kwargs.pop("checkpoint", Checkpoint.SECURITY),
        timestamp=NOW + timedelta(minutes=minutes),
        result=result,
        staff_id=kwargs.pop("staff_id", "SYSTEM"),
        **kwargs,
    )


class FailingAccessLog(InMemoryAccessLogStore):
    fail = False

    def _commit(self) -> None:
        if self.fail:
            raise StorageError("disk unavailable", operation="save", store=self.store_name)


@pytest.mark.unit
class TestAppend:
    """Test cases for append"""

    def test_append_assigns_unique_ids(self, access_log):
        first = access_log.append(entry_at(0))
        second = access_log.append(entry_at(1))

        assert first.id and second.id
        assert first.id != second.id

    def test_append_keeps_unused_given_id(self, access_log):
        stored = access_log.append(entry_at(0, id="L-1"))

        assert stored.id == "L-1"

    def test_append_rejects_duplicate_id(self, access_log):
        """Test that a second entry with a taken id is refused"""
        access_log.append(entry_at(0, id="dup"))

        with pytest.raises(ValidationError):
            access_log.append(entry_at(1, id="dup", passenger_id="TRU-2"))

        ids = [e.id for e in access_log.all_entries()]
        assert ids == ["dup"]
        assert len(set(ids)) == len(ids)

    def test_failed_append_frees_its_id(self):
        access_log = FailingAccessLog()
        access_log.fail = True

        with pytest.raises(StorageError):
            access_log.append(entry_at(0, id="L-1"))

        access_log.fail = False
        assert access_log.append(entry_at(0, id="L-1")).id == "L-1"

    def test_clear_all_frees_ids(self, access_log):
        access_log.append(entry_at(0, id="L-1"))
        access_log.clear_all()

        assert access_log.append(entry_at(1, id="L-1")).id == "L-1"

    def test_append_rejects_non_entry(self, access_log):
        with pytest.raises(ValidationError):
            access_log.append({"passenger_id": "TRU-1"})

    def test_out_of_order_appends_are_sorted(self, access_log):
        """Test that entries are ordered by timestamp regardless of append order"""
        late = access_log.append(entry_at(10))
        early = access_log.append(entry_at(-10))

        assert [e.id for e in access_log.all_entries()] == [early.id, late.id]

    def test_equal_timestamps_keep_append_order(self, access_log):
        a = access_log.append(entry_at(0))
        b = access_log.append(entry_at(0))

        assert [e.id for e in access_log.all_entries()] == [a.id, b.id]

    def test_failed_append_is_not_stored(self):
        log = FailingAccessLog()
        log.append(entry_at(0))
        log.fail = True

        with pytest.raises(StorageError):
            log.append(entry_at(1))

        assert log.count() == 1


@pytest.mark.unit
class TestRecent:
    """Test cases for recent"""

    def test_most_recent_first_with_limit(self, access_log):
        ids = [access_log.append(entry_at(m)).id for m in range(5)]

        recent = access_log.recent(3)

        assert [e.id for e in recent] == ids[::-1][:3]

    def test_since_is_strictly_after(self, access_log):
        """Test that an entry exactly at the cutoff is excluded"""
        access_log.append(entry_at(-60))
        inside = access_log.append(entry_at(-59))

        recent = access_log.recent(10, since=NOW - timedelta(minutes=60))

        assert [e.id for e in recent] == [inside.id]

    def test_non_positive_limit(self, access_log):
        access_log.append(entry_at(0))

        assert access_log.recent(0) == []

    def test_entries_survive_passenger_deletion(self, access_log):
        """Test that log entries carry dangling references"""
        access_log.append(entry_at(0, passenger_id="TRU-gone"))

        assert access_log.recent(1)[0].passenger_id == "TRU-gone"


@pytest.mark.unit
class TestClearAll:
    """Test cases for clear_all"""

    def test_clear_all_returns_count(self, access_log):
        access_log.append(entry_at(0))
        access_log.append(entry_at(1))

        assert access_log.clear_all() == 2
        assert access_log.count() == 0

    def test_failed_clear_keeps_entries(self):
        log = FailingAccessLog()
        log.append(entry_at(0))
        log.fail = True

        with pytest.raises(StorageError):
            log.clear_all()

        assert log.count() == 1
