"""
Shared fixtures for the TRUIDA test suite.

Every time-dependent component receives the same controllable clock, and
stores are in-memory unless a test asks for the JSON backend explicitly.
"""

from datetime import timedelta

import pytest

from truida.access_log import InMemoryAccessLogStore
from truida.checkpoint_engine import CheckpointEngine
from truida.enrollment import EnrollmentService, IdentityFields
from truida.record_store import InMemoryPassengerRecordStore
from tests.factories import NOW, FakeClock, unit_embedding


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def records():
    return InMemoryPassengerRecordStore(lock_timeout_seconds=2)


@pytest.fixture
def access_log():
    return InMemoryAccessLogStore()


@pytest.fixture
def engine(records, access_log, clock):
    return CheckpointEngine(records, access_log, clock=clock, retry_delay_seconds=0)


@pytest.fixture
def enrollment(records, clock):
    return EnrollmentService(records, clock=clock)


@pytest.fixture
def make_identity():
    def factory(**overrides) -> IdentityFields:
        fields = {
            "first_name": "Ada",
            "last_name": "Lovelace",
            "passport_number": "P1234567",
            "flight_number": "TR101",
            "departure_time": NOW + timedelta(hours=6),
            "gate": "B12",
        }
        fields.update(overrides)
        return IdentityFields(**fields)

    return factory


@pytest.fixture
def enroll_passenger(enrollment, make_identity):
    """Enroll a passenger with the given digests and embedding."""

    def factory(
        face_hash="face-digest-A",
        fingerprint_hash="finger-digest-A",
        face_embedding="default",
        **identity,
    ):
        if face_embedding == "default":
            face_embedding = unit_embedding(0)
        return enrollment.enroll(
            make_identity(**identity), face_hash, face_embedding, fingerprint_hash
        )

    return factory
