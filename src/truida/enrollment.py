"""
Passenger enrollment for the TRUIDA system.

Enrollment validates the identity fields, stamps a fresh id and enrollment
time, initialises every checkpoint to not-cleared and persists the record.
Re-enrolling with a passport number that is already stored creates a second,
independent record; enrollment does not deduplicate.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Sequence, Union

import structlog

from .data_models import BiometricData, CheckpointStatus, PassengerRecord, coerce_embedding
from .exceptions import BiometricInputError, EnrollmentValidationError
from .feature_extraction import CaptureProcessor
from .hashing import generate_passenger_id
from .record_store import PassengerRecordStore
from .utils import Clock, ensure_aware, parse_timestamp, short_digest, utc_now

# Initialize structured logger
logger = structlog.get_logger(__name__)

REQUIRED_IDENTITY_FIELDS = ("first_name", "last_name", "passport_number", "flight_number")


@dataclass
class IdentityFields:
    """
    Identity and travel details entered at the enrollment station.

    Parameters
    ----------
    first_name, last_name : str
        Passenger name (required).
    passport_number : str
        Passport number (required).
    flight_number : str
        Booked flight (required).
    departure_time : str or datetime
        Scheduled departure (required). ISO 8601 text or a datetime; naive
        values are interpreted as UTC.
    gate : str, default=""
        Departure gate.
    guardian_id : str, optional
        Id of an already enrolled passenger accompanying this one.
    """

    first_name: str
    last_name: str
    passport_number: str
    flight_number: str
    departure_time: Union[str, datetime]
    gate: str = ""
    guardian_id: Optional[str] = None


class EnrollmentService:
    """
    Creates passenger records from identity fields and processed biometrics.

    Parameters
    ----------
    records : PassengerRecordStore
        Store receiving the new records.
    capture_processor : CaptureProcessor, optional
        Used by :meth:`enroll_captures` to hash and embed raw captures.
    clock : Clock, optional
        Source of the enrollment time. Defaults to the system UTC clock.

    Examples
    --------
    >>> service = EnrollmentService(records)
    >>> record = service.enroll(identity, face_hash, embedding, fingerprint_hash)
    >>> record.checkpoints.security
    False
    """

    def __init__(
        self,
        records: PassengerRecordStore,
        capture_processor: Optional[CaptureProcessor] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.records = records
        self.capture_processor = capture_processor or CaptureProcessor()
        self.clock = clock or utc_now

    def _validate_identity(self, identity: IdentityFields) -> IdentityFields:
        cleaned = {}
        for field_name in REQUIRED_IDENTITY_FIELDS:
            value = getattr(identity, field_name)
            if not isinstance(value, str) or not value.strip():
                raise EnrollmentValidationError(
                    f"{field_name} is required", field_name=field_name, value=value
                )
            cleaned[field_name] = value.strip()

        try:
            departure_time = parse_timestamp(identity.departure_time)
        except (TypeError, ValueError):
            raise EnrollmentValidationError(
                "departure_time is missing or not a valid timestamp",
                field_name="departure_time",
                value=identity.departure_time,
            )

        guardian_id = (identity.guardian_id or "").strip() or None
        if guardian_id is not None and self.records.get_by_id(guardian_id) is None:
            raise EnrollmentValidationError(
                "guardian_id does not reference an enrolled passenger",
                field_name="guardian_id",
                value=guardian_id,
            )

        return IdentityFields(
            departure_time=departure_time,
            gate=(identity.gate or "").strip(),
            guardian_id=guardian_id,
            **cleaned,
        )

    def enroll(
        self,
        identity: IdentityFields,
        face_hash: str,
        face_embedding: Optional[Sequence[float]],
        fingerprint_hash: str,
    ) -> PassengerRecord:
        """
        Enroll a passenger.

        Parameters
        ----------
        identity : IdentityFields
            Identity and travel details.
        face_hash : str
            Digest of the face capture.
        face_embedding : Sequence[float], optional
            Face embedding of ``EMBEDDING_DIM`` values, or None.
        fingerprint_hash : str
            Digest of the fingerprint capture.

        Returns
        -------
        PassengerRecord
            The stored record.

        Raises
        ------
        EnrollmentValidationError
            If a required identity field is empty or unparseable.
        BiometricInputError
            If a digest is empty or the embedding is malformed.
        StorageError
            If the record could not be persisted.
        """
        identity = self._validate_identity(identity)

        for field_name, digest in (
            ("face_hash", face_hash),
            ("fingerprint_hash", fingerprint_hash),
        ):
            if not isinstance(digest, str) or not digest.strip():
                raise BiometricInputError(
                    f"{field_name} must be a non-empty digest", field_name=field_name
                )

        now = ensure_aware(self.clock())
        record = PassengerRecord(
            id=generate_passenger_id(),
            passport_number=identity.passport_number,
            first_name=identity.first_name,
            last_name=identity.last_name,
            flight_number=identity.flight_number,
            gate=identity.gate,
            departure_time=identity.departure_time,
            biometrics=BiometricData(
                face_hash=face_hash.strip(),
                fingerprint_hash=fingerprint_hash.strip(),
                captured_at=now,
                face_embedding=coerce_embedding(face_embedding),
            ),
            enrolled_at=now,
            checkpoints=CheckpointStatus(),
            guardian_id=identity.guardian_id,
        )

        if record.has_departed(now):
            logger.warning(
                "Enrolling passenger whose flight has already departed",
                flight_number=record.flight_number,
                departure_time=record.departure_time.isoformat(),
            )

        self.records.put(record)

        logger.info(
            "Passenger enrolled",
            passenger_id=record.id,
            flight_number=record.flight_number,
            face_hash=short_digest(record.biometrics.face_hash),
            has_embedding=record.biometrics.has_embedding,
            guardian_id=record.guardian_id,
        )
        return record

    def enroll_captures(
        self, identity: IdentityFields, face_capture: bytes, fingerprint_capture: bytes
    ) -> PassengerRecord:
        """
        Enroll a passenger from raw face and fingerprint captures.

        Raises
        ------
        FeatureExtractionError
            If a capture cannot be processed.
        """
        face = self.capture_processor.process_face_capture(face_capture)
        fingerprint = self.capture_processor.process_fingerprint_capture(
            fingerprint_capture
        )
        return self.enroll(identity, face.digest, face.embedding, fingerprint.digest)
