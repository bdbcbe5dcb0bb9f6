"""
Data models for the TRUIDA system.

This module defines the passenger record, its biometric and checkpoint
sub-records, the audit log entry and the verification outcome. All models
are dataclasses with validation in ``__post_init__`` and a flat,
JSON-compatible ``to_dict`` / ``from_dict`` representation, which is the
document format used by every store backend.
"""

import math
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from .constants import CHECKPOINT_ORDER, EMBEDDING_DIM
from .exceptions import BiometricInputError, ValidationError
from .utils import parse_timestamp, safe_divide


class Checkpoint(str, Enum):
    """The three sequential clearance gates, in clearance order."""

    SECURITY = "security"
    IMMIGRATION = "immigration"
    BOARDING = "boarding"

    @property
    def prerequisites(self) -> Tuple["Checkpoint", ...]:
        """Checkpoints that must already be cleared before this one."""
        position = CHECKPOINT_ORDER.index(self.value)
        return tuple(Checkpoint(name) for name in CHECKPOINT_ORDER[:position])

    @classmethod
    def parse(cls, value: Any) -> "Checkpoint":
        """
        Convert a checkpoint name (or member) into a ``Checkpoint``.

        Raises
        ------
        ValidationError
            If the value names no checkpoint.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValidationError(
                f"Unknown checkpoint {value!r}; expected one of {list(CHECKPOINT_ORDER)}",
                field_name="checkpoint",
            )


class AccessResult(str, Enum):
    """Result recorded on an access log entry."""

    GRANTED = "granted"
    DENIED = "denied"


class VerificationStatus(str, Enum):
    """Closed set of terminal outcomes of a checkpoint verification."""

    GRANTED = "GRANTED"
    ALREADY_CLEARED = "ALREADY_CLEARED"
    NO_MATCH = "NO_MATCH"
    FLIGHT_DEPARTED = "FLIGHT_DEPARTED"
    PREREQUISITE_MISSING = "PREREQUISITE_MISSING"

    @property
    def access_granted(self) -> bool:
        return self in (VerificationStatus.GRANTED, VerificationStatus.ALREADY_CLEARED)

    @property
    def access_result(self) -> AccessResult:
        return AccessResult.GRANTED if self.access_granted else AccessResult.DENIED


def coerce_embedding(
    values: Optional[Sequence[float]], field_name: str = "face_embedding"
) -> Optional[List[float]]:
    """
    Validate an embedding and return it as a list of floats.

    Parameters
    ----------
    values : Sequence[float], optional
        Embedding values; ``None`` means "no embedding".
    field_name : str
        Field name reported in validation errors.

    Returns
    -------
    Optional[List[float]]
        The embedding as plain floats, or None.

    Raises
    ------
    BiometricInputError
        If the length differs from ``EMBEDDING_DIM`` or a value is not finite.
    """
    if values is None:
        return None

    try:
        embedding = [float(v) for v in values]
    except (TypeError, ValueError):
        raise BiometricInputError(
            "Embedding must be a sequence of numbers", field_name=field_name
        )

    if len(embedding) != EMBEDDING_DIM:
        raise BiometricInputError(
            f"Embedding must have {EMBEDDING_DIM} values, got {len(embedding)}",
            field_name=field_name,
            context={"expected_length": EMBEDDING_DIM, "length": len(embedding)},
        )

    if not all(math.isfinite(v) for v in embedding):
        raise BiometricInputError(
            "Embedding contains non-finite values", field_name=field_name
        )

    return embedding


@dataclass
class BiometricData:
    """
    Processed biometrics of one enrolled passenger.

    Parameters
    ----------
    face_hash : str
        Digest of the face capture, used as an exact-match key.
    fingerprint_hash : str
        Digest of the fingerprint capture.
    captured_at : datetime
        When the captures were taken.
    face_embedding : Optional[List[float]], default=None
        Fixed-length face embedding, compared by cosine similarity.
    """

    face_hash: str
    fingerprint_hash: str
    captured_at: datetime
    face_embedding: Optional[List[float]] = None

    def __post_init__(self) -> None:
        if not self.face_hash or not isinstance(self.face_hash, str):
            raise BiometricInputError(
                "face_hash must be a non-empty string", field_name="face_hash"
            )
        if not isinstance(self.fingerprint_hash, str):
            raise BiometricInputError(
                "fingerprint_hash must be a string", field_name="fingerprint_hash"
            )
        self.captured_at = parse_timestamp(self.captured_at)
        self.face_embedding = coerce_embedding(self.face_embedding)

    @property
    def has_embedding(self) -> bool:
        return self.face_embedding is not None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "face_hash": self.face_hash,
            "fingerprint_hash": self.fingerprint_hash,
            "face_embedding": (
                list(self.face_embedding) if self.face_embedding is not None else None
            ),
            "captured_at": self.captured_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BiometricData":
        return cls(
            face_hash=data["face_hash"],
            fingerprint_hash=data["fingerprint_hash"],
            captured_at=data["captured_at"],
            face_embedding=data.get("face_embedding"),
        )


@dataclass(frozen=True)
class CheckpointStatus:
    """
    Clearance flags of one passenger.

    Flags only move from False to True. A later checkpoint is never set
    while an earlier one is still False.
    """

    security: bool = False
    immigration: bool = False
    boarding: bool = False

    def __post_init__(self) -> None:
        for checkpoint in Checkpoint:
            if not isinstance(getattr(self, checkpoint.value), bool):
                raise ValidationError(
                    f"checkpoint flag '{checkpoint.value}' must be a boolean",
                    field_name=f"checkpoints.{checkpoint.value}",
                )
            if self.is_cleared(checkpoint) and self.missing_prerequisites(checkpoint):
                raise ValidationError(
                    f"'{checkpoint.value}' cannot be cleared before "
                    f"{[c.value for c in self.missing_prerequisites(checkpoint)]}",
                    field_name=f"checkpoints.{checkpoint.value}",
                )

    def is_cleared(self, checkpoint: Checkpoint) -> bool:
        return getattr(self, Checkpoint.parse(checkpoint).value)

    def missing_prerequisites(self, checkpoint: Checkpoint) -> List[Checkpoint]:
        """Earlier checkpoints that are not cleared yet, in clearance order."""
        return [
            required
            for required in Checkpoint.parse(checkpoint).prerequisites
            if not self.is_cleared(required)
        ]

    def cleared(self, checkpoint: Checkpoint) -> "CheckpointStatus":
        """Return a copy with ``checkpoint`` cleared."""
        return replace(self, **{Checkpoint.parse(checkpoint).value: True})

    def regresses_from(self, previous: "CheckpointStatus") -> List[Checkpoint]:
        """Checkpoints cleared in ``previous`` but not in this status."""
        return [
            checkpoint
            for checkpoint in Checkpoint
            if previous.is_cleared(checkpoint) and not self.is_cleared(checkpoint)
        ]

    def to_dict(self) -> Dict[str, bool]:
        return {checkpoint.value: self.is_cleared(checkpoint) for checkpoint in Checkpoint}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CheckpointStatus":
        data = data or {}
        return cls(**{c.value: data.get(c.value, False) for c in Checkpoint})


@dataclass
class PassengerRecord:
    """
    Identity, travel, biometric and progress data of one enrolled passenger.

    Parameters
    ----------
    id : str
        Opaque unique identifier, immutable once created.
    passport_number : str
        Passport number (expected, but not enforced, to be unique).
    first_name, last_name : str
        Passenger name.
    flight_number : str
        Flight the passenger is booked on.
    gate : str
        Departure gate; may be empty.
    departure_time : datetime
        Timezone-aware scheduled departure. The record expires at this instant.
    biometrics : BiometricData
        Enrolled biometric digests and embedding.
    enrolled_at : datetime
        Enrollment instant, set once.
    checkpoints : CheckpointStatus
        Clearance progress, all False at enrollment.
    guardian_id : Optional[str]
        Back-reference to another passenger record (no ownership).

    Examples
    --------
    >>> record.has_departed(now)
    False
    >>> record.with_checkpoint_cleared(Checkpoint.SECURITY).checkpoints.security
    True
    """

    id: str
    passport_number: str
    first_name: str
    last_name: str
    flight_number: str
    gate: str
    departure_time: datetime
    biometrics: BiometricData
    enrolled_at: datetime
    checkpoints: CheckpointStatus = field(default_factory=CheckpointStatus)
    guardian_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.id or not isinstance(self.id, str):
            raise ValidationError("id must be a non-empty string", field_name="id")
        self.departure_time = parse_timestamp(self.departure_time)
        self.enrolled_at = parse_timestamp(self.enrolled_at)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def has_departed(self, now: datetime) -> bool:
        """True once the departure time is at or before ``now``."""
        return self.departure_time <= now

    def with_checkpoint_cleared(self, checkpoint: Checkpoint) -> "PassengerRecord":
        """Return a copy of this record with ``checkpoint`` cleared."""
        return replace(self, checkpoints=self.checkpoints.cleared(checkpoint))

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert the record to its persisted document form.

        Returns
        -------
        Dict[str, Any]
            JSON-compatible dictionary keyed by field name.
        """
        return {
            "id": self.id,
            "passport_number": self.passport_number,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "flight_number": self.flight_number,
            "gate": self.gate,
            "departure_time": self.departure_time.isoformat(),
            "biometrics": self.biometrics.to_dict(),
            "enrolled_at": self.enrolled_at.isoformat(),
            "checkpoints": self.checkpoints.to_dict(),
            "guardian_id": self.guardian_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PassengerRecord":
        """
        Rebuild a record from its persisted document form.

        Raises
        ------
        KeyError
            If a required key is missing.
        ValueError
            If a value fails validation.
        """
        return cls(
            id=data["id"],
            passport_number=data["passport_number"],
            first_name=data["first_name"],
            last_name=data["last_name"],
            flight_number=data["flight_number"],
            gate=data.get("gate", ""),
            departure_time=data["departure_time"],
            biometrics=BiometricData.from_dict(data["biometrics"]),
            enrolled_at=data["enrolled_at"],
            checkpoints=CheckpointStatus.from_dict(data.get("checkpoints")),
            guardian_id=data.get("guardian_id"),
        )


@dataclass(frozen=True)
class AccessLogEntry:
    """
    Immutable audit record of one checkpoint access attempt.

    ``passenger_id`` is a reference, not ownership: it may dangle once the
    passenger record is deleted. ``id`` is assigned by the access log store.
    """

    passenger_id: Optional[str]
    checkpoint: Checkpoint
    timestamp: datetime
    result: AccessResult
    staff_id: str
    notes: str = ""
    id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "checkpoint", Checkpoint.parse(self.checkpoint))
        object.__setattr__(self, "result", AccessResult(self.result))
        object.__setattr__(self, "timestamp", parse_timestamp(self.timestamp))

    @property
    def granted(self) -> bool:
        return self.result is AccessResult.GRANTED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "passenger_id": self.passenger_id,
            "checkpoint": self.checkpoint.value,
            "timestamp": self.timestamp.isoformat(),
            "result": self.result.value,
            "staff_id": self.staff_id,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AccessLogEntry":
        return cls(
            id=data["id"],
            passenger_id=data.get("passenger_id"),
            checkpoint=data["checkpoint"],
            timestamp=data["timestamp"],
            result=data["result"],
            staff_id=data["staff_id"],
            notes=data.get("notes", ""),
        )


@dataclass(frozen=True)
class VerificationOutcome:
    """
    Terminal result of one ``CheckpointEngine.verify`` call.

    Parameters
    ----------
    status : VerificationStatus
        Which of the closed set of outcomes was reached.
    checkpoint : Checkpoint
        Checkpoint the passenger presented at.
    message : str
        Human-readable explanation for kiosk display.
    passenger : Optional[PassengerRecord]
        Selected record as it stands after the decision; None for NO_MATCH.
    similarity : float
        Cosine similarity of the selected record (0.0 when not computed).
    log_entry : Optional[AccessLogEntry]
        Audit entry written for this attempt; None for NO_MATCH.
    missing_checkpoints : Tuple[Checkpoint, ...]
        Prerequisites that were not cleared (PREREQUISITE_MISSING only).
    """

    status: VerificationStatus
    checkpoint: Checkpoint
    message: str
    passenger: Optional[PassengerRecord] = None
    similarity: float = 0.0
    log_entry: Optional[AccessLogEntry] = None
    missing_checkpoints: Tuple[Checkpoint, ...] = ()

    @property
    def granted(self) -> bool:
        return self.status.access_granted

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "granted": self.granted,
            "checkpoint": self.checkpoint.value,
            "message": self.message,
            "passenger_id": self.passenger.id if self.passenger else None,
            "similarity": self.similarity,
            "log_entry_id": self.log_entry.id if self.log_entry else None,
            "missing_checkpoints": [c.value for c in self.missing_checkpoints],
        }


@dataclass
class DashboardStats:
    """
    Monitoring rollup over the passenger store and access log.

    Parameters
    ----------
    total_enrolled : int
        Number of stored passenger records.
    total_active : int
        Records whose flight has not yet departed.
    checkpoint_counts : Dict[str, int]
        Number of records that cleared each checkpoint.
    recent_activity : List[AccessLogEntry]
        Recent access attempts, most recent first.
    generated_at : datetime
        Instant the rollup was computed for.
    """

    total_enrolled: int
    total_active: int
    checkpoint_counts: Dict[str, int]
    recent_activity: List[AccessLogEntry]
    generated_at: datetime

    def clearance_rate(self, checkpoint: Checkpoint) -> float:
        """Share of enrolled passengers that cleared ``checkpoint``."""
        cleared = self.checkpoint_counts.get(Checkpoint.parse(checkpoint).value, 0)
        return safe_divide(cleared, self.total_enrolled)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_enrolled": self.total_enrolled,
            "total_active": self.total_active,
            "checkpoint_counts": dict(self.checkpoint_counts),
            "clearance_rates": {
                checkpoint.value: self.clearance_rate(checkpoint)
                for checkpoint in Checkpoint
            },
            "recent_activity": [entry.to_dict() for entry in self.recent_activity],
            "generated_at": self.generated_at.isoformat(),
        }
