"""
Passenger record storage for the TRUIDA system.

The store maps passenger ids to records. ``put`` is the single write path
for any field change, including checkpoint flips, and replaces an existing
record in place. Records are held as their flat document form and decoded
on every read, so callers always receive an independent copy.

Concurrency: each public operation is atomic with respect to the others.
``locks`` exposes per-record exclusion for read-decide-write sequences;
``delete_by_id`` takes the record's exclusion, while ``sweep_expired`` and
``delete_all`` take store-wide exclusion.
"""

import threading
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from . import config
from .constants import DEFAULT_PASSENGER_STORE_FILE
from .data_models import PassengerRecord
from .exceptions import RecordSerializationError, StorageError, ValidationError
from .locking import RecordLockRegistry
from .persistence import JsonDocumentFile
from .utils import ensure_aware, parse_timestamp, short_digest

# Initialize structured logger
logger = structlog.get_logger(__name__)


class PassengerRecordStore(ABC):
    """
    Abstract durable mapping from passenger id to passenger record.

    Parameters
    ----------
    lock_timeout_seconds : float, optional
        Bound on waiting for record or store exclusion. Defaults to
        ``config.LOCK_TIMEOUT_SECONDS``.
    """

    store_name = "passengers"

    def __init__(self, lock_timeout_seconds: Optional[float] = None) -> None:
        self.locks = RecordLockRegistry(
            lock_timeout_seconds
            if lock_timeout_seconds is not None
            else config.LOCK_TIMEOUT_SECONDS
        )

    @abstractmethod
    def put(self, record: PassengerRecord) -> None:
        """Insert ``record``, or replace the stored record with the same id."""

    @abstractmethod
    def get_by_id(self, passenger_id: str) -> Optional[PassengerRecord]:
        """Return the record with ``passenger_id``, or None."""

    @abstractmethod
    def get_by_passport(self, passport_number: str) -> Optional[PassengerRecord]:
        """Return the first record with ``passport_number``, or None."""

    @abstractmethod
    def find_by_biometrics(
        self, face_hash: str, fingerprint_hash: Optional[str] = None
    ) -> List[PassengerRecord]:
        """
        Return every record whose face hash equals ``face_hash``.

        When ``fingerprint_hash`` is given, records must also match it.
        Results are in store iteration order.
        """

    @abstractmethod
    def list_all(self) -> List[PassengerRecord]:
        """Return all records in store iteration order."""

    @abstractmethod
    def delete_by_id(self, passenger_id: str) -> bool:
        """Delete one record; False if it was absent."""

    @abstractmethod
    def delete_all(self) -> int:
        """Delete every record and return how many were removed."""

    @abstractmethod
    def sweep_expired(self, now: datetime) -> int:
        """Delete every record with ``departure_time <= now``; return the count."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored records."""


class InMemoryPassengerRecordStore(PassengerRecordStore):
    """
    Process-local passenger store.

    Records keep their insertion position when replaced, so iteration order
    is enrollment order.

    Examples
    --------
    >>> store = InMemoryPassengerRecordStore()
    >>> store.put(record)
    >>> store.get_by_id(record.id).passport_number
    'P1234567'
    """

    def __init__(self, lock_timeout_seconds: Optional[float] = None) -> None:
        super().__init__(lock_timeout_seconds)
        self._mutex = threading.RLock()
        self._documents: Dict[str, Dict[str, Any]] = {}

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    def _commit(self) -> None:
        """Persist the current documents. In-memory stores have nothing to do."""

    def _mutate(self, change: Callable[[], Any]) -> Any:
        """Apply ``change`` under the mutex and commit; roll back on failure."""
        with self._mutex:
            snapshot = dict(self._documents)
            result = change()
            try:
                self._commit()
            except StorageError:
                self._documents = snapshot
                raise
            return result

    def _decode(self, document: Dict[str, Any]) -> PassengerRecord:
        try:
            return PassengerRecord.from_dict(document)
        except (KeyError, TypeError, ValueError) as e:
            raise RecordSerializationError(
                f"Stored passenger document is invalid: {e}",
                store=self.store_name,
                context={"passenger_id": document.get("id")},
            )

    def _snapshot(self) -> List[Dict[str, Any]]:
        with self._mutex:
            return list(self._documents.values())

    def _check_update(self, current: PassengerRecord, update: PassengerRecord) -> None:
        regressed = update.checkpoints.regresses_from(current.checkpoints)
        if regressed:
            raise ValidationError(
                f"Checkpoint clearance cannot be revoked: {[c.value for c in regressed]}",
                field_name="checkpoints",
                context={"passenger_id": update.id},
            )
        if update.enrolled_at != current.enrolled_at:
            raise ValidationError(
                "enrolled_at is set once and cannot change",
                field_name="enrolled_at",
                context={"passenger_id": update.id},
            )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def put(self, record: PassengerRecord) -> None:
        if not isinstance(record, PassengerRecord):
            raise ValidationError(
                f"Expected PassengerRecord, got {type(record).__name__}",
                field_name="record",
            )

        document = record.to_dict()

        def change() -> bool:
            current = self._documents.get(record.id)
            if current is not None:
                self._check_update(self._decode(current), record)
            self._documents[record.id] = document
            return current is not None

        replaced = self._mutate(change)
        logger.debug(
            "Passenger record saved", passenger_id=record.id, replaced=replaced
        )

    def get_by_id(self, passenger_id: str) -> Optional[PassengerRecord]:
        with self._mutex:
            document = self._documents.get(passenger_id)
        return self._decode(document) if document is not None else None

    def get_by_passport(self, passport_number: str) -> Optional[PassengerRecord]:
        for document in self._snapshot():
            if document.get("passport_number") == passport_number:
                return self._decode(document)
        return None

    def find_by_biometrics(
        self, face_hash: str, fingerprint_hash: Optional[str] = None
    ) -> List[PassengerRecord]:
        matches = []
        for document in self._snapshot():
            biometrics = document.get("biometrics") or {}
            if biometrics.get("face_hash") != face_hash:
                continue
            if fingerprint_hash and biometrics.get("fingerprint_hash") != fingerprint_hash:
                continue
            matches.append(self._decode(document))

        logger.debug(
            "Biometric lookup",
            face_hash=short_digest(face_hash),
            with_fingerprint=bool(fingerprint_hash),
            candidates=len(matches),
        )
        return matches

    def list_all(self) -> List[PassengerRecord]:
        return [self._decode(document) for document in self._snapshot()]

    def delete_by_id(self, passenger_id: str) -> bool:
        with self.locks.record(passenger_id):
            deleted = self._mutate(
                lambda: self._documents.pop(passenger_id, None) is not None
            )

        logger.info("Passenger record deleted", passenger_id=passenger_id, found=deleted)
        return deleted

    def delete_all(self) -> int:
        def change() -> int:
            removed = len(self._documents)
            self._documents = {}
            return removed

        with self.locks.exclusive():
            removed = self._mutate(change)

        logger.info("All passenger records deleted", removed=removed)
        return removed

    def sweep_expired(self, now: datetime) -> int:
        now = ensure_aware(now)

        def change() -> int:
            expired = [
                passenger_id
                for passenger_id, document in self._documents.items()
                if parse_timestamp(document["departure_time"]) <= now
            ]
            for passenger_id in expired:
                del self._documents[passenger_id]
            return len(expired)

        with self.locks.exclusive():
            removed = self._mutate(change)

        logger.info("Expired passenger records swept", removed=removed, now=now.isoformat())
        return removed

    def count(self) -> int:
        with self._mutex:
            return len(self._documents)


class JsonFilePassengerRecordStore(InMemoryPassengerRecordStore):
    """
    Passenger store persisted to a JSON file after every change.

    The file is read once at construction; the store assumes it is the
    only writer of that file.

    Parameters
    ----------
    path : Path
        JSON file location. Parent directories are created on first write.
    lock_timeout_seconds : float, optional
        See :class:`PassengerRecordStore`.
    """

    def __init__(self, path: Path, lock_timeout_seconds: Optional[float] = None) -> None:
        super().__init__(lock_timeout_seconds)
        self.file = JsonDocumentFile(path, self.store_name)

        document = self.file.load()
        if document is not None:
            for passenger in document.get("passengers", []):
                record = self._decode(passenger)
                self._documents[record.id] = record.to_dict()

        logger.info(
            "Passenger store opened", path=str(self.file.path), records=len(self._documents)
        )

    @classmethod
    def in_directory(cls, directory: Path, **kwargs) -> "JsonFilePassengerRecordStore":
        return cls(Path(directory) / DEFAULT_PASSENGER_STORE_FILE, **kwargs)

    def _commit(self) -> None:
        self.file.save({"passengers": list(self._documents.values())})
