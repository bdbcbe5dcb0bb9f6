"""
Checkpoint verification engine for the TRUIDA system.

This module implements the decision logic applied when a passenger presents
biometrics at a checkpoint:

1. candidate selection by exact biometric digest,
2. best-match selection by embedding similarity,
3. flight-validity check,
4. checkpoint precedence check,
5. idempotent re-entry,
6. grant, persisted through the record store,
7. audit logging of every attempt that matched a record.

Every branch ends in a :class:`~truida.data_models.VerificationOutcome`.
Only infrastructure faults (the store could not be read or written)
propagate as exceptions.
"""

from dataclasses import replace
from datetime import datetime
from typing import List, Optional, Sequence, Tuple, Union

import structlog

from . import config
from .access_log import AccessLogStore
from .constants import SYSTEM_STAFF_ID
from .data_models import (
    AccessLogEntry,
    Checkpoint,
    PassengerRecord,
    VerificationOutcome,
    VerificationStatus,
)
from .exceptions import AccessLogWriteError, BiometricInputError, StorageError
from .record_store import PassengerRecordStore
from .similarity import SimilarityScorer
from .utils import (
    Clock,
    ensure_aware,
    format_similarity,
    retry,
    short_digest,
    timer,
    utc_now,
)

# Initialize structured logger
logger = structlog.get_logger(__name__)

NO_MATCH_MESSAGE = (
    "No matching passenger found. Please verify your identity or enroll first."
)
FLIGHT_DEPARTED_MESSAGE = "Flight has already departed. Access denied."
ALREADY_CLEARED_MESSAGE = "Already cleared this checkpoint. Access granted."


def _prerequisite_message(missing: Sequence[Checkpoint]) -> str:
    names = " and ".join(checkpoint.value for checkpoint in missing)
    noun = "checkpoint" if len(missing) == 1 else "checkpoints"
    return f"Must clear {names} {noun} first."


class CheckpointEngine:
    """
    Orchestrates biometric verification at the security, immigration and
    boarding checkpoints.

    The read-decide-write sequence for a passenger runs under that
    passenger's record lock, so a precedence check never races a concurrent
    grant of its prerequisite, and a sweep never interleaves with a grant.

    Parameters
    ----------
    records : PassengerRecordStore
        Passenger store; the engine only ever changes ``checkpoints``.
    access_log : AccessLogStore
        Audit log receiving one entry per matched attempt.
    scorer : SimilarityScorer, optional
        Embedding comparison. Defaults to cosine similarity.
    clock : Clock, optional
        Source of "now". Defaults to the system UTC clock.
    retry_attempts : int, optional
        Attempts for each store write. Defaults to ``config.STORAGE_RETRY_ATTEMPTS``.
    retry_delay_seconds : float, optional
        Initial delay between attempts. Defaults to
        ``config.STORAGE_RETRY_DELAY_SECONDS``.

    Examples
    --------
    >>> engine = CheckpointEngine(records, access_log)
    >>> outcome = engine.verify("security", face_hash, embedding)
    >>> outcome.status
    <VerificationStatus.GRANTED: 'GRANTED'>
    """

    def __init__(
        self,
        records: PassengerRecordStore,
        access_log: AccessLogStore,
        scorer: Optional[SimilarityScorer] = None,
        clock: Optional[Clock] = None,
        retry_attempts: Optional[int] = None,
        retry_delay_seconds: Optional[float] = None,
    ) -> None:
        self.records = records
        self.access_log = access_log
        self.scorer = scorer or SimilarityScorer()
        self.clock = clock or utc_now

        attempts = retry_attempts or config.STORAGE_RETRY_ATTEMPTS
        delay = (
            config.STORAGE_RETRY_DELAY_SECONDS
            if retry_delay_seconds is None
            else retry_delay_seconds
        )
        self._with_retry = retry(
            max_attempts=attempts, delay=delay, exceptions=(StorageError,)
        )

    # ------------------------------------------------------------------
    # Matching
    # ------------------------------------------------------------------
    def select_best_match(
        self,
        candidates: List[PassengerRecord],
        presented_embedding: Optional[Sequence[float]],
    ) -> Tuple[PassengerRecord, float]:
        """
        Pick the candidate whose stored embedding is most similar.

        Candidates without a stored embedding are only chosen when no
        candidate has one, in which case the first candidate wins with
        similarity 0. Ties go to the candidate seen first.

        Parameters
        ----------
        candidates : List[PassengerRecord]
            Non-empty exact-digest matches, in store order.
        presented_embedding : Sequence[float], optional
            Embedding of the presented capture.

        Returns
        -------
        Tuple[PassengerRecord, float]
            Selected record and its similarity.
        """
        best = candidates[0]
        best_similarity = 0.0
        seen_embedding = False

        for candidate in candidates:
            if not candidate.biometrics.has_embedding:
                continue

            similarity = self.scorer.similarity(
                candidate.biometrics.face_embedding, presented_embedding
            )
            if not seen_embedding or similarity > best_similarity:
                best, best_similarity = candidate, similarity
                seen_embedding = True

        return best, best_similarity

    # ------------------------------------------------------------------
    # Decision
    # ------------------------------------------------------------------
    def _decide(
        self, checkpoint: Checkpoint, record: PassengerRecord, now: datetime
    ) -> Tuple[VerificationStatus, str, Tuple[Checkpoint, ...]]:
        if record.has_departed(now):
            return VerificationStatus.FLIGHT_DEPARTED, FLIGHT_DEPARTED_MESSAGE, ()

        missing = tuple(record.checkpoints.missing_prerequisites(checkpoint))
        if missing:
            return (
                VerificationStatus.PREREQUISITE_MISSING,
                _prerequisite_message(missing),
                missing,
            )

        if record.checkpoints.is_cleared(checkpoint):
            return VerificationStatus.ALREADY_CLEARED, ALREADY_CLEARED_MESSAGE, ()

        return (
            VerificationStatus.GRANTED,
            f"Access granted. Welcome, {record.first_name}!",
            (),
        )

    def _audit_notes(
        self,
        status: VerificationStatus,
        similarity: float,
        missing: Tuple[Checkpoint, ...],
    ) -> str:
        notes = format_similarity(similarity)
        if status is VerificationStatus.FLIGHT_DEPARTED:
            notes += "; flight departed"
        elif status is VerificationStatus.PREREQUISITE_MISSING:
            notes += "; missing " + ", ".join(c.value for c in missing)
        elif status is VerificationStatus.ALREADY_CLEARED:
            notes += "; already cleared"
        return notes

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    @timer
    def verify(
        self,
        checkpoint: Union[Checkpoint, str],
        face_hash: str,
        face_embedding: Optional[Sequence[float]] = None,
        fingerprint_hash: Optional[str] = None,
        staff_id: str = SYSTEM_STAFF_ID,
    ) -> VerificationOutcome:
        """
        Verify a presented biometric sample at ``checkpoint``.

        Parameters
        ----------
        checkpoint : Checkpoint or str
            ``security``, ``immigration`` or ``boarding``.
        face_hash : str
            Digest of the presented face capture.
        face_embedding : Sequence[float], optional
            Embedding of the presented face capture.
        fingerprint_hash : str, optional
            Digest of a presented fingerprint; narrows the candidates.
        staff_id : str, default=SYSTEM_STAFF_ID
            Actor recorded on the audit entry.

        Returns
        -------
        VerificationOutcome
            Terminal outcome of the attempt.

        Raises
        ------
        BiometricInputError
            If ``face_hash`` is empty or blank.
        ValidationError
            If ``checkpoint`` is unknown.
        StorageError
            If the store could not be read, or a grant could not be persisted
            after retries.
        AccessLogWriteError
            If the decision was taken but its audit entry could not be written.
        """
        checkpoint = Checkpoint.parse(checkpoint)
        if not isinstance(face_hash, str) or not face_hash.strip():
            raise BiometricInputError(
                "Presented face hash must be a non-empty string", field_name="face_hash"
            )
        # Digests are stored stripped at enrollment
        face_hash = face_hash.strip()
        if fingerprint_hash is not None and not isinstance(fingerprint_hash, str):
            raise BiometricInputError(
                "Presented fingerprint hash must be a string",
                field_name="fingerprint_hash",
            )
        fingerprint_hash = (fingerprint_hash or "").strip() or None

        candidates = self.records.find_by_biometrics(face_hash, fingerprint_hash)
        if not candidates:
            logger.info(
                "Verification found no candidate",
                checkpoint=checkpoint.value,
                face_hash=short_digest(face_hash),
                with_fingerprint=fingerprint_hash is not None,
            )
            return VerificationOutcome(
                status=VerificationStatus.NO_MATCH,
                checkpoint=checkpoint,
                message=NO_MATCH_MESSAGE,
            )

        best, similarity = self.select_best_match(candidates, face_embedding)

        with self.records.locks.record(best.id):
            # Re-read under the lock; the candidate snapshot may be stale
            record = self.records.get_by_id(best.id)
            if record is None:
                logger.info(
                    "Matched passenger removed before decision",
                    passenger_id=best.id,
                    checkpoint=checkpoint.value,
                )
                return VerificationOutcome(
                    status=VerificationStatus.NO_MATCH,
                    checkpoint=checkpoint,
                    message=NO_MATCH_MESSAGE,
                )

            now = ensure_aware(self.clock())
            status, message, missing = self._decide(checkpoint, record, now)

            if status is VerificationStatus.GRANTED:
                record = record.with_checkpoint_cleared(checkpoint)
                self._with_retry(self.records.put)(record)

            outcome = VerificationOutcome(
                status=status,
                checkpoint=checkpoint,
                message=message,
                passenger=record,
                similarity=similarity,
                missing_checkpoints=missing,
            )

            entry = AccessLogEntry(
                passenger_id=record.id,
                checkpoint=checkpoint,
                timestamp=now,
                result=status.access_result,
                staff_id=staff_id,
                notes=self._audit_notes(status, similarity, missing),
            )
            try:
                stored_entry = self._with_retry(self.access_log.append)(entry)
            except StorageError as e:
                raise AccessLogWriteError(
                    f"Decision {status.value} taken but audit entry was not written: {e}",
                    outcome=outcome,
                    context={"passenger_id": record.id, "checkpoint": checkpoint.value},
                ) from e

        logger.info(
            "Checkpoint verification completed",
            passenger_id=record.id,
            checkpoint=checkpoint.value,
            status=status.value,
            similarity=round(similarity, 4),
            scorer=self.scorer.name,
            candidates=len(candidates),
            staff_id=staff_id,
        )
        return replace(outcome, log_entry=stored_entry)
