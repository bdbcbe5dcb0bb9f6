"""
Append-only audit log of checkpoint access attempts.

Entries are immutable. The store assigns each appended entry a unique id and
keeps entries ordered by timestamp; entries are only ever removed together
by ``clear_all``.
"""

import bisect
import threading
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Set

import structlog

from .constants import DEFAULT_ACCESS_LOG_FILE
from .data_models import AccessLogEntry
from .exceptions import RecordSerializationError, StorageError, ValidationError
from .hashing import generate_id
from .persistence import JsonDocumentFile
from .utils import ensure_aware

# Initialize structured logger
logger = structlog.get_logger(__name__)


class AccessLogStore(ABC):
    """Abstract append-only log of access attempts."""

    store_name = "access_log"

    @abstractmethod
    def append(self, entry: AccessLogEntry) -> AccessLogEntry:
        """Store ``entry`` and return it with its assigned id."""

    @abstractmethod
    def recent(
        self, limit: int, since: Optional[datetime] = None
    ) -> List[AccessLogEntry]:
        """
        Return at most ``limit`` entries, most recent first.

        When ``since`` is given only entries strictly after it are returned.
        """

    @abstractmethod
    def all_entries(self) -> List[AccessLogEntry]:
        """Return every entry, oldest first."""

    @abstractmethod
    def clear_all(self) -> int:
        """Remove every entry and return how many were removed."""

    @abstractmethod
    def count(self) -> int:
        """Number of stored entries."""


class InMemoryAccessLogStore(AccessLogStore):
    """
    Process-local access log.

    Examples
    --------
    >>> log = InMemoryAccessLogStore()
    >>> stored = log.append(entry)
    >>> log.recent(limit=1)[0].id == stored.id
    True
    """

    def __init__(self) -> None:
        self._mutex = threading.RLock()
        self._entries: List[AccessLogEntry] = []
        self._ids: Set[str] = set()

    def _commit(self) -> None:
        """Persist the current entries. In-memory stores have nothing to do."""

    def append(self, entry: AccessLogEntry) -> AccessLogEntry:
        """
        Store ``entry`` in timestamp order.

        An entry without an id is given a fresh one. A caller-supplied id is
        kept only if no stored entry already carries it.

        Raises
        ------
        ValidationError
            If ``entry`` is not an AccessLogEntry or its id is already taken.
        StorageError
            If the entry could not be persisted; the log is left unchanged.
        """
        if not isinstance(entry, AccessLogEntry):
            raise ValidationError(
                f"Expected AccessLogEntry, got {type(entry).__name__}",
                field_name="entry",
            )

        with self._mutex:
            if not entry.id:
                stored = replace(entry, id=generate_id())
            elif entry.id in self._ids:
                raise ValidationError(
                    f"Access log entry id '{entry.id}' already exists",
                    field_name="id",
                    context={"entry_id": entry.id},
                )
            else:
                stored = entry

            # Equal timestamps keep append order
            position = bisect.bisect_right(
                self._entries, stored.timestamp, key=lambda e: e.timestamp
            )
            self._entries.insert(position, stored)
            self._ids.add(stored.id)
            try:
                self._commit()
            except StorageError:
                del self._entries[position]
                self._ids.discard(stored.id)
                raise

        logger.debug(
            "Access attempt logged",
            entry_id=stored.id,
            passenger_id=stored.passenger_id,
            checkpoint=stored.checkpoint.value,
            result=stored.result.value,
        )
        return stored

    def recent(
        self, limit: int, since: Optional[datetime] = None
    ) -> List[AccessLogEntry]:
        if limit <= 0:
            return []

        cutoff = ensure_aware(since) if since is not None else None
        selected = []
        with self._mutex:
            for entry in reversed(self._entries):
                if cutoff is not None and entry.timestamp <= cutoff:
                    break
                selected.append(entry)
                if len(selected) >= limit:
                    break
        return selected

    def all_entries(self) -> List[AccessLogEntry]:
        with self._mutex:
            return list(self._entries)

    def clear_all(self) -> int:
        with self._mutex:
            snapshot, snapshot_ids = self._entries, self._ids
            self._entries, self._ids = [], set()
            try:
                self._commit()
            except StorageError:
                self._entries, self._ids = snapshot, snapshot_ids
                raise

        logger.info("Access log cleared", removed=len(snapshot))
        return len(snapshot)

    def count(self) -> int:
        with self._mutex:
            return len(self._entries)


class JsonFileAccessLogStore(InMemoryAccessLogStore):
    """
    Access log persisted to a JSON file after every append.

    Parameters
    ----------
    path : Path
        JSON file location. Parent directories are created on first write.
    """

    def __init__(self, path: Path) -> None:
        super().__init__()
        self.file = JsonDocumentFile(path, self.store_name)

        document = self.file.load()
        if document is not None:
            try:
                entries = [AccessLogEntry.from_dict(d) for d in document.get("entries", [])]
            except (KeyError, TypeError, ValueError) as e:
                raise RecordSerializationError(
                    f"Stored access log entry is invalid: {e}",
                    store=self.store_name,
                    context={"path": str(self.file.path)},
                )
            self._entries = sorted(entries, key=lambda e: e.timestamp)
            self._ids = {entry.id for entry in entries}
            if len(self._ids) != len(entries):
                raise RecordSerializationError(
                    "Stored access log contains duplicate entry ids",
                    store=self.store_name,
                    context={"path": str(self.file.path)},
                )

        logger.info(
            "Access log opened", path=str(self.file.path), entries=len(self._entries)
        )

    @classmethod
    def in_directory(cls, directory: Path) -> "JsonFileAccessLogStore":
        return cls(Path(directory) / DEFAULT_ACCESS_LOG_FILE)

    def _commit(self) -> None:
        self.file.save({"entries": [entry.to_dict() for entry in self._entries]})
