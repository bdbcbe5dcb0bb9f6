"""
JSON document persistence shared by the file-backed TRUIDA stores.

Each store is saved as one JSON document. Writes go to a temporary file that
replaces the target in a single rename, so a crash mid-write never leaves a
truncated store behind. IO and encoding problems surface as
:class:`~truida.exceptions.StorageError`.
"""

import json
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

from .constants import STORE_FORMAT_VERSION
from .exceptions import RecordSerializationError, StorageError

# Initialize structured logger
logger = structlog.get_logger(__name__)


class JsonDocumentFile:
    """
    Atomic load/save of a single JSON document.

    Parameters
    ----------
    path : Path
        Location of the document.
    store_name : str
        Name of the owning store, reported in errors.
    """

    def __init__(self, path: Path, store_name: str) -> None:
        self.path = Path(path)
        self.store_name = store_name

    def load(self) -> Optional[Dict[str, Any]]:
        """
        Read the document.

        Returns
        -------
        Optional[Dict[str, Any]]
            The parsed document, or None if the file does not exist yet.

        Raises
        ------
        RecordSerializationError
            If the file is not valid JSON or has an unsupported format version.
        StorageError
            If the file cannot be read.
        """
        if not self.path.exists():
            return None

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                document = json.load(f)
        except json.JSONDecodeError as e:
            raise RecordSerializationError(
                f"Store file is not valid JSON: {e}",
                store=self.store_name,
                context={"path": str(self.path)},
            )
        except OSError as e:
            raise StorageError(
                f"Failed to read store file: {e}",
                operation="load",
                store=self.store_name,
                context={"path": str(self.path)},
            )

        if not isinstance(document, dict):
            raise RecordSerializationError(
                "Store file must contain a JSON object",
                store=self.store_name,
                context={"path": str(self.path)},
            )

        version = document.get("format_version")
        if version != STORE_FORMAT_VERSION:
            raise RecordSerializationError(
                f"Unsupported store format version: {version}",
                store=self.store_name,
                context={"path": str(self.path)},
            )

        logger.debug("Store file loaded", store=self.store_name, path=str(self.path))
        return document

    def save(self, payload: Dict[str, Any]) -> Path:
        """
        Write ``payload`` (plus format metadata) atomically.

        Raises
        ------
        RecordSerializationError
            If the payload is not JSON-serializable.
        StorageError
            If the file cannot be written.
        """
        document = {
            "format_version": STORE_FORMAT_VERSION,
            "saved_at": datetime.now(timezone.utc).isoformat(),
            **payload,
        }

        try:
            json_str = json.dumps(document, indent=2, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise RecordSerializationError(
                f"Failed to encode store document: {e}", store=self.store_name
            )

        temp_path = self.path.with_name(self.path.name + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(temp_path, "w", encoding="utf-8") as f:
                f.write(json_str)
            os.replace(temp_path, self.path)
        except OSError as e:
            raise StorageError(
                f"Failed to write store file: {e}",
                operation="save",
                store=self.store_name,
                context={"path": str(self.path)},
            )

        logger.debug("Store file saved", store=self.store_name, path=str(self.path))
        return self.path
