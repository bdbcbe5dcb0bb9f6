"""
Access log export for the TRUIDA system.

Writes the audit log to JSON and/or CSV files for offline review by
operations staff. Each export carries metadata (export time, entry count,
result breakdown) and, when a name resolver is supplied, the passenger name
each entry refers to.
"""

import csv
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import structlog

from . import __version__
from .constants import DEFAULT_EXPORT_BASENAME
from .data_models import AccessLogEntry, AccessResult
from .exceptions import StorageError

# Initialize structured logger
logger = structlog.get_logger(__name__)

CSV_FIELDS = [
    "id",
    "timestamp",
    "checkpoint",
    "result",
    "passenger_id",
    "passenger_name",
    "staff_id",
    "notes",
]


class AccessLogExporter:
    """
    Export access log entries to files.

    Parameters
    ----------
    output_directory : Path
        Directory for exported files; created if missing.
    auto_backup : bool, default=True
        Keep a timestamped copy of a file before overwriting it.

    Examples
    --------
    >>> exporter = AccessLogExporter(Path("./exports"))
    >>> paths = exporter.export(access_log.all_entries(), formats=["csv"])
    >>> paths["csv"].suffix
    '.csv'
    """

    SUPPORTED_FORMATS = ("json", "csv")

    def __init__(self, output_directory: Path, auto_backup: bool = True) -> None:
        self.output_directory = Path(output_directory)
        self.auto_backup = auto_backup
        self.backups_dir = self.output_directory / "backups"

    def _generate_filename(
        self, base_name: str, extension: str, include_timestamp: bool = True
    ) -> str:
        if include_timestamp:
            timestamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
            return f"{base_name}_{timestamp}{extension}"
        return f"{base_name}{extension}"

    def _backup_existing_file(self, file_path: Path) -> Optional[Path]:
        if not self.auto_backup or not file_path.exists():
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%S")
        backup_path = self.backups_dir / f"{file_path.stem}_backup_{stamp}{file_path.suffix}"
        try:
            self.backups_dir.mkdir(parents=True, exist_ok=True)
            backup_path.write_bytes(file_path.read_bytes())
            logger.debug("Created backup", backup_path=str(backup_path))
            return backup_path
        except OSError as e:
            logger.warning("Failed to create backup", error=str(e))
            return None

    def _rows(
        self,
        entries: List[AccessLogEntry],
        describe: Optional[Callable[[AccessLogEntry], str]],
    ) -> List[Dict[str, Any]]:
        rows = []
        for entry in entries:
            row = entry.to_dict()
            row["passenger_name"] = describe(entry) if describe else ""
            rows.append(row)
        return rows

    def _save_json(self, rows: List[Dict[str, Any]], file_path: Path) -> Path:
        granted = sum(1 for row in rows if row["result"] == AccessResult.GRANTED.value)
        document = {
            "metadata": {
                "exported_at": datetime.now(timezone.utc).isoformat(),
                "truida_version": __version__,
                "total_entries": len(rows),
                "granted": granted,
                "denied": len(rows) - granted,
            },
            "entries": rows,
        }
        with open(file_path, "w", encoding="utf-8") as f:
            f.write(json.dumps(document, indent=2, default=str, ensure_ascii=False))
        return file_path

    def _save_csv(self, rows: List[Dict[str, Any]], file_path: Path) -> Path:
        with open(file_path, "w", newline="", encoding="utf-8") as csvfile:
            writer = csv.DictWriter(csvfile, fieldnames=CSV_FIELDS)
            writer.writeheader()
            for row in rows:
                writer.writerow(
                    {key: "" if row.get(key) is None else row[key] for key in CSV_FIELDS}
                )
        return file_path

    def export(
        self,
        entries: List[AccessLogEntry],
        formats: Optional[List[str]] = None,
        describe: Optional[Callable[[AccessLogEntry], str]] = None,
        base_name: str = DEFAULT_EXPORT_BASENAME,
        include_timestamp: bool = True,
    ) -> Dict[str, Path]:
        """
        Write ``entries`` in each requested format.

        Parameters
        ----------
        entries : List[AccessLogEntry]
            Entries to export, in the order they should appear.
        formats : List[str], optional
            Any of ``"json"`` and ``"csv"``. Defaults to both.
        describe : Callable, optional
            Resolves an entry to a passenger name.
        base_name : str
            File name stem.
        include_timestamp : bool, default=True
            Append the export time to the file name.

        Returns
        -------
        Dict[str, Path]
            Written file per format.

        Raises
        ------
        ValueError
            If an unsupported format is requested.
        StorageError
            If a file cannot be written.
        """
        formats = list(formats or self.SUPPORTED_FORMATS)
        unknown = [f for f in formats if f not in self.SUPPORTED_FORMATS]
        if unknown:
            raise ValueError(f"Unsupported export formats: {unknown}")

        rows = self._rows(entries, describe)
        written: Dict[str, Path] = {}

        try:
            self.output_directory.mkdir(parents=True, exist_ok=True)
            for export_format in formats:
                file_path = self.output_directory / self._generate_filename(
                    base_name, f".{export_format}", include_timestamp
                )
                self._backup_existing_file(file_path)
                saver = self._save_json if export_format == "json" else self._save_csv
                written[export_format] = saver(rows, file_path)
        except OSError as e:
            raise StorageError(
                f"Failed to export access log: {e}",
                operation="export",
                store="access_log",
                context={"output_directory": str(self.output_directory)},
            )

        logger.info(
            "Access log exported",
            entries=len(rows),
            files={k: str(v) for k, v in written.items()},
        )
        return written
