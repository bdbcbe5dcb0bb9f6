"""
Unit tests for access log export.
"""

import csv
import json

import pytest

from truida.audit_export import CSV_FIELDS, AccessLogExporter
from truida.data_models import AccessLogEntry, AccessResult, Checkpoint
from tests.factories import NOW


@pytest.fixture
def entries():
    return [
        AccessLogEntry(
            "TRU-1",
            Checkpoint.SECURITY,
            NOW,
            AccessResult.GRANTED,
            "S1",
            "Similarity: 99.0%",
            id="L1",
        ),
        AccessLogEntry(
            None, Checkpoint.BOARDING, NOW, AccessResult.DENIED, "SYSTEM", "", id="L2"
        ),
    ]


@pytest.mark.unit
class TestAccessLogExporter:
    """Test cases for AccessLogExporter"""

    def test_exports_both_formats_by_default(self, tmp_path, entries):
        written = AccessLogExporter(tmp_path).export(entries)

        assert set(written) == {"json", "csv"}
        assert all(path.exists() for path in written.values())

    def test_json_document(self, tmp_path, entries):
        written = AccessLogExporter(tmp_path).export(
            entries, formats=["json"], include_timestamp=False
        )

        document = json.loads(written["json"].read_text(encoding="utf-8"))
        assert written["json"].name == "truida_access_log.json"
        assert document["metadata"]["total_entries"] == 2
        assert document["metadata"]["granted"] == 1
        assert document["metadata"]["denied"] == 1
        assert [e["id"] for e in document["entries"]] == ["L1", "L2"]

    def test_csv_rows_with_names(self, tmp_path, entries):
        names = {"TRU-1": "Ada Lovelace"}
        written = AccessLogExporter(tmp_path).export(
            entries,
            formats=["csv"],
            describe=lambda e: names.get(e.passenger_id, "Unknown Passenger"),
        )

        with open(written["csv"], newline="", encoding="utf-8") as f:
            rows = list(csv.DictReader(f))

        assert list(rows[0].keys()) == CSV_FIELDS
        assert rows[0]["passenger_name"] == "Ada Lovelace"
        assert rows[0]["result"] == "granted"
        assert rows[1]["passenger_id"] == ""
        assert rows[1]["passenger_name"] == "Unknown Passenger"

    def test_overwrite_creates_backup(self, tmp_path, entries):
        exporter = AccessLogExporter(tmp_path)
        exporter.export(entries, formats=["json"], include_timestamp=False)
        exporter.export(entries[:1], formats=["json"], include_timestamp=False)

        backups = list((tmp_path / "backups").glob("truida_access_log_backup_*.json"))
        assert len(backups) == 1

    def test_unknown_format_rejected(self, tmp_path, entries):
        with pytest.raises(ValueError):
            AccessLogExporter(tmp_path).export(entries, formats=["xml"])

    def test_empty_log_exports_header_only(self, tmp_path):
        written = AccessLogExporter(tmp_path).export([], formats=["csv"])

        lines = written["csv"].read_text(encoding="utf-8").splitlines()
        assert lines == [",".join(CSV_FIELDS)]
