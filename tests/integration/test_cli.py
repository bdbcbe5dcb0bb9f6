"""
Smoke tests for the truida command line.
"""

import json

import pytest
import structlog

from truida import config
from truida.cli import EXIT_DENIED, EXIT_ERROR, EXIT_OK, TruidaCLI
from tests.factories import png_bytes

NOW_ARG = "2030-01-01T12:00:00Z"


@pytest.fixture(autouse=True)
def quiet_logs():
    config.configure_logging(level="CRITICAL")
    yield
    structlog.reset_defaults()


@pytest.fixture
def captures(tmp_path):
    face = tmp_path / "face.png"
    finger = tmp_path / "finger.png"
    face.write_bytes(png_bytes(21))
    finger.write_bytes(png_bytes(22))
    return face, finger


@pytest.fixture
def run(tmp_path, capsys):
    data_dir = tmp_path / "data"

    def invoke(*args, now=NOW_ARG):
        argv = ["--data-dir", str(data_dir), "--backend", "json", "--now", now, "--json"]
        code = TruidaCLI().run_from_args(argv + list(args))
        captured = capsys.readouterr()
        output = json.loads(captured.out) if captured.out.strip() else None
        return code, output, captured.err

    return invoke


@pytest.fixture
def enrolled(run, captures):
    face, finger = captures
    code, output, _ = run(
        "enroll",
        "--first-name", "Ada",
        "--last-name", "Lovelace",
        "--passport", "P1234567",
        "--flight", "TR101",
        "--gate", "B12",
        "--departure", "2030-01-01T18:00:00Z",
        "--face-image", str(face),
        "--fingerprint-image", str(finger),
    )
    assert code == EXIT_OK
    return output["passenger_id"]


@pytest.mark.integration
class TestCli:
    """Test cases for TruidaCLI"""

    def test_verify_progression(self, run, captures, enrolled):
        face, finger = captures

        code, output, _ = run("verify", "security", "--face-image", str(face))
        assert code == EXIT_OK
        assert output["status"] == "GRANTED"
        assert output["passenger_id"] == enrolled

        code, output, _ = run(
            "verify", "boarding", "--face-image", str(face), "--fingerprint-image", str(finger)
        )
        assert code == EXIT_DENIED
        assert output["status"] == "PREREQUISITE_MISSING"
        assert output["missing_checkpoints"] == ["immigration"]

    def test_unknown_face_is_no_match(self, run, tmp_path, enrolled):
        stranger = tmp_path / "stranger.png"
        stranger.write_bytes(png_bytes(77))

        code, output, _ = run("verify", "security", "--face-image", str(stranger))

        assert code == EXIT_DENIED
        assert output["status"] == "NO_MATCH"

    def test_list_and_stats(self, run, captures, enrolled):
        face, _ = captures
        run("verify", "security", "--face-image", str(face))

        _, listing, _ = run("list")
        _, stats, _ = run("stats")

        assert [p["id"] for p in listing["passengers"]] == [enrolled]
        assert stats["total_enrolled"] == 1
        assert stats["checkpoint_counts"]["security"] == 1
        assert len(stats["recent_activity"]) == 1

    def test_sweep_after_departure(self, run, enrolled):
        code, output, _ = run("sweep", now="2030-01-01T18:00:00Z")

        assert code == EXIT_OK
        assert output == {"removed": 1}

    def test_export_logs(self, run, captures, tmp_path, enrolled):
        face, _ = captures
        run("verify", "security", "--face-image", str(face))

        code, output, _ = run(
            "export-logs", "--format", "csv", "--output-dir", str(tmp_path / "exports")
        )

        assert code == EXIT_OK
        content = next((tmp_path / "exports").glob("*.csv")).read_text()
        assert "Ada Lovelace" in content
        assert set(output) == {"csv"}

    def test_delete_and_clear(self, run, enrolled):
        assert run("delete", enrolled)[0] == EXIT_OK
        assert run("delete", enrolled)[0] == EXIT_ERROR

        code, _, err = run("clear")
        assert code == EXIT_ERROR
        assert "--yes" in err

        code, output, _ = run("clear", "--yes")
        assert code == EXIT_OK
        assert output == {"passengers": 0, "log_entries": 0}

    def test_enroll_validation_error(self, run, captures):
        face, finger = captures

        code, output, err = run(
            "enroll",
            "--first-name", " ",
            "--last-name", "Lovelace",
            "--passport", "P1",
            "--flight", "TR1",
            "--departure", "2030-01-01T18:00:00Z",
            "--face-image", str(face),
            "--fingerprint-image", str(finger),
        )

        assert code == EXIT_ERROR
        assert output is None
        assert "first_name is required" in err

    def test_missing_capture_file(self, run, tmp_path):
        code, _, err = run("verify", "security", "--face-image", str(tmp_path / "nope.png"))

        assert code == EXIT_ERROR
        assert "[ERROR]" in err

    def test_config_command(self, run):
        code, output, _ = run("config")

        assert code == EXIT_OK
        assert "storage" in output

    def test_unknown_checkpoint_is_usage_error(self, run, captures):
        face, _ = captures

        code, _, _ = run("verify", "lounge", "--face-image", str(face))

        assert code == 2
