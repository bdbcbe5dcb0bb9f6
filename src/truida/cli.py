import sys
import json
import argparse
from pathlib import Path
from typing import Optional, List, Tuple

import structlog

from . import config
from .access_log import AccessLogStore, InMemoryAccessLogStore, JsonFileAccessLogStore
from .audit_export import AccessLogExporter
from .checkpoint_engine import CheckpointEngine
from .constants import CHECKPOINT_ORDER, SYSTEM_STAFF_ID
from .enrollment import EnrollmentService, IdentityFields
from .exceptions import ConfigurationError, TruidaError
from .feature_extraction import CaptureProcessor
from .lifecycle import LifecycleSweeper
from .record_store import (
    InMemoryPassengerRecordStore,
    JsonFilePassengerRecordStore,
    PassengerRecordStore,
)
from .stats import StatsAggregator
from .utils import Clock, fixed_clock, parse_timestamp, utc_now

# Initialize structured logger
logger = structlog.get_logger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_DENIED = 3


def open_stores(
    backend: str, data_dir: Path
) -> Tuple[PassengerRecordStore, AccessLogStore]:
    """Create the passenger store and access log for ``backend``."""
    if backend == "json":
        return (
            JsonFilePassengerRecordStore.in_directory(data_dir),
            JsonFileAccessLogStore.in_directory(data_dir),
        )
    if backend == "memory":
        return InMemoryPassengerRecordStore(), InMemoryAccessLogStore()
    raise ConfigurationError(
        f"Unknown store backend '{backend}'",
        config_key="TRUIDA_STORE_BACKEND",
        config_value=backend,
    )


def _read_capture(path: str) -> bytes:
    return Path(path).read_bytes()


class TruidaCLI:
    """Staff and kiosk command-line interface for the TRUIDA system."""

    def __init__(self) -> None:
        self.parser = self._create_argument_parser()

    def _create_argument_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            prog="truida",
            description="TRUIDA - Biometric Passenger Identity Workflow",
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )
        parser.add_argument(
            "--data-dir",
            type=Path,
            default=config.DATA_DIR,
            help=f"Directory holding the JSON stores. Default: {config.DATA_DIR}",
        )
        parser.add_argument(
            "--backend",
            choices=["json", "memory"],
            default=config.STORE_BACKEND,
            help="Store backend. Default: %(default)s.",
        )
        parser.add_argument(
            "--now",
            default=config.FIXED_NOW,
            help="Evaluate against this ISO 8601 instant instead of the current time.",
        )
        parser.add_argument(
            "--json", action="store_true", help="Print results as JSON."
        )

        subparsers = parser.add_subparsers(dest="command", required=True)
        self._add_enroll_command(subparsers)
        self._add_verify_command(subparsers)

        subparsers.add_parser("sweep", help="Delete records whose flight has departed.")
        subparsers.add_parser("stats", help="Show dashboard statistics.")
        subparsers.add_parser("list", help="List enrolled passengers.")
        subparsers.add_parser("config", help="Show the effective configuration.")

        delete_parser = subparsers.add_parser("delete", help="Delete one passenger.")
        delete_parser.add_argument("passenger_id")

        clear_parser = subparsers.add_parser(
            "clear", help="Delete ALL passenger data and access logs."
        )
        clear_parser.add_argument(
            "--yes", action="store_true", help="Confirm the irreversible deletion."
        )

        export_parser = subparsers.add_parser(
            "export-logs", help="Export the access log to JSON and/or CSV."
        )
        export_parser.add_argument(
            "--format",
            dest="formats",
            nargs="+",
            choices=list(AccessLogExporter.SUPPORTED_FORMATS),
            default=list(AccessLogExporter.SUPPORTED_FORMATS),
        )
        export_parser.add_argument("--output-dir", type=Path, default=config.EXPORT_DIR)

        return parser

    def _add_enroll_command(self, subparsers) -> None:
        """Add the 'enroll' command and its arguments."""
        enroll_parser = subparsers.add_parser(
            "enroll", help="Enroll a passenger from face and fingerprint captures."
        )
        enroll_parser.add_argument("--first-name", required=True)
        enroll_parser.add_argument("--last-name", required=True)
        enroll_parser.add_argument("--passport", required=True)
        enroll_parser.add_argument("--flight", required=True)
        enroll_parser.add_argument("--gate", default="")
        enroll_parser.add_argument(
            "--departure", required=True, help="Departure time, ISO 8601."
        )
        enroll_parser.add_argument("--guardian-id", default=None)
        enroll_parser.add_argument("--face-image", required=True)
        enroll_parser.add_argument("--fingerprint-image", required=True)

    def _add_verify_command(self, subparsers) -> None:
        """Add the 'verify' command and its arguments."""
        verify_parser = subparsers.add_parser(
            "verify", help="Verify a passenger at a checkpoint."
        )
        verify_parser.add_argument("checkpoint", choices=list(CHECKPOINT_ORDER))
        verify_parser.add_argument("--face-image", required=True)
        verify_parser.add_argument("--fingerprint-image", default=None)
        verify_parser.add_argument("--staff-id", default=SYSTEM_STAFF_ID)

    def _clock(self, args: argparse.Namespace) -> Clock:
        return fixed_clock(parse_timestamp(args.now)) if args.now else utc_now

    def _emit(self, args: argparse.Namespace, payload: dict, text: str) -> None:
        if args.json:
            print(json.dumps(payload, indent=2, default=str))
        else:
            print(text)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------
    def _execute_enroll(self, args, records, access_log, clock) -> int:
        service = EnrollmentService(records, CaptureProcessor(), clock=clock)
        record = service.enroll_captures(
            IdentityFields(
                first_name=args.first_name,
                last_name=args.last_name,
                passport_number=args.passport,
                flight_number=args.flight,
                departure_time=args.departure,
                gate=args.gate,
                guardian_id=args.guardian_id,
            ),
            _read_capture(args.face_image),
            _read_capture(args.fingerprint_image),
        )
        self._emit(
            args,
            {"passenger_id": record.id, "enrolled_at": record.enrolled_at},
            f"Enrolled {record.full_name} as {record.id}",
        )
        return EXIT_OK

    def _execute_verify(self, args, records, access_log, clock) -> int:
        processor = CaptureProcessor()
        face = processor.process_face_capture(_read_capture(args.face_image))
        fingerprint_hash = None
        if args.fingerprint_image:
            fingerprint_hash = processor.process_fingerprint_capture(
                _read_capture(args.fingerprint_image)
            ).digest

        engine = CheckpointEngine(records, access_log, clock=clock)
        outcome = engine.verify(
            args.checkpoint,
            face.digest,
            face.embedding,
            fingerprint_hash,
            staff_id=args.staff_id,
        )
        self._emit(
            args,
            outcome.to_dict(),
            f"[{outcome.status.value}] {outcome.message} "
            f"(similarity {outcome.similarity * 100:.1f}%)",
        )
        return EXIT_OK if outcome.granted else EXIT_DENIED

    def _execute_sweep(self, args, records, access_log, clock) -> int:
        removed = LifecycleSweeper(records, clock=clock).sweep()
        self._emit(
            args, {"removed": removed}, f"Removed {removed} expired passenger records."
        )
        return EXIT_OK

    def _execute_stats(self, args, records, access_log, clock) -> int:
        if config.AUTO_SWEEP:
            LifecycleSweeper(records, clock=clock).sweep()

        aggregator = StatsAggregator(records, access_log, clock=clock)
        stats = aggregator.get_stats()

        lines = [
            f"Total enrolled:  {stats.total_enrolled}",
            f"Active:          {stats.total_active}",
        ]
        for name, count in stats.checkpoint_counts.items():
            lines.append(f"{name.capitalize():<16} {count}")
        lines.append("Recent activity:")
        for entry in stats.recent_activity:
            lines.append(
                f"  {entry.timestamp:%H:%M:%S} {entry.checkpoint.value:<12} "
                f"{entry.result.value:<8} {aggregator.describe_entry(entry)} ({entry.notes})"
            )
        self._emit(args, stats.to_dict(), "\n".join(lines))
        return EXIT_OK

    def _execute_list(self, args, records, access_log, clock) -> int:
        if config.AUTO_SWEEP:
            LifecycleSweeper(records, clock=clock).sweep()

        passengers = StatsAggregator(records, access_log, clock=clock).list_passengers()
        lines = [
            f"{p.id}  {p.full_name:<24} {p.passport_number:<12} "
            f"{p.flight_number}/{p.gate or '-'}  {p.departure_time.isoformat()}  "
            + " ".join(
                f"{name}={'Y' if cleared else 'N'}"
                for name, cleared in p.checkpoints.to_dict().items()
            )
            for p in passengers
        ]
        self._emit(
            args,
            {"passengers": [p.to_dict() for p in passengers]},
            "\n".join(lines) if lines else "No passengers enrolled",
        )
        return EXIT_OK

    def _execute_delete(self, args, records, access_log, clock) -> int:
        deleted = StatsAggregator(records, access_log).delete_passenger(args.passenger_id)
        self._emit(
            args,
            {"deleted": deleted},
            "Passenger deleted." if deleted else "Passenger not found.",
        )
        return EXIT_OK if deleted else EXIT_ERROR

    def _execute_clear(self, args, records, access_log, clock) -> int:
        if not args.yes:
            print("Refusing to clear all data without --yes.", file=sys.stderr)
            return EXIT_ERROR
        removed = StatsAggregator(records, access_log).clear_all()
        self._emit(
            args,
            removed,
            f"Deleted {removed['passengers']} passengers and "
            f"{removed['log_entries']} log entries.",
        )
        return EXIT_OK

    def _execute_export(self, args, records, access_log, clock) -> int:
        aggregator = StatsAggregator(records, access_log)
        written = AccessLogExporter(args.output_dir).export(
            access_log.all_entries(),
            formats=args.formats,
            describe=aggregator.describe_entry,
        )
        self._emit(
            args,
            {fmt: str(path) for fmt, path in written.items()},
            "\n".join(f"Wrote {path}" for path in written.values()),
        )
        return EXIT_OK

    def run_from_args(self, args_list: Optional[List[str]] = None) -> int:
        """Run the CLI with provided arguments."""
        try:
            args = self.parser.parse_args(args_list)
        except SystemExit as e:
            return int(e.code or 0)

        if args.command == "config":
            print(json.dumps(config.get_config_summary(), indent=2))
            return EXIT_OK

        commands = {
            "enroll": self._execute_enroll,
            "verify": self._execute_verify,
            "sweep": self._execute_sweep,
            "stats": self._execute_stats,
            "list": self._execute_list,
            "delete": self._execute_delete,
            "clear": self._execute_clear,
            "export-logs": self._execute_export,
        }

        try:
            clock = self._clock(args)
            records, access_log = open_stores(args.backend, args.data_dir)
            return commands[args.command](args, records, access_log, clock)
        except TruidaError as e:
            logger.error("Command failed", command=args.command, **e.to_dict())
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return EXIT_ERROR
        except (OSError, ValueError) as e:
            logger.error("Command failed", command=args.command, error=str(e))
            print(f"\n[ERROR] {e}", file=sys.stderr)
            return EXIT_ERROR
        except KeyboardInterrupt:
            print("\nOperation cancelled by user.", file=sys.stderr)
            return 130


def main() -> int:
    """Main entry point for the CLI."""
    config.configure_logging()
    cli = TruidaCLI()
    return cli.run_from_args()


if __name__ == "__main__":
    sys.exit(main())
