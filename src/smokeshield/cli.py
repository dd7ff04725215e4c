"""SmokeShield CLI — command-line interface for the alert pipeline.

The CLI plays every external role locally: it encrypts submissions with
the plaintext simulator and runs an in-process decryption oracle, so the
whole flow can be driven from a shell.

Usage:
    python -m smokeshield.cli status
    python -m smokeshield.cli submit --location L-001 --contributor fire-dept \
        --smoke 2 --wind-speed 10 --wind-direction 90
    python -m smokeshield.cli compute --location L-001
    python -m smokeshield.cli disclose --location L-001
    python -m smokeshield.cli alert --location L-001
    python -m smokeshield.cli locations --search north
    python -m smokeshield.cli events --location L-001
"""

from __future__ import annotations

import argparse
import dataclasses
import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from smokeshield.config import Settings, load_settings
from smokeshield.crypto.encrypted import PlaintextSimulator
from smokeshield.crypto.oracle import LocalDecryptionOracle, SignedProofVerifier
from smokeshield.errors import NotRevealed
from smokeshield.models.reading import SensorReading
from smokeshield.persistence.event_log import EventKind, EventLog
from smokeshield.persistence.state_store import StateStore
from smokeshield.service import ServiceResult, SmokeShieldService


@dataclasses.dataclass
class _Runtime:
    service: SmokeShieldService
    simulator: PlaintextSimulator
    oracle: LocalDecryptionOracle


def _make_runtime(settings: Settings) -> _Runtime:
    """Create a service with durable persistence and a local oracle."""
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    simulator = PlaintextSimulator()
    state_store = StateStore(settings.state_path, simulator)

    snapshot = state_store.load()
    last_request_id = max(
        (r.request_id for r in snapshot.requests), default=0,
    ) if snapshot else 0

    oracle = LocalDecryptionOracle.for_simulator(
        simulator,
        private_key=settings.oracle_key,
        start_after=last_request_id,
    )
    verifier = SignedProofVerifier(settings.oracle_signer or oracle.signer_address)
    service = SmokeShieldService(
        simulator,
        oracle,
        verifier,
        event_log=EventLog(storage_path=settings.event_log_path),
        state_store=state_store,
    )
    return _Runtime(service=service, simulator=simulator, oracle=oracle)


def _report(result: ServiceResult) -> int:
    if result.success:
        print(json.dumps(result.data, indent=2, default=str))
        return 0
    print(f"Failed [{result.error_code}]: {'; '.join(result.errors)}", file=sys.stderr)
    return 1


def cmd_status(args: argparse.Namespace, runtime: _Runtime) -> int:
    print(json.dumps(runtime.service.status(), indent=2))
    return 0


def cmd_submit(args: argparse.Namespace, runtime: _Runtime) -> int:
    sim = runtime.simulator
    try:
        reading = SensorReading(
            contributor=args.contributor,
            location_id=args.location,
            encrypted_smoke_level=sim.encrypt(args.smoke),
            encrypted_wind_speed=sim.encrypt(args.wind_speed),
            encrypted_wind_direction=sim.encrypt(args.wind_direction),
            timestamp_utc=datetime.now(timezone.utc),
        )
    except ValueError as e:
        print(f"Failed: {e}", file=sys.stderr)
        return 1
    return _report(runtime.service.submit(reading))


def cmd_compute(args: argparse.Namespace, runtime: _Runtime) -> int:
    return _report(runtime.service.compute(args.location, requested_by=args.operator))


def cmd_disclose(args: argparse.Namespace, runtime: _Runtime) -> int:
    """Request disclosure and, unless told otherwise, deliver the oracle response."""
    result = runtime.service.request_disclosure(args.location, requested_by=args.operator)
    if not result.success or args.no_deliver:
        return _report(result)
    return _report(runtime.oracle.deliver(result.data["request_id"]))


def cmd_alert(args: argparse.Namespace, runtime: _Runtime) -> int:
    try:
        level = runtime.service.get_alert_level(args.location)
    except NotRevealed as e:
        print(f"Failed [{e.code}]: {e}", file=sys.stderr)
        return 1
    print(json.dumps({"location_id": args.location, "alert_level": level.value}, indent=2))
    return 0


def cmd_readings(args: argparse.Namespace, runtime: _Runtime) -> int:
    print(json.dumps(runtime.service.list_readings(args.location), indent=2))
    return 0


def cmd_locations(args: argparse.Namespace, runtime: _Runtime) -> int:
    print(json.dumps(runtime.service.list_locations(search=args.search), indent=2))
    return 0


def cmd_events(args: argparse.Namespace, runtime: _Runtime) -> int:
    log = runtime.service.event_log
    kind = EventKind(args.kind) if args.kind else None
    events = (
        log.events_for_location(args.location, kind) if args.location else log.events(kind)
    )
    print(json.dumps(
        [
            {
                "event_id": e.event_id,
                "event_kind": e.event_kind.value,
                "timestamp_utc": e.timestamp_utc,
                "actor_id": e.actor_id,
                "payload": e.payload,
                "event_hash": e.event_hash,
            }
            for e in events
        ],
        indent=2,
    ))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smokeshield",
        description="SmokeShield — encrypted smoke propagation alerts",
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        help="Directory for events.jsonl and state.json (default: $SMOKESHIELD_DATA_DIR or data/)",
    )
    parser.add_argument("--env-file", type=Path, help="Path to a .env file")
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: $SMOKESHIELD_LOG_LEVEL or WARNING)",
    )
    sub = parser.add_subparsers(dest="command")

    # status
    sub.add_parser("status", help="Show system status")

    # submit
    p_sub = sub.add_parser("submit", help="Encrypt and submit a sensor reading")
    p_sub.add_argument("--location", required=True, help="Location ID")
    p_sub.add_argument("--contributor", required=True, help="Submitting agency")
    p_sub.add_argument("--smoke", type=int, required=True, help="Smoke concentration")
    p_sub.add_argument("--wind-speed", type=int, required=True, help="Wind speed")
    p_sub.add_argument("--wind-direction", type=int, required=True, help="Wind direction (degrees)")

    # compute
    p_comp = sub.add_parser("compute", help="Compute a location's encrypted prediction")
    p_comp.add_argument("--location", required=True, help="Location ID")
    p_comp.add_argument("--operator", default="cli", help="Actor recorded in the event log")

    # disclose
    p_disc = sub.add_parser("disclose", help="Request disclosure of a location's alert")
    p_disc.add_argument("--location", required=True, help="Location ID")
    p_disc.add_argument("--operator", default="cli", help="Actor recorded in the event log")
    p_disc.add_argument(
        "--no-deliver", action="store_true",
        help="Leave the oracle response undelivered",
    )

    # alert
    p_alert = sub.add_parser("alert", help="Show a location's revealed alert level")
    p_alert.add_argument("--location", required=True, help="Location ID")

    # readings
    p_read = sub.add_parser("readings", help="List a location's readings (audit view)")
    p_read.add_argument("--location", required=True, help="Location ID")

    # locations
    p_locs = sub.add_parser("locations", help="List known locations")
    p_locs.add_argument("--search", default="", help="Case-insensitive filter")

    # events
    p_ev = sub.add_parser("events", help="Show the event log")
    p_ev.add_argument("--location", help="Only events for this location")
    p_ev.add_argument("--kind", choices=[k.value for k in EventKind], help="Event kind")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    settings = load_settings(args.env_file)
    if args.data_dir is not None:
        settings = dataclasses.replace(settings, data_dir=args.data_dir)
    logging.basicConfig(
        level=args.log_level or settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    commands = {
        "status": cmd_status,
        "submit": cmd_submit,
        "compute": cmd_compute,
        "disclose": cmd_disclose,
        "alert": cmd_alert,
        "readings": cmd_readings,
        "locations": cmd_locations,
        "events": cmd_events,
    }

    handler = commands.get(args.command)
    if handler is None:
        print(f"Unknown command: {args.command}", file=sys.stderr)
        return 1

    return handler(args, _make_runtime(settings))


if __name__ == "__main__":
    raise SystemExit(main())
