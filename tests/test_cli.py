"""Tests for SmokeShield CLI — proves CLI dispatches correctly."""

import json
from pathlib import Path

import pytest

from smokeshield.cli import build_parser, main

_ENV_VARS = (
    "SMOKESHIELD_DATA_DIR",
    "SMOKESHIELD_ORACLE_KEY",
    "SMOKESHIELD_ORACLE_SIGNER",
    "SMOKESHIELD_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)


def _run(tmp_path: Path, *argv: str) -> int:
    return main(["--data-dir", str(tmp_path), *argv])


def _submit(tmp_path: Path, location: str, smoke: int, speed: int) -> int:
    return _run(
        tmp_path, "submit", "--location", location, "--contributor", "fire-dept",
        "--smoke", str(smoke), "--wind-speed", str(speed), "--wind-direction", "90",
    )


class TestCLIParsing:
    def test_status_command(self) -> None:
        args = build_parser().parse_args(["status"])
        assert args.command == "status"

    def test_submit_command(self) -> None:
        args = build_parser().parse_args([
            "submit", "--location", "L-001", "--contributor", "fire-dept",
            "--smoke", "2", "--wind-speed", "10", "--wind-direction", "90",
        ])
        assert args.command == "submit"
        assert args.smoke == 2
        assert args.wind_speed == 10

    def test_disclose_defaults(self) -> None:
        args = build_parser().parse_args(["disclose", "--location", "L-001"])
        assert args.operator == "cli"
        assert args.no_deliver is False

    def test_events_kind_choices(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args(["events", "--kind", "nonsense"])

    def test_global_options(self, tmp_path: Path) -> None:
        args = build_parser().parse_args([
            "--data-dir", str(tmp_path), "--log-level", "DEBUG", "status",
        ])
        assert args.data_dir == tmp_path
        assert args.log_level == "DEBUG"


class TestCLIExecution:
    def test_no_command_shows_help(self, capsys) -> None:
        assert main([]) == 0
        assert "smokeshield" in capsys.readouterr().out

    def test_status_runs(self, tmp_path: Path, capsys) -> None:
        assert _run(tmp_path, "status") == 0
        status = json.loads(capsys.readouterr().out)
        assert status["readings"]["total"] == 0

    def test_full_flow_e2e(self, tmp_path: Path, capsys) -> None:
        assert _submit(tmp_path, "L-001", 9000, 1) == 0
        assert _run(tmp_path, "compute", "--location", "L-001") == 0
        assert _run(tmp_path, "disclose", "--location", "L-001") == 0
        capsys.readouterr()

        assert _run(tmp_path, "alert", "--location", "L-001") == 0
        assert json.loads(capsys.readouterr().out) == {
            "location_id": "L-001",
            "alert_level": "Hazardous",
        }
        assert (tmp_path / "events.jsonl").exists()
        assert (tmp_path / "state.json").exists()

    def test_state_persists_between_runs(self, tmp_path: Path, capsys) -> None:
        _submit(tmp_path, "L-001", 2, 10)
        _submit(tmp_path, "L-001", 4, 10)
        capsys.readouterr()

        assert _run(tmp_path, "locations") == 0
        (location,) = json.loads(capsys.readouterr().out)
        assert location["reading_count"] == 2
        assert location["state"] == "awaiting_computation"

    def test_no_deliver_leaves_request_pending(self, tmp_path: Path, capsys) -> None:
        _submit(tmp_path, "L-001", 2, 10)
        _run(tmp_path, "compute", "--location", "L-001")
        assert _run(tmp_path, "disclose", "--location", "L-001", "--no-deliver") == 0
        capsys.readouterr()

        assert _run(tmp_path, "alert", "--location", "L-001") == 1
        assert "NotRevealed" in capsys.readouterr().err

    def test_second_disclosure_after_restart_uses_fresh_request_id(
        self, tmp_path: Path, capsys,
    ) -> None:
        _submit(tmp_path, "L-001", 2, 10)
        _submit(tmp_path, "L-002", 2, 10)
        _run(tmp_path, "compute", "--location", "L-001")
        _run(tmp_path, "compute", "--location", "L-002")
        _run(tmp_path, "disclose", "--location", "L-001")
        capsys.readouterr()

        assert _run(tmp_path, "disclose", "--location", "L-002", "--no-deliver") == 0
        assert json.loads(capsys.readouterr().out)["request_id"] == 2

    def test_compute_without_readings_fails(self, tmp_path: Path, capsys) -> None:
        assert _run(tmp_path, "compute", "--location", "L-404") == 1
        assert "InvalidState" in capsys.readouterr().err

    def test_negative_reading_rejected(self, tmp_path: Path) -> None:
        assert _submit(tmp_path, "L-001", -5, 10) == 1

    def test_readings_and_events(self, tmp_path: Path, capsys) -> None:
        _submit(tmp_path, "L-001", 2, 10)
        capsys.readouterr()

        assert _run(tmp_path, "readings", "--location", "L-001") == 0
        (row,) = json.loads(capsys.readouterr().out)
        assert row["contributor"] == "fire-dept"

        assert _run(tmp_path, "events", "--kind", "reading_submitted") == 0
        (event,) = json.loads(capsys.readouterr().out)
        assert event["payload"]["reading_id"] == row["reading_id"]
