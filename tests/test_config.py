"""Tests for runtime configuration — environment and .env loading."""

from pathlib import Path

import pytest
from eth_account import Account

from smokeshield.config import DEFAULT_DATA, load_settings

ORACLE_KEY = "0x" + "11" * 32

_ENV_VARS = (
    "SMOKESHIELD_DATA_DIR",
    "SMOKESHIELD_ORACLE_KEY",
    "SMOKESHIELD_ORACLE_SIGNER",
    "SMOKESHIELD_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # setenv first so monkeypatch restores the variable to absent afterwards,
    # even when a .env file populated it during the test.
    for name in _ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)


class TestLoadSettings:
    def test_defaults(self, tmp_path: Path) -> None:
        settings = load_settings(tmp_path / "absent.env")
        assert settings.data_dir == DEFAULT_DATA
        assert settings.oracle_key is None
        assert settings.oracle_signer is None
        assert settings.log_level == "WARNING"

    def test_environment_values(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMOKESHIELD_DATA_DIR", str(tmp_path))
        monkeypatch.setenv("SMOKESHIELD_LOG_LEVEL", "debug")
        settings = load_settings(tmp_path / "absent.env")
        assert settings.data_dir == tmp_path
        assert settings.log_level == "DEBUG"
        assert settings.event_log_path == tmp_path / "events.jsonl"
        assert settings.state_path == tmp_path / "state.json"

    def test_signer_derived_from_key(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMOKESHIELD_ORACLE_KEY", ORACLE_KEY)
        settings = load_settings(tmp_path / "absent.env")
        assert settings.oracle_signer == Account.from_key(ORACLE_KEY).address

    def test_explicit_signer_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SMOKESHIELD_ORACLE_KEY", ORACLE_KEY)
        monkeypatch.setenv("SMOKESHIELD_ORACLE_SIGNER", "0x" + "ab" * 20)
        assert load_settings(tmp_path / "absent.env").oracle_signer == "0x" + "ab" * 20

    def test_env_file(self, tmp_path: Path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text(
            f"SMOKESHIELD_DATA_DIR={tmp_path / 'data'}\nSMOKESHIELD_LOG_LEVEL=info\n",
            encoding="utf-8",
        )
        settings = load_settings(env_file)
        assert settings.data_dir == tmp_path / "data"
        assert settings.log_level == "INFO"

    def test_environment_beats_env_file(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("SMOKESHIELD_LOG_LEVEL=info\n", encoding="utf-8")
        monkeypatch.setenv("SMOKESHIELD_LOG_LEVEL", "ERROR")
        assert load_settings(env_file).log_level == "ERROR"
