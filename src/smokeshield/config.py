"""Runtime configuration.

Values come from the environment, optionally seeded from a ``.env`` file
at the project root (or an explicit path). Nothing here is secret except
the local oracle key, which only the CLI's in-process oracle uses.

    SMOKESHIELD_DATA_DIR       directory for events.jsonl and state.json
    SMOKESHIELD_ORACLE_KEY     hex private key of the local decryption oracle
    SMOKESHIELD_ORACLE_SIGNER  address whose signatures are accepted as proofs
                               (defaults to the address of ORACLE_KEY)
    SMOKESHIELD_LOG_LEVEL      logging level name (default WARNING)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from eth_account import Account


ROOT = Path(__file__).resolve().parents[2]
DEFAULT_DATA = ROOT / "data"


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    oracle_key: Optional[str]
    oracle_signer: Optional[str]
    log_level: str = "WARNING"

    @property
    def event_log_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"


def load_settings(env_file: Optional[Path] = None) -> Settings:
    """Load settings from the environment after applying a .env file.

    Variables already present in the environment win over the file.
    """
    load_dotenv(env_file or ROOT / ".env")

    data_dir = Path(os.getenv("SMOKESHIELD_DATA_DIR") or DEFAULT_DATA)
    oracle_key = os.getenv("SMOKESHIELD_ORACLE_KEY") or None
    oracle_signer = os.getenv("SMOKESHIELD_ORACLE_SIGNER") or None
    if oracle_signer is None and oracle_key is not None:
        oracle_signer = Account.from_key(oracle_key).address

    return Settings(
        data_dir=data_dir,
        oracle_key=oracle_key,
        oracle_signer=oracle_signer,
        log_level=(os.getenv("SMOKESHIELD_LOG_LEVEL") or "WARNING").upper(),
    )
