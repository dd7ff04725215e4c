"""Sensor reading model — one contributed, still-encrypted observation.

Readings are immutable once accepted by the ledger and are never deleted:
the ledger is the append-only audit trail of who contributed what, where,
and when. The three measurement fields are opaque ciphertexts produced by
the contributor; nothing in this package can read them.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from smokeshield.crypto.encrypted import Ciphertext


@dataclass(frozen=True)
class SensorReading:
    """A single agency submission for one location.

    ``reading_id`` is assigned by the ledger on submission; readings built
    by contributors leave it empty.
    """
    contributor: str
    location_id: str
    encrypted_smoke_level: Ciphertext
    encrypted_wind_speed: Ciphertext
    encrypted_wind_direction: Ciphertext
    timestamp_utc: datetime
    reading_id: str = ""
