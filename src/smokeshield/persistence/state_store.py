"""State store — JSON snapshot of ledger, models, alerts and requests.

Ciphertexts are written through the arithmetic backend's transport
encoding (hex), so the store never needs to understand them. Snapshots
are written to a temporary file and moved into place, so a crash leaves
either the previous snapshot or the new one, never a torn file.

Oracle-side pending responses are not part of the snapshot. A process
that stops before a response is delivered leaves the location in
DISCLOSURE_REQUESTED.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from smokeshield.crypto.encrypted import EncryptedArithmetic
from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.models.location import (
    AlertLevel,
    AlertRecord,
    DecryptionRequest,
    PropagationModel,
)
from smokeshield.models.reading import SensorReading

logger = logging.getLogger(__name__)

SNAPSHOT_VERSION = 1


@dataclass
class StateSnapshot:
    """Everything needed to rebuild a service after restart."""
    readings: list[SensorReading] = field(default_factory=list)
    models: list[PropagationModel] = field(default_factory=list)
    alerts: list[AlertRecord] = field(default_factory=list)
    requests: list[DecryptionRequest] = field(default_factory=list)


class StateStore:
    """File-backed snapshot store.

    Usage:
        store = StateStore(data_dir / "state.json", arithmetic)
        store.save(ledger, disclosure.requests())
        snapshot = store.load()
    """

    def __init__(self, storage_path: Path, arithmetic: EncryptedArithmetic) -> None:
        self._path = storage_path
        self._arithmetic = arithmetic
        self._lock = threading.Lock()

    @property
    def path(self) -> Path:
        return self._path

    def save(self, ledger: LocationLedger, requests: list[DecryptionRequest]) -> None:
        """Write a full snapshot. Raises OSError on failure.

        The document is built under the store lock so a slower writer can
        never replace a newer snapshot with an older view.
        """
        with self._lock:
            self._write(ledger, requests)
        logger.debug("State snapshot written to %s", self._path)

    def _write(self, ledger: LocationLedger, requests: list[DecryptionRequest]) -> None:
        document = {
            "version": SNAPSHOT_VERSION,
            "readings": [self._reading_to_dict(r) for r in ledger.all_readings()],
            "models": [
                self._model_to_dict(ledger.model(loc)) for loc in ledger.location_ids()
            ],
            "alerts": [
                self._alert_to_dict(ledger.alert(loc)) for loc in ledger.location_ids()
            ],
            "requests": [self._request_to_dict(r) for r in requests],
        }
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(document, indent=2, sort_keys=True), encoding="utf-8")
        tmp.replace(self._path)

    def load(self) -> Optional[StateSnapshot]:
        """Read the snapshot, or None if nothing has been saved yet."""
        if not self._path.exists():
            return None
        data = json.loads(self._path.read_text(encoding="utf-8"))
        version = data.get("version")
        if version != SNAPSHOT_VERSION:
            raise ValueError(f"Unsupported state snapshot version: {version!r}")
        return StateSnapshot(
            readings=[self._reading_from_dict(d) for d in data["readings"]],
            models=[self._model_from_dict(d) for d in data["models"]],
            alerts=[self._alert_from_dict(d) for d in data["alerts"]],
            requests=[self._request_from_dict(d) for d in data["requests"]],
        )

    # ------------------------------------------------------------------
    # Encoding helpers
    # ------------------------------------------------------------------

    def _encode(self, ciphertext: Any) -> str:
        return self._arithmetic.to_bytes(ciphertext).hex()

    def _decode(self, raw: str) -> Any:
        return self._arithmetic.from_bytes(bytes.fromhex(raw))

    def _reading_to_dict(self, reading: SensorReading) -> dict[str, Any]:
        return {
            "reading_id": reading.reading_id,
            "contributor": reading.contributor,
            "location_id": reading.location_id,
            "timestamp_utc": reading.timestamp_utc.isoformat(),
            "smoke_level": self._encode(reading.encrypted_smoke_level),
            "wind_speed": self._encode(reading.encrypted_wind_speed),
            "wind_direction": self._encode(reading.encrypted_wind_direction),
        }

    def _reading_from_dict(self, d: dict[str, Any]) -> SensorReading:
        return SensorReading(
            reading_id=d["reading_id"],
            contributor=d["contributor"],
            location_id=d["location_id"],
            timestamp_utc=datetime.fromisoformat(d["timestamp_utc"]),
            encrypted_smoke_level=self._decode(d["smoke_level"]),
            encrypted_wind_speed=self._decode(d["wind_speed"]),
            encrypted_wind_direction=self._decode(d["wind_direction"]),
        )

    def _model_to_dict(self, model: PropagationModel) -> dict[str, Any]:
        return {
            "location_id": model.location_id,
            "encrypted_prediction": self._encode(model.encrypted_prediction),
            "is_computed": model.is_computed,
            "computed_utc": _iso(model.computed_utc),
            "reading_count": model.reading_count,
            "encrypted_avg_wind_direction": (
                self._encode(model.encrypted_avg_wind_direction)
                if model.encrypted_avg_wind_direction is not None else None
            ),
        }

    def _model_from_dict(self, d: dict[str, Any]) -> PropagationModel:
        wind_dir = d.get("encrypted_avg_wind_direction")
        return PropagationModel(
            location_id=d["location_id"],
            encrypted_prediction=self._decode(d["encrypted_prediction"]),
            is_computed=d["is_computed"],
            computed_utc=_parse(d.get("computed_utc")),
            reading_count=d.get("reading_count", 0),
            encrypted_avg_wind_direction=self._decode(wind_dir) if wind_dir else None,
        )

    @staticmethod
    def _alert_to_dict(alert: AlertRecord) -> dict[str, Any]:
        return {
            "location_id": alert.location_id,
            "alert_level": alert.alert_level.value if alert.alert_level else None,
            "is_revealed": alert.is_revealed,
            "revealed_utc": _iso(alert.revealed_utc),
            "request_id": alert.request_id,
        }

    @staticmethod
    def _alert_from_dict(d: dict[str, Any]) -> AlertRecord:
        level = d.get("alert_level")
        return AlertRecord(
            location_id=d["location_id"],
            alert_level=AlertLevel(level) if level else None,
            is_revealed=d["is_revealed"],
            revealed_utc=_parse(d.get("revealed_utc")),
            request_id=d.get("request_id"),
        )

    @staticmethod
    def _request_to_dict(request: DecryptionRequest) -> dict[str, Any]:
        return {
            "request_id": request.request_id,
            "location_id": request.location_id,
            "requested_utc": request.requested_utc.isoformat(),
            "consumed": request.consumed,
        }

    @staticmethod
    def _request_from_dict(d: dict[str, Any]) -> DecryptionRequest:
        return DecryptionRequest(
            request_id=int(d["request_id"]),
            location_id=d["location_id"],
            requested_utc=datetime.fromisoformat(d["requested_utc"]),
            consumed=d["consumed"],
        )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
