"""Location ledger — append-only store of encrypted readings per location.

The ledger is the data source for the propagation aggregator. It records
every accepted reading in submission order, keyed by location, together
with the per-location PropagationModel and AlertRecord that are created
alongside the first reading for a location.

Nothing is ever removed. Late readings for a location whose model is
already computed are still recorded; they are simply not part of the
fixed aggregate.

Callers are responsible for holding the location's lock (see
smokeshield.ledger.locks) around submit and any read-modify-write.
"""

from __future__ import annotations

import dataclasses
import threading
from datetime import datetime
from typing import Optional

from smokeshield.crypto.encrypted import EncryptedArithmetic
from smokeshield.errors import MalformedInput
from smokeshield.models.location import AlertRecord, PropagationModel
from smokeshield.models.reading import SensorReading


class LocationLedger:
    """In-memory ledger of readings, models and alerts keyed by location.

    Usage:
        ledger = LocationLedger(arithmetic)
        reading_id = ledger.submit(reading)
        ledger.reading_count("L-001")
        ledger.model("L-001").is_computed
    """

    def __init__(self, arithmetic: EncryptedArithmetic) -> None:
        self._arithmetic = arithmetic
        self._readings: dict[str, SensorReading] = {}
        self._by_location: dict[str, list[str]] = {}
        self._models: dict[str, PropagationModel] = {}
        self._alerts: dict[str, AlertRecord] = {}
        self._counter = 0
        self._id_lock = threading.Lock()

    def submit(self, reading: SensorReading) -> str:
        """Append a reading and return its assigned reading id."""
        location_id = (reading.location_id or "").strip()
        if not location_id:
            raise MalformedInput("Reading is missing location_id")
        if not (reading.contributor or "").strip():
            raise MalformedInput("Reading is missing contributor")
        if not isinstance(reading.timestamp_utc, datetime):
            raise MalformedInput("Reading is missing timestamp_utc")
        if reading.timestamp_utc.tzinfo is None:
            raise MalformedInput("Reading timestamp_utc must be timezone-aware")
        self._check_ciphertexts(reading)

        reading_id = self._next_reading_id()
        stored = dataclasses.replace(
            reading,
            reading_id=reading_id,
            location_id=location_id,
            contributor=reading.contributor.strip(),
        )

        if location_id not in self._by_location:
            self._by_location[location_id] = []
            self._models[location_id] = PropagationModel(
                location_id=location_id,
                encrypted_prediction=self._arithmetic.encode_zero(),
            )
            self._alerts[location_id] = AlertRecord(location_id=location_id)

        self._readings[reading_id] = stored
        self._by_location[location_id].append(reading_id)
        return reading_id

    def restore(
        self,
        readings: list[SensorReading],
        models: list[PropagationModel],
        alerts: list[AlertRecord],
    ) -> None:
        """Load persisted records into an empty ledger, preserving order and ids."""
        if self._readings:
            raise RuntimeError("Ledger already populated; restore into a fresh ledger")
        for reading in readings:
            self._readings[reading.reading_id] = reading
            self._by_location.setdefault(reading.location_id, []).append(reading.reading_id)
        for model in models:
            self._models[model.location_id] = model
        for alert in alerts:
            self._alerts[alert.location_id] = alert
        self._counter = len(self._readings)

    def reading_count(self, location_id: str) -> int:
        return len(self._by_location.get(location_id, ()))

    def readings(self, location_id: str) -> list[SensorReading]:
        """Readings for a location in submission order."""
        return [self._readings[rid] for rid in self._by_location.get(location_id, ())]

    def all_readings(self) -> list[SensorReading]:
        return list(self._readings.values())

    def get_reading(self, reading_id: str) -> Optional[SensorReading]:
        return self._readings.get(reading_id)

    def model(self, location_id: str) -> Optional[PropagationModel]:
        return self._models.get(location_id)

    def alert(self, location_id: str) -> Optional[AlertRecord]:
        return self._alerts.get(location_id)

    def location_ids(self) -> list[str]:
        return list(self._by_location)

    @property
    def total_readings(self) -> int:
        return len(self._readings)

    def _check_ciphertexts(self, reading: SensorReading) -> None:
        """Reject measurements the arithmetic backend cannot operate on."""
        for name in ("encrypted_smoke_level", "encrypted_wind_speed", "encrypted_wind_direction"):
            try:
                self._arithmetic.to_bytes(getattr(reading, name))
            except (TypeError, ValueError, OverflowError) as e:
                raise MalformedInput(f"Reading has an unusable {name}: {e}") from e

    def _next_reading_id(self) -> str:
        with self._id_lock:
            self._counter += 1
            return f"RDG-{self._counter:08d}"
