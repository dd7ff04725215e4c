"""Per-location aggregation and disclosure records.

Each location owns exactly one PropagationModel and one AlertRecord,
both created alongside its first reading, plus at most one
DecryptionRequest once disclosure has been requested.

Location lifecycle:
    NO_DATA → AWAITING_COMPUTATION → COMPUTED → DISCLOSURE_REQUESTED → REVEALED

Both ``is_computed`` and ``is_revealed`` are one-way flags. The guarded
mutators below are the only write paths and refuse a second flip.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from smokeshield.crypto.encrypted import Ciphertext
from smokeshield.errors import AlreadyRevealed, InvalidState


class LocationState(str, enum.Enum):
    """Derived lifecycle state of a location."""
    NO_DATA = "no_data"
    AWAITING_COMPUTATION = "awaiting_computation"
    COMPUTED = "computed"
    DISCLOSURE_REQUESTED = "disclosure_requested"
    REVEALED = "revealed"


class AlertLevel(str, enum.Enum):
    """Published risk category, in increasing order of severity."""
    GOOD = "Good"
    MODERATE = "Moderate"
    UNHEALTHY = "Unhealthy"
    VERY_UNHEALTHY = "Very Unhealthy"
    HAZARDOUS = "Hazardous"

    @property
    def severity(self) -> int:
        return _SEVERITY_ORDER.index(self)


_SEVERITY_ORDER: list[AlertLevel] = [
    AlertLevel.GOOD,
    AlertLevel.MODERATE,
    AlertLevel.UNHEALTHY,
    AlertLevel.VERY_UNHEALTHY,
    AlertLevel.HAZARDOUS,
]


@dataclass
class PropagationModel:
    """Encrypted aggregate for one location.

    Starts as the uncomputed sentinel holding encrypted zero. After
    ``mark_computed`` the prediction is fixed for good.
    """
    location_id: str
    encrypted_prediction: Ciphertext
    is_computed: bool = False
    computed_utc: Optional[datetime] = None
    reading_count: int = 0
    # Averaged alongside the score inputs; not part of the prediction.
    encrypted_avg_wind_direction: Optional[Ciphertext] = None

    def mark_computed(
        self,
        prediction: Ciphertext,
        reading_count: int,
        now: datetime,
        avg_wind_direction: Optional[Ciphertext] = None,
    ) -> None:
        if self.is_computed:
            raise InvalidState(
                f"Propagation model already computed for location {self.location_id}"
            )
        self.encrypted_prediction = prediction
        self.reading_count = reading_count
        self.encrypted_avg_wind_direction = avg_wind_direction
        self.computed_utc = now
        self.is_computed = True


@dataclass
class AlertRecord:
    """Disclosed risk classification for one location."""
    location_id: str
    alert_level: Optional[AlertLevel] = None
    is_revealed: bool = False
    revealed_utc: Optional[datetime] = None
    request_id: Optional[int] = None

    def reveal(self, level: AlertLevel, request_id: int, now: datetime) -> None:
        if self.is_revealed:
            raise AlreadyRevealed(
                f"Alert already revealed for location {self.location_id}"
            )
        self.alert_level = level
        self.request_id = request_id
        self.revealed_utc = now
        self.is_revealed = True


@dataclass
class DecryptionRequest:
    """Correlates an in-flight oracle request to its originating location.

    Consumed requests are kept for audit; they can never trigger a second
    disclosure.
    """
    request_id: int
    location_id: str
    requested_utc: datetime
    consumed: bool = False
