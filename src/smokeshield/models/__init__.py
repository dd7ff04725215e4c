"""Core data models for SmokeShield."""

from smokeshield.models.location import (
    AlertLevel,
    AlertRecord,
    DecryptionRequest,
    LocationState,
    PropagationModel,
)
from smokeshield.models.reading import SensorReading

__all__ = [
    "AlertLevel",
    "AlertRecord",
    "DecryptionRequest",
    "LocationState",
    "PropagationModel",
    "SensorReading",
]
