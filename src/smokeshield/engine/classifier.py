"""Alert classifier — collapses a revealed prediction into a coarse category.

Bands are ordered, non-overlapping and total over the integers. Each
threshold is an exclusive lower bound: a prediction of exactly 8000 is
"Very Unhealthy", 8001 is "Hazardous".
"""

from __future__ import annotations

from smokeshield.models.location import AlertLevel


# (exclusive lower bound, level), most severe first.
ALERT_THRESHOLDS: tuple[tuple[int, AlertLevel], ...] = (
    (8000, AlertLevel.HAZARDOUS),
    (5000, AlertLevel.VERY_UNHEALTHY),
    (3000, AlertLevel.UNHEALTHY),
    (1000, AlertLevel.MODERATE),
)


def classify(value: int) -> AlertLevel:
    """Map a decoded prediction to exactly one alert level."""
    for lower_bound, level in ALERT_THRESHOLDS:
        if value > lower_bound:
            return level
    return AlertLevel.GOOD
