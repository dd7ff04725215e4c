"""Error taxonomy for the aggregation and disclosure pipeline.

Engines raise these; the service layer converts them into failed
ServiceResults carrying the class name as ``error_code``. No error ever
rolls back a transition that was already committed: the per-location
state machine only moves forward.
"""

from __future__ import annotations


class SmokeShieldError(Exception):
    """Base class for all pipeline errors."""

    @property
    def code(self) -> str:
        return type(self).__name__


class MalformedInput(SmokeShieldError):
    """Missing or invalid identifiers or payloads. Caller may retry with corrected input."""


class InvalidState(SmokeShieldError):
    """Operation attempted out of sequence (no data, double compute, early disclosure)."""


class InvalidRequest(SmokeShieldError):
    """Unknown, sentinel, or already-consumed correlation key on an oracle callback."""


class AuthenticityError(SmokeShieldError):
    """Oracle proof failed verification. Fatal for the callback; nothing is revealed."""


class AlreadyRevealed(SmokeShieldError):
    """Duplicate or replayed disclosure for a location that is already revealed."""


class NotComputed(SmokeShieldError):
    """Read of a prediction before the location's model was computed."""


class NotRevealed(SmokeShieldError):
    """Read of an alert level before it was revealed."""
