"""Append-only per-location reading ledger and its lock registry."""

from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.ledger.locks import LocationLocks

__all__ = ["LocationLedger", "LocationLocks"]
