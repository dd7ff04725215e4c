"""Persistence — append-only event log and state snapshots."""

from smokeshield.persistence.event_log import EventKind, EventLog, EventRecord
from smokeshield.persistence.state_store import StateSnapshot, StateStore

__all__ = ["EventKind", "EventLog", "EventRecord", "StateSnapshot", "StateStore"]
