"""SmokeShield service — unified facade for the encrypted alert pipeline.

This is the primary interface for programmatic access to SmokeShield.
It orchestrates all subsystems:
- Reading intake (append-only per-location ledger)
- Aggregation (one encrypted propagation prediction per location)
- Disclosure (oracle request, verified callback, alert classification)
- Read surface for dashboards (prediction, alert level, counts, status)
- Persistence (event log, state store)

Every state-changing operation runs under its location's lock and
produces an event record once the change is committed. Mutations return
a ServiceResult; engine errors are reported through ``error_code`` and
never undo a transition that was already committed. Audit and snapshot
failures after a commit do not roll anything back either: they degrade
to a warning and set ``persistence_degraded`` for operator attention.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Optional

from smokeshield import __version__
from smokeshield.crypto.encrypted import Ciphertext, EncryptedArithmetic
from smokeshield.crypto.oracle import DecryptionOracle, ProofVerifier
from smokeshield.engine.aggregator import PropagationAggregator
from smokeshield.engine.disclosure import DisclosureStateMachine
from smokeshield.errors import (
    AuthenticityError,
    MalformedInput,
    NotComputed,
    NotRevealed,
    SmokeShieldError,
)
from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.ledger.locks import LocationLocks
from smokeshield.models.location import (
    AlertLevel,
    DecryptionRequest,
    LocationState,
)
from smokeshield.models.reading import SensorReading
from smokeshield.persistence.event_log import EventKind, EventLog, EventRecord
from smokeshield.persistence.state_store import StateStore

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None


class SmokeShieldService:
    """Unified pipeline facade.

    Usage:
        sim = PlaintextSimulator()
        oracle = LocalDecryptionOracle.for_simulator(sim)
        service = SmokeShieldService(
            sim, oracle, SignedProofVerifier(oracle.signer_address),
        )

        result = service.submit(reading)
        result = service.compute("L-001")
        result = service.request_disclosure("L-001")
        oracle.deliver(result.data["request_id"])   # invokes on_decrypted
        service.get_alert_level("L-001")

    Persistence (optional):
        service = SmokeShieldService(..., event_log=log, state_store=store)
        # State is snapshotted after each commit and loaded on construction.
    """

    def __init__(
        self,
        arithmetic: EncryptedArithmetic,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        event_log: Optional[EventLog] = None,
        state_store: Optional[StateStore] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._arithmetic = arithmetic
        self._ledger = LocationLedger(arithmetic)
        self._aggregator = PropagationAggregator(arithmetic)
        self._disclosure = DisclosureStateMachine(oracle, verifier, arithmetic)
        self._locks = LocationLocks()
        self._clock = clock

        # Events are always recorded; in-memory unless a durable log is given.
        self._event_log = event_log if event_log is not None else EventLog()
        self._state_store = state_store

        if state_store is not None:
            snapshot = state_store.load()
            if snapshot is not None:
                self._ledger.restore(snapshot.readings, snapshot.models, snapshot.alerts)
                self._disclosure.restore(snapshot.requests)

        # Initialize counter from persisted log to avoid ID collision on restart
        self._event_counter = self._event_log.count
        self._event_lock = threading.Lock()

        self._persistence_degraded: bool = False

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def submit(self, reading: SensorReading) -> ServiceResult:
        """Append an encrypted reading to its location's ledger."""
        location_id = (reading.location_id or "").strip()
        if not location_id:
            return self._failure(MalformedInput("Reading is missing location_id"))

        with self._locks.hold(location_id):
            try:
                reading_id = self._ledger.submit(reading)
            except SmokeShieldError as e:
                return self._failure(e)
            count = self._ledger.reading_count(location_id)
            warning = self._commit(
                EventKind.READING_SUBMITTED,
                actor_id=reading.contributor.strip(),
                payload={"location_id": location_id, "reading_id": reading_id},
            )

        logger.debug("Reading %s accepted for %s (%d total)", reading_id, location_id, count)
        return self._success(
            {"reading_id": reading_id, "location_id": location_id, "reading_count": count},
            warning,
        )

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------

    def compute(self, location_id: str, requested_by: str = "system") -> ServiceResult:
        """Compute the location's encrypted prediction, once."""
        with self._locks.hold(location_id):
            try:
                model = self._aggregator.compute(self._ledger, location_id, now=self._clock())
            except SmokeShieldError as e:
                return self._failure(e)
            warning = self._commit(
                EventKind.MODEL_COMPUTED,
                actor_id=requested_by,
                payload={"location_id": location_id, "reading_count": model.reading_count},
            )

        logger.info("Propagation model computed for %s over %d readings",
                    location_id, model.reading_count)
        return self._success(
            {
                "location_id": location_id,
                "reading_count": model.reading_count,
                "state": LocationState.COMPUTED.value,
            },
            warning,
        )

    # ------------------------------------------------------------------
    # Disclosure
    # ------------------------------------------------------------------

    def request_disclosure(
        self,
        location_id: str,
        requested_by: str = "system",
    ) -> ServiceResult:
        """Ask the oracle to decrypt the location's prediction. Does not wait."""
        with self._locks.hold(location_id):
            try:
                request = self._disclosure.request_disclosure(
                    self._ledger, location_id, self.on_decrypted, now=self._clock(),
                )
            except SmokeShieldError as e:
                return self._failure(e)
            warning = self._commit(
                EventKind.DISCLOSURE_REQUESTED,
                actor_id=requested_by,
                payload={"location_id": location_id, "request_id": request.request_id},
            )

        logger.info("Disclosure requested for %s (request %d)", location_id, request.request_id)
        return self._success(
            {
                "location_id": location_id,
                "request_id": request.request_id,
                "state": LocationState.DISCLOSURE_REQUESTED.value,
            },
            warning,
        )

    def on_decrypted(
        self,
        request_id: int,
        cleartexts: bytes,
        proof: bytes,
    ) -> ServiceResult:
        """Oracle callback: verify, classify and publish the alert level."""
        try:
            location_id = self._disclosure.lookup(request_id).location_id
        except SmokeShieldError as e:
            logger.warning("Oracle callback rejected: %s", e)
            return self._failure(e)

        with self._locks.hold(location_id):
            try:
                alert = self._disclosure.on_decrypted(
                    self._ledger, request_id, cleartexts, proof, now=self._clock(),
                )
            except AuthenticityError as e:
                logger.warning("SECURITY: %s", e)
                warning = self._commit(
                    EventKind.AUTHENTICITY_REJECTED,
                    actor_id="oracle",
                    payload={"location_id": location_id, "request_id": request_id},
                )
                return self._failure(e, warning)
            except SmokeShieldError as e:
                logger.warning("Oracle callback rejected: %s", e)
                return self._failure(e)

            level = alert.alert_level
            warning = self._commit(
                EventKind.ALERT_REVEALED,
                actor_id="oracle",
                payload={
                    "location_id": location_id,
                    "request_id": request_id,
                    "alert_level": level.value,
                },
            )

        logger.info("Alert revealed for %s: %s", location_id, level.value)
        return self._success(
            {
                "location_id": location_id,
                "request_id": request_id,
                "alert_level": level.value,
                "state": LocationState.REVEALED.value,
            },
            warning,
        )

    # ------------------------------------------------------------------
    # Read surface
    # ------------------------------------------------------------------

    def get_encrypted_prediction(self, location_id: str) -> Ciphertext:
        model = self._ledger.model(location_id)
        if model is None or not model.is_computed:
            raise NotComputed(f"Prediction not computed for location {location_id}")
        return model.encrypted_prediction

    def get_alert_level(self, location_id: str) -> AlertLevel:
        alert = self._ledger.alert(location_id)
        if alert is None or not alert.is_revealed:
            raise NotRevealed(f"Alert not revealed for location {location_id}")
        return alert.alert_level

    def get_reading_count(self, location_id: str) -> int:
        return self._ledger.reading_count(location_id)

    def location_state(self, location_id: str) -> LocationState:
        return self._disclosure.state_of(self._ledger, location_id)

    def get_decryption_request(self, location_id: str) -> Optional[DecryptionRequest]:
        return self._disclosure.request_for_location(location_id)

    def list_locations(self, search: str = "") -> list[dict[str, Any]]:
        """Summaries of known locations, filtered by a case-insensitive substring."""
        needle = search.strip().lower()
        out: list[dict[str, Any]] = []
        for location_id in sorted(self._ledger.location_ids()):
            if needle and needle not in location_id.lower():
                continue
            alert = self._ledger.alert(location_id)
            out.append({
                "location_id": location_id,
                "state": self.location_state(location_id).value,
                "reading_count": self._ledger.reading_count(location_id),
                "alert_level": (
                    alert.alert_level.value if alert and alert.is_revealed else None
                ),
            })
        return out

    def list_readings(self, location_id: str) -> list[dict[str, Any]]:
        """Audit view of a location's readings, newest first. No ciphertexts."""
        readings = sorted(
            self._ledger.readings(location_id),
            key=lambda r: (r.timestamp_utc, r.reading_id),
            reverse=True,
        )
        return [
            {
                "reading_id": r.reading_id,
                "contributor": r.contributor,
                "location_id": r.location_id,
                "timestamp_utc": r.timestamp_utc.isoformat(),
            }
            for r in readings
        ]

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    def status(self) -> dict[str, Any]:
        """Return system-wide status summary."""
        by_state = {s.value: 0 for s in LocationState if s != LocationState.NO_DATA}
        by_level = {level.value: 0 for level in AlertLevel}
        for location_id in self._ledger.location_ids():
            by_state[self.location_state(location_id).value] += 1
            alert = self._ledger.alert(location_id)
            if alert is not None and alert.is_revealed:
                by_level[alert.alert_level.value] += 1

        return {
            "version": __version__,
            "locations": {
                "total": len(self._ledger.location_ids()),
                "by_state": by_state,
            },
            "readings": {"total": self._ledger.total_readings},
            "alerts": {
                "revealed": sum(by_level.values()),
                "by_level": by_level,
            },
            "pending_disclosures": sum(
                1 for r in self._disclosure.requests() if not r.consumed
            ),
            "events": self._event_log.count,
            "persistence_degraded": self._persistence_degraded,
        }

    @property
    def persistence_degraded(self) -> bool:
        return self._persistence_degraded

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"

    def _commit(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
    ) -> Optional[str]:
        """Record the event for an already-applied change, then snapshot state.

        Returns a warning string on audit or persistence failure; the
        in-memory change stands either way.
        """
        warnings: list[str] = []
        with self._event_lock:
            try:
                event = EventRecord.create(
                    event_id=self._next_event_id(),
                    event_kind=kind,
                    actor_id=actor_id,
                    payload=payload,
                    timestamp_utc=self._clock(),
                )
                self._event_log.append(event)
            except (ValueError, OSError) as e:
                self._persistence_degraded = True
                logger.error("Event log failure for %s: %s", kind.value, e)
                warnings.append(f"Event log failure: {e}")

        warning = self._safe_persist_post_commit()
        if warning:
            warnings.append(warning)
        return "; ".join(warnings) or None

    def _persist_state(self) -> None:
        """Persist current state to the state store (if wired)."""
        if self._state_store is None:
            return
        self._state_store.save(self._ledger, self._disclosure.requests())

    def _safe_persist_post_commit(self) -> Optional[str]:
        """Persist state after a change has been committed in memory.

        MUST NOT roll back: the transition already happened and may have
        been observed (and its event recorded). On failure the store is
        stale until the next successful write.
        """
        try:
            self._persist_state()
            return None
        except OSError as e:
            self._persistence_degraded = True
            logger.error("State snapshot failed: %s", e)
            return f"Persistence degraded: {e}; state committed in memory but StateStore is stale"

    @staticmethod
    def _success(data: dict[str, Any], warning: Optional[str] = None) -> ServiceResult:
        if warning:
            data["warning"] = warning
        return ServiceResult(success=True, data=data)

    @staticmethod
    def _failure(error: SmokeShieldError, warning: Optional[str] = None) -> ServiceResult:
        data: dict[str, Any] = {"warning": warning} if warning else {}
        return ServiceResult(
            success=False,
            errors=[str(error)],
            data=data,
            error_code=error.code,
        )
