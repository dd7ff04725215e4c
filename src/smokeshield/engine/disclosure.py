"""Disclosure state machine — from one ciphertext to one published alert.

Two transitions live here:

    COMPUTED → DISCLOSURE_REQUESTED   request_disclosure()
    DISCLOSURE_REQUESTED → REVEALED   on_decrypted()

The oracle callback is the only externally triggered, asynchronous event
in the system. It is correlated back to its location through an explicit
request table rather than any implicit continuation, and it is processed
in a fixed order:

1. Look up the request id (unknown, sentinel or consumed → InvalidRequest).
2. Verify the proof (invalid → AuthenticityError; nothing is revealed).
3. Refuse a second reveal for the location (→ AlreadyRevealed).
4. Decode the single plaintext scalar (ragged payload → MalformedInput).
5. Classify it.
6. Record the level, flip ``is_revealed`` and consume the request.

Callers must hold the location's lock around both transitions.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from smokeshield.crypto.encrypted import EncryptedArithmetic
from smokeshield.crypto.oracle import (
    DecryptionCallback,
    DecryptionOracle,
    ProofVerifier,
    decode_cleartexts,
)
from smokeshield.engine.classifier import classify
from smokeshield.engine.state_machine import LocationStateMachine
from smokeshield.errors import (
    AlreadyRevealed,
    AuthenticityError,
    InvalidRequest,
    InvalidState,
    MalformedInput,
)
from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.models.location import (
    AlertRecord,
    DecryptionRequest,
    LocationState,
)


class DisclosureStateMachine:
    """Issues decryption requests and applies verified oracle responses.

    Usage:
        machine = DisclosureStateMachine(oracle, verifier, arithmetic)
        request = machine.request_disclosure(ledger, "L-001", callback)
        # ... later, from the oracle ...
        alert = machine.on_decrypted(ledger, request_id, cleartexts, proof)
    """

    def __init__(
        self,
        oracle: DecryptionOracle,
        verifier: ProofVerifier,
        arithmetic: EncryptedArithmetic,
    ) -> None:
        self._oracle = oracle
        self._verifier = verifier
        self._arithmetic = arithmetic
        self._requests: dict[int, DecryptionRequest] = {}
        self._by_location: dict[str, int] = {}

    def state_of(self, ledger: LocationLedger, location_id: str) -> LocationState:
        return LocationStateMachine.derive_state(
            ledger.model(location_id),
            ledger.alert(location_id),
            self.request_for_location(location_id),
        )

    def request_disclosure(
        self,
        ledger: LocationLedger,
        location_id: str,
        callback: DecryptionCallback,
        now: Optional[datetime] = None,
    ) -> DecryptionRequest:
        """Send the location's prediction to the oracle. Returns without waiting."""
        state = self.state_of(ledger, location_id)
        errors = LocationStateMachine.validate_transition(
            state, LocationState.DISCLOSURE_REQUESTED,
        )
        if errors:
            raise InvalidState(f"Cannot request disclosure for {location_id}: {errors[0]}")

        model = ledger.model(location_id)
        raw = self._arithmetic.to_bytes(model.encrypted_prediction)
        request_id = self._oracle.request_decryption([raw], callback)

        if not request_id or request_id in self._requests:
            raise InvalidRequest(
                f"Oracle returned an unusable request id {request_id!r} for {location_id}"
            )

        request = DecryptionRequest(
            request_id=request_id,
            location_id=location_id,
            requested_utc=now or datetime.now(timezone.utc),
        )
        self._requests[request_id] = request
        self._by_location[location_id] = request_id
        return request

    def lookup(self, request_id: int) -> DecryptionRequest:
        if not request_id:
            raise InvalidRequest(f"Sentinel request id rejected: {request_id!r}")
        request = self._requests.get(request_id)
        if request is None:
            raise InvalidRequest(f"Unknown request id: {request_id}")
        if request.consumed:
            raise InvalidRequest(f"Request id already consumed: {request_id}")
        return request

    def on_decrypted(
        self,
        ledger: LocationLedger,
        request_id: int,
        cleartexts: bytes,
        proof: bytes,
        now: Optional[datetime] = None,
    ) -> AlertRecord:
        request = self.lookup(request_id)

        if not self._verifier.verify(request_id, cleartexts, proof):
            raise AuthenticityError(
                f"Oracle proof rejected for request {request_id} "
                f"(location {request.location_id})"
            )

        alert = ledger.alert(request.location_id)
        if alert is None:
            raise InvalidRequest(
                f"Request {request_id} points at unknown location {request.location_id}"
            )
        if alert.is_revealed:
            raise AlreadyRevealed(f"Alert already revealed for {request.location_id}")

        try:
            values = decode_cleartexts(cleartexts)
        except ValueError as e:
            raise MalformedInput(f"Request {request_id}: {e}") from e
        if len(values) != 1:
            raise MalformedInput(
                f"Request {request_id}: expected one cleartext, got {len(values)}"
            )

        level = classify(values[0])
        alert.reveal(level, request_id, now or datetime.now(timezone.utc))
        request.consumed = True
        return alert

    def request_for_location(self, location_id: str) -> Optional[DecryptionRequest]:
        request_id = self._by_location.get(location_id)
        return self._requests.get(request_id) if request_id else None

    def requests(self) -> list[DecryptionRequest]:
        return list(self._requests.values())

    def restore(self, requests: list[DecryptionRequest]) -> None:
        """Load persisted requests into an empty correlation table."""
        if self._requests:
            raise RuntimeError("Correlation table already populated")
        for request in requests:
            self._requests[request.request_id] = request
            self._by_location[request.location_id] = request.request_id
