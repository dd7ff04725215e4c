"""Tests for the disclosure state machine — callback correlation and verification order."""

from datetime import datetime, timezone

import pytest

from smokeshield.crypto.encrypted import PlaintextSimulator
from smokeshield.crypto.oracle import (
    LocalDecryptionOracle,
    SignedProofVerifier,
    encode_cleartexts,
)
from smokeshield.engine.aggregator import PropagationAggregator
from smokeshield.engine.disclosure import DisclosureStateMachine
from smokeshield.errors import (
    AlreadyRevealed,
    AuthenticityError,
    InvalidRequest,
    InvalidState,
    MalformedInput,
)
from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.models.location import AlertLevel, LocationState
from smokeshield.models.reading import SensorReading

ORACLE_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32


def _now() -> datetime:
    return datetime(2026, 8, 1, 12, 0, 0, tzinfo=timezone.utc)


class _Harness:
    """Ledger, oracle and machine wired together; callbacks are recorded only."""

    def __init__(self) -> None:
        self.sim = PlaintextSimulator()
        self.ledger = LocationLedger(self.sim)
        self.oracle = LocalDecryptionOracle.for_simulator(self.sim, ORACLE_KEY)
        self.machine = DisclosureStateMachine(
            self.oracle, SignedProofVerifier(self.oracle.signer_address), self.sim,
        )

    def computed(self, location_id: str, smoke: int, speed: int) -> None:
        self.ledger.submit(SensorReading(
            contributor="fire-dept",
            location_id=location_id,
            encrypted_smoke_level=self.sim.encrypt(smoke),
            encrypted_wind_speed=self.sim.encrypt(speed),
            encrypted_wind_direction=self.sim.encrypt(0),
            timestamp_utc=_now(),
        ))
        PropagationAggregator(self.sim).compute(self.ledger, location_id, now=_now())

    def request(self, location_id: str) -> int:
        request = self.machine.request_disclosure(
            self.ledger, location_id, lambda *a: None, now=_now(),
        )
        return request.request_id

    def respond(self, request_id: int):
        cleartexts, proof = self.oracle.build_response(request_id)
        return self.machine.on_decrypted(self.ledger, request_id, cleartexts, proof, now=_now())


class TestRequestDisclosure:
    def test_requires_computed_model(self) -> None:
        h = _Harness()
        h.ledger.submit(SensorReading(
            contributor="fire-dept",
            location_id="L-001",
            encrypted_smoke_level=h.sim.encrypt(1),
            encrypted_wind_speed=h.sim.encrypt(1),
            encrypted_wind_direction=h.sim.encrypt(1),
            timestamp_utc=_now(),
        ))
        with pytest.raises(InvalidState):
            h.request("L-001")
        assert h.oracle.pending_ids == []

    def test_unknown_location_rejected(self) -> None:
        h = _Harness()
        with pytest.raises(InvalidState):
            h.request("L-404")

    def test_records_request_and_moves_state(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        request = h.machine.request_for_location("L-001")
        assert request.request_id == rid
        assert not request.consumed
        assert h.machine.state_of(h.ledger, "L-001") == LocationState.DISCLOSURE_REQUESTED

    def test_second_request_issues_no_new_oracle_call(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        h.request("L-001")
        with pytest.raises(InvalidState):
            h.request("L-001")
        assert len(h.oracle.pending_ids) == 1

    def test_sentinel_id_from_oracle_rejected(self) -> None:
        class _ZeroOracle:
            def request_decryption(self, ciphertexts, callback) -> int:
                return 0

        h = _Harness()
        h.computed("L-001", 2, 10)
        machine = DisclosureStateMachine(
            _ZeroOracle(), SignedProofVerifier(h.oracle.signer_address), h.sim,
        )
        with pytest.raises(InvalidRequest):
            machine.request_disclosure(h.ledger, "L-001", lambda *a: None)
        assert machine.state_of(h.ledger, "L-001") == LocationState.COMPUTED


class TestOnDecrypted:
    def test_reveals_classified_level(self) -> None:
        h = _Harness()
        h.computed("L-001", 9000, 1)
        rid = h.request("L-001")
        alert = h.respond(rid)
        assert alert.is_revealed
        assert alert.alert_level == AlertLevel.HAZARDOUS
        assert alert.request_id == rid
        assert alert.revealed_utc == _now()
        assert h.machine.request_for_location("L-001").consumed
        assert h.machine.state_of(h.ledger, "L-001") == LocationState.REVEALED

    def test_sentinel_id_rejected(self) -> None:
        h = _Harness()
        with pytest.raises(InvalidRequest, match="Sentinel"):
            h.machine.on_decrypted(h.ledger, 0, encode_cleartexts([1]), b"")

    def test_unknown_id_rejected_without_side_effects(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        h.request("L-001")
        with pytest.raises(InvalidRequest, match="Unknown"):
            h.machine.on_decrypted(h.ledger, 999, encode_cleartexts([1]), b"")
        assert not h.ledger.alert("L-001").is_revealed

    def test_replay_after_reveal_rejected(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        cleartexts, proof = h.oracle.build_response(rid)
        h.machine.on_decrypted(h.ledger, rid, cleartexts, proof)
        with pytest.raises(InvalidRequest, match="consumed"):
            h.machine.on_decrypted(h.ledger, rid, cleartexts, proof)
        assert h.ledger.alert("L-001").alert_level == AlertLevel.GOOD

    def test_invalid_proof_reveals_nothing(self) -> None:
        h = _Harness()
        h.computed("L-001", 9000, 1)
        rid = h.request("L-001")
        cleartexts = encode_cleartexts([9000])
        forged = LocalDecryptionOracle(lambda raw: 0, private_key=OTHER_KEY).sign(rid, cleartexts)

        with pytest.raises(AuthenticityError):
            h.machine.on_decrypted(h.ledger, rid, cleartexts, forged)

        alert = h.ledger.alert("L-001")
        assert not alert.is_revealed
        assert alert.alert_level is None
        assert h.machine.state_of(h.ledger, "L-001") == LocationState.DISCLOSURE_REQUESTED

    def test_authentic_response_after_forgery_still_applies(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        cleartexts = encode_cleartexts([9000])
        forged = LocalDecryptionOracle(lambda raw: 0, private_key=OTHER_KEY).sign(rid, cleartexts)
        with pytest.raises(AuthenticityError):
            h.machine.on_decrypted(h.ledger, rid, cleartexts, forged)

        assert h.respond(rid).alert_level == AlertLevel.GOOD

    def test_already_revealed_location(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        h.ledger.alert("L-001").reveal(AlertLevel.MODERATE, rid, _now())
        with pytest.raises(AlreadyRevealed):
            h.respond(rid)
        assert h.ledger.alert("L-001").alert_level == AlertLevel.MODERATE

    def test_verification_precedes_decoding(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        forged = LocalDecryptionOracle(lambda raw: 0, private_key=OTHER_KEY).sign(rid, b"\x00" * 5)
        with pytest.raises(AuthenticityError):
            h.machine.on_decrypted(h.ledger, rid, b"\x00" * 5, forged)

    def test_signed_ragged_payload_is_malformed(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        cleartexts = b"\x00" * 31
        with pytest.raises(MalformedInput):
            h.machine.on_decrypted(h.ledger, rid, cleartexts, h.oracle.sign(rid, cleartexts))
        assert not h.machine.request_for_location("L-001").consumed

    def test_signed_multi_word_payload_is_malformed(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")
        cleartexts = encode_cleartexts([1, 2])
        with pytest.raises(MalformedInput, match="expected one"):
            h.machine.on_decrypted(h.ledger, rid, cleartexts, h.oracle.sign(rid, cleartexts))
        assert not h.ledger.alert("L-001").is_revealed

    def test_out_of_order_responses_land_on_their_own_locations(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        h.computed("L-002", 9000, 1)
        first = h.request("L-001")
        second = h.request("L-002")

        h.respond(second)
        h.respond(first)

        assert h.ledger.alert("L-001").alert_level == AlertLevel.GOOD
        assert h.ledger.alert("L-002").alert_level == AlertLevel.HAZARDOUS


class TestRestore:
    def test_restore_rebuilds_correlation(self) -> None:
        h = _Harness()
        h.computed("L-001", 2, 10)
        rid = h.request("L-001")

        fresh = DisclosureStateMachine(
            h.oracle, SignedProofVerifier(h.oracle.signer_address), h.sim,
        )
        fresh.restore(h.machine.requests())
        assert fresh.lookup(rid).location_id == "L-001"
        with pytest.raises(RuntimeError):
            fresh.restore([])
