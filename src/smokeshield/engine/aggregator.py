"""Propagation aggregator — turns a location's readings into one prediction.

Formula, evaluated entirely over ciphertexts:
    avg_smoke      = sum(smoke) // N
    avg_wind_speed = sum(wind_speed) // N
    avg_wind_dir   = sum(wind_direction) // N
    prediction     = avg_smoke * avg_wind_speed

Wind direction is averaged and kept on the model but does not enter the
score. Division truncates, per the capability's scalar-division contract.

A location is computed exactly once. Re-running is rejected rather than
merging late readings into a new aggregate.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from smokeshield.crypto.encrypted import EncryptedArithmetic
from smokeshield.engine.state_machine import LocationStateMachine
from smokeshield.errors import InvalidState
from smokeshield.ledger.location_ledger import LocationLedger
from smokeshield.models.location import LocationState, PropagationModel


class PropagationAggregator:
    """Computes the encrypted propagation prediction for a location.

    Anyone may trigger a computation: the protected asset is the
    plaintext, not the trigger. The caller must hold the location's lock
    so N cannot change mid-computation.
    """

    def __init__(self, arithmetic: EncryptedArithmetic) -> None:
        self._arithmetic = arithmetic

    def compute(
        self,
        ledger: LocationLedger,
        location_id: str,
        now: Optional[datetime] = None,
    ) -> PropagationModel:
        model = ledger.model(location_id)
        state = LocationStateMachine.derive_state(model, ledger.alert(location_id))
        if state == LocationState.NO_DATA:
            raise InvalidState(f"No readings for location {location_id}")
        errors = LocationStateMachine.validate_transition(state, LocationState.COMPUTED)
        if errors:
            raise InvalidState(
                f"Propagation model already computed for location {location_id}: {errors[0]}"
            )

        readings = ledger.readings(location_id)
        n = len(readings)
        if n == 0:
            raise InvalidState(f"No readings for location {location_id}")

        arith = self._arithmetic
        avg_smoke = arith.div_scalar(
            arith.sum([r.encrypted_smoke_level for r in readings]), n,
        )
        avg_wind_speed = arith.div_scalar(
            arith.sum([r.encrypted_wind_speed for r in readings]), n,
        )
        avg_wind_direction = arith.div_scalar(
            arith.sum([r.encrypted_wind_direction for r in readings]), n,
        )
        prediction = arith.mul(avg_smoke, avg_wind_speed)

        model.mark_computed(
            prediction,
            reading_count=n,
            now=now or datetime.now(timezone.utc),
            avg_wind_direction=avg_wind_direction,
        )
        return model
