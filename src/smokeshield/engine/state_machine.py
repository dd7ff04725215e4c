"""Location state machine — the legal lifecycle of a location.

Location lifecycle:
    NO_DATA → AWAITING_COMPUTATION → COMPUTED → DISCLOSURE_REQUESTED → REVEALED

State semantics:
- NO_DATA: no reading has ever been submitted for the location.
- AWAITING_COMPUTATION: readings exist; the model is the zero sentinel.
- COMPUTED: the encrypted prediction is fixed.
- DISCLOSURE_REQUESTED: one oracle request is in flight.
- REVEALED: terminal; the alert level is public.

The state is never stored; it is derived from the per-location records
so it cannot drift from them. Fail-closed: any transition not listed
here is rejected. There are no backward edges.
"""

from __future__ import annotations

from typing import Optional

from smokeshield.models.location import (
    AlertRecord,
    DecryptionRequest,
    LocationState,
    PropagationModel,
)


_TRANSITIONS: dict[LocationState, set[LocationState]] = {
    LocationState.NO_DATA: {LocationState.AWAITING_COMPUTATION},
    LocationState.AWAITING_COMPUTATION: {LocationState.COMPUTED},
    LocationState.COMPUTED: {LocationState.DISCLOSURE_REQUESTED},
    LocationState.DISCLOSURE_REQUESTED: {LocationState.REVEALED},
    LocationState.REVEALED: set(),
}


class LocationStateMachine:
    """Validates location transitions.

    Pure computation: no records are mutated here. The aggregator and the
    disclosure state machine apply the change once validation passes.
    """

    @staticmethod
    def derive_state(
        model: Optional[PropagationModel],
        alert: Optional[AlertRecord],
        request: Optional[DecryptionRequest] = None,
    ) -> LocationState:
        if model is None:
            return LocationState.NO_DATA
        if alert is not None and alert.is_revealed:
            return LocationState.REVEALED
        if request is not None:
            return LocationState.DISCLOSURE_REQUESTED
        if model.is_computed:
            return LocationState.COMPUTED
        return LocationState.AWAITING_COMPUTATION

    @staticmethod
    def validate_transition(
        current: LocationState,
        target: LocationState,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        allowed = LocationStateMachine.valid_transitions(current)
        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid location transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def is_terminal(state: LocationState) -> bool:
        return state == LocationState.REVEALED

    @staticmethod
    def valid_transitions(state: LocationState) -> set[LocationState]:
        return set(_TRANSITIONS.get(state, set()))
