"""Aggregation and disclosure engine — state machine, aggregator, classifier."""

from smokeshield.engine.aggregator import PropagationAggregator
from smokeshield.engine.classifier import classify
from smokeshield.engine.disclosure import DisclosureStateMachine
from smokeshield.engine.state_machine import LocationStateMachine

__all__ = [
    "PropagationAggregator",
    "classify",
    "DisclosureStateMachine",
    "LocationStateMachine",
]
