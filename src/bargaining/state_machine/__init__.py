"""Negotiation state machine with transition validation."""

from bargaining.state_machine.machine import NegotiationStateMachine
from bargaining.state_machine.transitions import INITIATOR_COUNTER, TRANSITIONS

__all__ = [
    "INITIATOR_COUNTER",
    "NegotiationStateMachine",
    "TRANSITIONS",
]
