"""Participant authorization."""

from bargaining.participants.gate import GateDecision, ParticipantGate

__all__ = ["GateDecision", "ParticipantGate"]
