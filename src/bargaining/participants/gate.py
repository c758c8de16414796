"""Participant authorization for negotiation actions."""

from __future__ import annotations

from pydantic import BaseModel

from bargaining.domain.models import Negotiation
from bargaining.domain.types import ParticipantRole, is_open


class GateDecision(BaseModel, frozen=True):
    """Outcome of an authorization check.

    Attributes:
        allowed: Whether the actor may proceed.
        role: The actor's side, or None for outsiders.
    """

    allowed: bool
    role: ParticipantRole | None = None


class ParticipantGate:
    """Decides who may open, answer, or withdraw from a negotiation.

    Only the two parties ever act. Answering is turn-based: the party named
    by ``awaiting_role`` is the only one who may accept, reject or counter.
    Either party may cancel while the negotiation is open.
    """

    def can_propose(self, initiator_id: str, counterparty_id: str) -> bool:
        """Return False for blank ids or self-dealing."""
        if not initiator_id.strip() or not counterparty_id.strip():
            return False
        return initiator_id != counterparty_id

    def role_of(self, negotiation: Negotiation, actor_id: str) -> ParticipantRole | None:
        """Return the actor's side in *negotiation*, or None."""
        return negotiation.role_of(actor_id)

    def can_respond(self, negotiation: Negotiation, actor_id: str) -> GateDecision:
        """Allow only the awaited party of an open negotiation."""
        role = self.role_of(negotiation, actor_id)
        allowed = (
            role is not None
            and is_open(negotiation.status)
            and role == negotiation.awaiting_role
        )
        return GateDecision(allowed=allowed, role=role)

    def can_cancel(self, negotiation: Negotiation, actor_id: str) -> GateDecision:
        """Allow either party while the negotiation is open."""
        role = self.role_of(negotiation, actor_id)
        allowed = role is not None and is_open(negotiation.status)
        return GateDecision(allowed=allowed, role=role)
