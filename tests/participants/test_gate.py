"""Tests for participant authorization."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from bargaining.domain.models import CatalogItemRef, Negotiation
from bargaining.domain.types import NegotiationKind, NegotiationStatus, ParticipantRole
from bargaining.participants.gate import ParticipantGate

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _negotiation(
    status: NegotiationStatus = NegotiationStatus.PENDING,
    awaiting: ParticipantRole | None = ParticipantRole.COUNTERPARTY,
) -> Negotiation:
    return Negotiation(
        id="neg_1",
        kind=NegotiationKind.PRICE,
        subject=CatalogItemRef(product_id="prod_1"),
        initiator_id="cust_1",
        counterparty_id="art_1",
        current_offer=Decimal("400000"),
        final_value=Decimal("400000") if status == NegotiationStatus.ACCEPTED else None,
        status=status,
        awaiting_role=awaiting,
        expires_at=NOW + timedelta(days=3),
        created_at=NOW,
        updated_at=NOW,
    )


class TestCanPropose:
    @pytest.mark.parametrize(
        ("initiator", "counterparty", "allowed"),
        [
            ("cust_1", "art_1", True),
            ("art_1", "art_1", False),
            ("", "art_1", False),
            ("cust_1", "  ", False),
        ],
        ids=["distinct_parties", "self_dealing", "blank_initiator", "blank_counterparty"],
    )
    def test_can_propose(self, initiator: str, counterparty: str, allowed: bool):
        assert ParticipantGate().can_propose(initiator, counterparty) is allowed


class TestCanRespond:
    def test_awaited_counterparty_may_respond(self):
        decision = ParticipantGate().can_respond(_negotiation(), "art_1")
        assert decision.allowed
        assert decision.role == ParticipantRole.COUNTERPARTY

    def test_initiator_must_wait_for_their_turn(self):
        decision = ParticipantGate().can_respond(_negotiation(), "cust_1")
        assert not decision.allowed
        assert decision.role == ParticipantRole.INITIATOR

    def test_turn_passes_after_counter(self):
        negotiation = _negotiation(NegotiationStatus.COUNTER_OFFERED, ParticipantRole.INITIATOR)
        gate = ParticipantGate()
        assert gate.can_respond(negotiation, "cust_1").allowed
        assert not gate.can_respond(negotiation, "art_1").allowed

    def test_outsider_refused(self):
        decision = ParticipantGate().can_respond(_negotiation(), "user_x")
        assert not decision.allowed
        assert decision.role is None

    def test_terminal_refused(self):
        negotiation = _negotiation(NegotiationStatus.REJECTED, None)
        assert not ParticipantGate().can_respond(negotiation, "art_1").allowed


class TestCanCancel:
    @pytest.mark.parametrize("actor", ["cust_1", "art_1"], ids=["initiator", "counterparty"])
    def test_either_party_may_cancel_open(self, actor: str):
        assert ParticipantGate().can_cancel(_negotiation(), actor).allowed

    def test_outsider_may_not_cancel(self):
        assert not ParticipantGate().can_cancel(_negotiation(), "user_x").allowed

    def test_cannot_cancel_terminal(self):
        negotiation = _negotiation(NegotiationStatus.ACCEPTED, None)
        assert not ParticipantGate().can_cancel(negotiation, "cust_1").allowed
