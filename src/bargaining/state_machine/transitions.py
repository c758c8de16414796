"""Transition map defining all valid (status, action, role) -> status mappings."""

from bargaining.domain.types import NegotiationStatus, ParticipantRole, ResponseAction

# All valid (current_status, action, acting_role) -> next_status mappings.
# Any triple not in this dict is an invalid transition. The acting role must
# additionally be the negotiation's awaiting role, except for CANCEL.
TRANSITIONS: dict[
    tuple[NegotiationStatus, ResponseAction, ParticipantRole], NegotiationStatus
] = {
    # From PENDING -- only the counterparty answers an opening offer
    (NegotiationStatus.PENDING, ResponseAction.ACCEPT, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.ACCEPTED
    ),
    (NegotiationStatus.PENDING, ResponseAction.REJECT, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.REJECTED
    ),
    (NegotiationStatus.PENDING, ResponseAction.COUNTER, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.COUNTER_OFFERED
    ),
    (NegotiationStatus.PENDING, ResponseAction.CANCEL, ParticipantRole.INITIATOR): (
        NegotiationStatus.CANCELLED
    ),
    (NegotiationStatus.PENDING, ResponseAction.CANCEL, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.CANCELLED
    ),
    # From COUNTER_OFFERED -- whoever is awaited answers the latest counter
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.ACCEPT, ParticipantRole.INITIATOR): (
        NegotiationStatus.ACCEPTED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.ACCEPT, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.ACCEPTED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.REJECT, ParticipantRole.INITIATOR): (
        NegotiationStatus.REJECTED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.REJECT, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.REJECTED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.COUNTER, ParticipantRole.INITIATOR): (
        NegotiationStatus.COUNTER_OFFERED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.COUNTER, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.COUNTER_OFFERED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.CANCEL, ParticipantRole.INITIATOR): (
        NegotiationStatus.CANCELLED
    ),
    (NegotiationStatus.COUNTER_OFFERED, ResponseAction.CANCEL, ParticipantRole.COUNTERPARTY): (
        NegotiationStatus.CANCELLED
    ),
}

# Transitions gated by the per-kind ``allow_initiator_counter`` rule.
INITIATOR_COUNTER: tuple[NegotiationStatus, ResponseAction, ParticipantRole] = (
    NegotiationStatus.COUNTER_OFFERED,
    ResponseAction.COUNTER,
    ParticipantRole.INITIATOR,
)
