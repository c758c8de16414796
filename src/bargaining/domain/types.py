"""Domain enumerations for the bargaining engine."""

from enum import StrEnum


class NegotiationKind(StrEnum):
    """What is being negotiated."""

    PRICE = "price"
    CUSTOM_ORDER = "custom_order"


class NegotiationStatus(StrEnum):
    """States in the negotiation lifecycle."""

    PENDING = "pending"
    COUNTER_OFFERED = "counter_offered"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class ParticipantRole(StrEnum):
    """The two sides of a negotiation.

    The initiator is always the customer; the counterparty is always the
    artisan who owns the subject.
    """

    INITIATOR = "initiator"
    COUNTERPARTY = "counterparty"

    @property
    def other(self) -> "ParticipantRole":
        """Return the opposite side."""
        if self is ParticipantRole.INITIATOR:
            return ParticipantRole.COUNTERPARTY
        return ParticipantRole.INITIATOR


class ResponseAction(StrEnum):
    """Actions a participant may take on an open negotiation."""

    ACCEPT = "accept"
    REJECT = "reject"
    COUNTER = "counter"
    CANCEL = "cancel"


# Statuses in which a negotiation still accepts responses.
OPEN_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {NegotiationStatus.PENDING, NegotiationStatus.COUNTER_OFFERED}
)

# Sink states -- a negotiation never leaves these.
TERMINAL_STATUSES: frozenset[NegotiationStatus] = frozenset(
    {
        NegotiationStatus.ACCEPTED,
        NegotiationStatus.REJECTED,
        NegotiationStatus.EXPIRED,
        NegotiationStatus.CANCELLED,
    }
)


def is_open(status: NegotiationStatus) -> bool:
    """Return True if *status* is PENDING or COUNTER_OFFERED."""
    return status in OPEN_STATUSES
