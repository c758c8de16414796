"""Stateless evaluation of the negotiation transition table."""

from __future__ import annotations

from bargaining.domain.errors import InvalidTransitionError
from bargaining.domain.types import (
    TERMINAL_STATUSES,
    NegotiationStatus,
    ParticipantRole,
    ResponseAction,
)
from bargaining.state_machine.transitions import INITIATOR_COUNTER, TRANSITIONS


class NegotiationStateMachine:
    """Finite state machine governing the negotiation lifecycle.

    The machine holds no negotiation state of its own -- the persisted row is
    the single source of truth. It only answers "where does this action lead
    from here?" for one kind's rules.

    Usage::

        sm = NegotiationStateMachine(allow_initiator_counter=False)
        sm.next_status(NegotiationStatus.PENDING, ResponseAction.COUNTER,
                       ParticipantRole.COUNTERPARTY)   # -> COUNTER_OFFERED
    """

    def __init__(self, *, allow_initiator_counter: bool = False) -> None:
        self._allow_initiator_counter = allow_initiator_counter

    @property
    def allow_initiator_counter(self) -> bool:
        return self._allow_initiator_counter

    def is_allowed(
        self,
        status: NegotiationStatus,
        action: ResponseAction,
        role: ParticipantRole,
    ) -> bool:
        """Return True if *role* may apply *action* while in *status*."""
        key = (status, action, role)
        if key not in TRANSITIONS:
            return False
        if key == INITIATOR_COUNTER and not self._allow_initiator_counter:
            return False
        return True

    def next_status(
        self,
        status: NegotiationStatus,
        action: ResponseAction,
        role: ParticipantRole,
    ) -> NegotiationStatus:
        """Apply an action to the current status and return the next one.

        Args:
            status: The negotiation's current status.
            action: The response action being applied.
            role: The acting participant's role.

        Returns:
            The status after the transition.

        Raises:
            InvalidTransitionError: If the status is terminal, the triple is
                not in the transition map, or the kind forbids initiator
                counters.
        """
        if status in TERMINAL_STATUSES:
            raise InvalidTransitionError(status, action)
        if not self.is_allowed(status, action, role):
            raise InvalidTransitionError(status, action)
        return TRANSITIONS[(status, action, role)]

    def valid_actions(
        self,
        status: NegotiationStatus,
        role: ParticipantRole,
    ) -> list[ResponseAction]:
        """Return a sorted list of actions *role* may take from *status*.

        Returns an empty list for terminal statuses.
        """
        if status in TERMINAL_STATUSES:
            return []
        return sorted(
            action
            for (s, action, r) in TRANSITIONS
            if s == status and r == role and self.is_allowed(status, action, role)
        )
