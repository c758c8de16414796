"""Post-commit side effects: notifications and chat cards.

Side effects run after the negotiation transaction has committed. A failure
is retried, then logged -- it never propagates to the caller and never rolls
back the state change.
"""

from __future__ import annotations

import contextvars
from collections.abc import Callable
from concurrent.futures import Executor
from decimal import Decimal

import structlog
from tenacity.wait import wait_base

from bargaining.collaborators.contracts import (
    ChatBridge,
    NotificationEvent,
    NotificationGateway,
    NotificationType,
)
from bargaining.domain.models import Negotiation
from bargaining.domain.types import NegotiationKind, ParticipantRole, ResponseAction
from bargaining.resilience.retry import resilient_call

logger = structlog.get_logger()

_KIND_LABELS: dict[NegotiationKind, str] = {
    NegotiationKind.PRICE: "price offer",
    NegotiationKind.CUSTOM_ORDER: "custom order request",
}

_ACTION_VERBS: dict[ResponseAction, str] = {
    ResponseAction.ACCEPT: "accepted",
    ResponseAction.REJECT: "declined",
    ResponseAction.COUNTER: "sent a counter-offer on",
    ResponseAction.CANCEL: "cancelled",
}


class LoggingNotificationGateway:
    """Default gateway that records notifications in the structured log."""

    def notify(self, event: NotificationEvent) -> None:
        logger.info(
            "notification_emitted",
            notification_type=event.type,
            recipient_id=event.recipient_id,
            negotiation_id=event.negotiation_id,
            title=event.title,
        )


def _format_amount(value: Decimal) -> str:
    return f"{value:,.2f}"


def proposal_notification(negotiation: Negotiation) -> NotificationEvent:
    """Build the notification telling the counterparty a negotiation opened."""
    label = _KIND_LABELS[negotiation.kind]
    return NotificationEvent(
        type=NotificationType.NEGOTIATION_PROPOSED,
        recipient_id=negotiation.counterparty_id,
        actor_id=negotiation.initiator_id,
        negotiation_id=negotiation.id,
        kind=negotiation.kind,
        status=negotiation.status,
        title=f"New {label}",
        message=(
            f"You received a {label} of {_format_amount(negotiation.current_offer)} "
            f"for {negotiation.subject_label or 'your work'}"
        ),
    )


def response_notification(
    negotiation: Negotiation,
    action: ResponseAction,
    actor_role: ParticipantRole,
) -> NotificationEvent:
    """Build the notification telling the other party about a response."""
    if actor_role == ParticipantRole.INITIATOR:
        actor_id, recipient_id = negotiation.initiator_id, negotiation.counterparty_id
    else:
        actor_id, recipient_id = negotiation.counterparty_id, negotiation.initiator_id
    label = _KIND_LABELS[negotiation.kind]
    message = f"The other party {_ACTION_VERBS[action]} your {label}"
    if action == ResponseAction.COUNTER:
        message += f" ({_format_amount(negotiation.current_offer)})"
    return NotificationEvent(
        type=NotificationType.NEGOTIATION_RESPONDED,
        recipient_id=recipient_id,
        actor_id=actor_id,
        negotiation_id=negotiation.id,
        kind=negotiation.kind,
        status=negotiation.status,
        action=action,
        title=f"{label.capitalize()} {negotiation.status.replace('_', ' ')}",
        message=message,
    )


class SideEffectDispatcher:
    """Deliver notifications and chat cards after a transition commits.

    Args:
        notifier: Where notifications go.
        chat_bridge: Optional chat backend; only custom orders use it.
        executor: Optional executor for asynchronous delivery.  When None,
            delivery (retry pauses included) runs inline on the calling
            thread; ``build_engine`` always supplies one.
        attempts: Delivery attempts per side effect before giving up.
        wait: Tenacity wait strategy between attempts; defaults to
            exponential backoff with jitter.
        owns_executor: Shut *executor* down in ``close``.
    """

    def __init__(
        self,
        notifier: NotificationGateway,
        chat_bridge: ChatBridge | None = None,
        executor: Executor | None = None,
        attempts: int = 3,
        wait: wait_base | None = None,
        owns_executor: bool = False,
    ) -> None:
        self._notifier = notifier
        self._chat_bridge = chat_bridge
        self._executor = executor
        self._attempts = attempts
        self._wait = wait
        self._owns_executor = owns_executor

    def proposed(self, negotiation: Negotiation) -> None:
        """Announce a newly created negotiation."""
        self._submit(self._deliver, negotiation, proposal_notification(negotiation))

    def responded(
        self,
        negotiation: Negotiation,
        action: ResponseAction,
        actor_role: ParticipantRole,
    ) -> None:
        """Announce a response to the other party."""
        event = response_notification(negotiation, action, actor_role)
        self._submit(self._deliver, negotiation, event)

    def _submit(self, fn: Callable[..., None], *args: object) -> None:
        if self._executor is None:
            fn(*args)
            return
        # Carry bound log context (negotiation_id) onto the worker thread.
        self._executor.submit(contextvars.copy_context().run, fn, *args)

    def close(self) -> None:
        """Wait for queued side effects, then stop an owned executor."""
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)

    def _deliver(self, negotiation: Negotiation, event: NotificationEvent) -> None:
        self._attempt("notification", negotiation.id, self._notifier.notify, event)
        if negotiation.kind == NegotiationKind.CUSTOM_ORDER and self._chat_bridge is not None:
            self._attempt(
                "chat_card",
                negotiation.id,
                self._chat_bridge.post_card,
                negotiation.id,
                negotiation.summary(),
            )

    def _attempt(
        self,
        effect: str,
        negotiation_id: str,
        fn: Callable[..., None],
        *args: object,
    ) -> None:
        call = resilient_call(effect, attempts=self._attempts, wait=self._wait)(fn)
        try:
            call(*args)
        except Exception:
            # Best effort: the transition already committed.
            logger.exception(
                "side_effect_failed",
                effect=effect,
                negotiation_id=negotiation_id,
            )
