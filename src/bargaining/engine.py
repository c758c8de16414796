"""The negotiation engine: one parametrized engine for every negotiation kind.

``NegotiationEngine`` orchestrates the reference policy, the participant
gate, the transition table and the store.  It holds no mutable negotiation
state of its own; every decision is made against a fresh read and committed
with an optimistic status-and-revision check, so handlers on any number of
threads or processes can share one database safely.

Per-kind variation lives entirely in ``ReferencePolicy`` (baseline value and
bounds) and ``KindRules`` (expiry window, initiator counters).
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import Executor, ThreadPoolExecutor
from datetime import datetime, timedelta
from decimal import Decimal

import structlog
from structlog.contextvars import bound_contextvars

from bargaining.collaborators.contracts import CatalogService, ChatBridge, NotificationGateway
from bargaining.collaborators.dispatch import LoggingNotificationGateway, SideEffectDispatcher
from bargaining.config import Settings
from bargaining.domain.clock import Clock, utc_now
from bargaining.domain.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidTransitionError,
    NegotiationValidationError,
    NotFoundError,
)
from bargaining.domain.models import (
    AcceptEvent,
    CancelEvent,
    CatalogItemRef,
    CounterEvent,
    CustomOrderBrief,
    HistoryEvent,
    ListFilters,
    Negotiation,
    NegotiationDraft,
    NegotiationStats,
    NegotiationSummary,
    Page,
    ProposeOptions,
    RejectEvent,
    ResponsePayload,
    TransitionMutation,
)
from bargaining.domain.types import (
    NegotiationKind,
    NegotiationStatus,
    ParticipantRole,
    ResponseAction,
)
from bargaining.observability.metrics import (
    CONFLICTS,
    EXPIRATIONS,
    PROPOSALS_CREATED,
    TRANSITIONS,
)
from bargaining.participants.gate import ParticipantGate
from bargaining.policy.reference import ReferencePolicy, build_policies
from bargaining.policy.rules import KindRules, kind_rules
from bargaining.pricing.boundaries import evaluate_offer
from bargaining.pricing.engine import OfferBounds, quantize_money
from bargaining.state.store import NegotiationStore
from bargaining.state_machine.machine import NegotiationStateMachine

logger = structlog.get_logger()


def _as_money(value: object, field: str) -> Decimal:
    """Coerce an incoming amount to a 2-place Decimal, refusing floats."""
    if isinstance(value, float):
        raise NegotiationValidationError(
            f"{field} must be a Decimal or string, not float"
        )
    try:
        return quantize_money(Decimal(str(value)))
    except ArithmeticError as exc:
        raise NegotiationValidationError(f"{field} is not a valid amount: {value!r}") from exc


class NegotiationEngine:
    """Propose, respond to, read and expire negotiations.

    Args:
        store: Transactional persistence.
        policies: Reference policy per kind.
        rules: Lifecycle rules per kind.
        gate: Participant authorization.  Defaults to ``ParticipantGate()``.
        dispatcher: Post-commit side effects.  Defaults to logging-only
            notifications delivered inline.
        clock: The single source of "now".  Share it with the sweeper.
        daily_proposal_limit: New negotiations one initiator may open per
            UTC day.  0 disables the limit.
        owns_store: Close *store* in ``close``.
    """

    def __init__(
        self,
        store: NegotiationStore,
        policies: Mapping[NegotiationKind, ReferencePolicy],
        rules: Mapping[NegotiationKind, KindRules],
        gate: ParticipantGate | None = None,
        dispatcher: SideEffectDispatcher | None = None,
        clock: Clock = utc_now,
        daily_proposal_limit: int = 0,
        owns_store: bool = False,
    ) -> None:
        self._store = store
        self._owns_store = owns_store
        self._policies = policies
        self._rules = rules
        self._gate = gate or ParticipantGate()
        self._dispatcher = dispatcher or SideEffectDispatcher(LoggingNotificationGateway())
        self._clock = clock
        self._daily_proposal_limit = daily_proposal_limit
        self._machines = {
            kind: NegotiationStateMachine(allow_initiator_counter=r.allow_initiator_counter)
            for kind, r in rules.items()
        }

    @property
    def clock(self) -> Clock:
        return self._clock

    def close(self) -> None:
        """Drain pending side effects and release what the engine owns."""
        self._dispatcher.close()
        if self._owns_store:
            self._store.close()

    # ------------------------------------------------------------------
    # Propose
    # ------------------------------------------------------------------

    def propose(
        self,
        initiator_id: str,
        kind: NegotiationKind | str,
        subject: CatalogItemRef | CustomOrderBrief,
        offer: Decimal | str | int,
        options: ProposeOptions | None = None,
    ) -> Negotiation:
        """Open a negotiation, or return the one already open for this subject.

        Calling twice with the same initiator and subject while the first is
        still open returns the same negotiation; only the first call creates
        a row and fires side effects.

        Args:
            initiator_id: The customer making the offer.
            kind: PRICE or CUSTOM_ORDER; must match ``subject.kind``.
            subject: What is being negotiated.
            offer: The opening amount.
            options: Optional quantity, reason and lifetime.

        Returns:
            The open negotiation.

        Raises:
            NegotiationValidationError: If the offer, quantity, reason or
                lifetime is invalid.  Nothing is persisted.
            NotFoundError: If the subject does not exist.
            NotEligibleError: If the subject cannot be negotiated.
            ForbiddenError: If the initiator may not negotiate with the
                counterparty.
            RateLimitExceededError: If the initiator exhausted today's quota.
        """
        options = options or ProposeOptions()
        kind = NegotiationKind(kind)
        if subject.kind != kind:
            raise NegotiationValidationError(
                f"subject of kind '{subject.kind}' cannot open a '{kind}' negotiation"
            )
        amount = _as_money(offer, "offer")

        reference = self._policies[kind].reference(initiator_id, subject)
        evaluation = evaluate_offer(amount, reference.bounds)
        if not evaluation.acceptable:
            logger.info(
                "proposal_out_of_bounds",
                initiator_id=initiator_id,
                kind=kind,
                boundary=evaluation.boundary,
            )
            raise NegotiationValidationError(evaluation.warning or "offer is out of bounds")

        quantity = options.quantity if options.quantity is not None else 1
        if quantity < 1:
            raise NegotiationValidationError(f"quantity must be at least 1, got {quantity}")
        if reference.available_quantity is not None and quantity > reference.available_quantity:
            raise NegotiationValidationError(
                f"only {reference.available_quantity} units available, requested {quantity}"
            )

        if not self._gate.can_propose(initiator_id, reference.counterparty_id):
            raise ForbiddenError("Initiator may not negotiate with this counterparty")

        days = self._rules[kind].expiry_days(options.expires_in_days)
        now = self._clock()
        draft = NegotiationDraft(
            kind=kind,
            subject=subject,
            subject_label=reference.label,
            subject_images=reference.images,
            initiator_id=initiator_id,
            counterparty_id=reference.counterparty_id,
            reference_value=reference.value,
            offer=amount,
            quantity=quantity,
            reason=options.reason,
            expires_at=now + timedelta(days=days),
            created_at=now,
        )

        negotiation, is_new = self._store.find_or_create(
            draft, quota=self._daily_proposal_limit or None
        )
        with bound_contextvars(negotiation_id=negotiation.id):
            if not is_new:
                logger.info("proposal_deduplicated", initiator_id=initiator_id)
                return negotiation

            PROPOSALS_CREATED.labels(kind=kind.value).inc()
            logger.info(
                "negotiation_proposed",
                kind=kind,
                initiator_id=initiator_id,
                counterparty_id=negotiation.counterparty_id,
                offer=str(amount),
                expires_at=negotiation.expires_at.isoformat(),
            )
            self._dispatcher.proposed(negotiation)
        return negotiation

    # ------------------------------------------------------------------
    # Respond
    # ------------------------------------------------------------------

    def respond(
        self,
        negotiation_id: str,
        actor_id: str,
        action: ResponseAction | str,
        payload: ResponsePayload | None = None,
    ) -> Negotiation:
        """Accept, reject, counter or cancel an open negotiation.

        Args:
            negotiation_id: The negotiation to act on.
            actor_id: The participant acting.
            action: ACCEPT, REJECT, COUNTER or CANCEL.
            payload: Counter value, message and optional lifetime refresh.

        Returns:
            The negotiation after the change.

        Raises:
            NotFoundError: If the negotiation does not exist.
            ExpiredError: If its deadline passed.  It is moved to EXPIRED.
            ForbiddenError: If the actor is not a party or it is not their turn.
            InvalidTransitionError: If the action is not legal now.
            NegotiationValidationError: If the payload does not fit the action.
            ConflictError: If another writer changed it first.  Re-read and
                retry.
        """
        action = ResponseAction(action)
        payload = payload or ResponsePayload()

        with bound_contextvars(negotiation_id=negotiation_id):
            negotiation = self._store.get(negotiation_id)
            if negotiation is None:
                raise NotFoundError(f"Negotiation {negotiation_id} not found")

            now = self._clock()
            if negotiation.is_open and negotiation.is_expired(now):
                self._expire_lazily(negotiation, now)
                raise ExpiredError(negotiation_id)

            role = self._gate.role_of(negotiation, actor_id)
            if role is None:
                raise ForbiddenError(f"User {actor_id} is not a party to this negotiation")
            if not negotiation.is_open:
                raise InvalidTransitionError(negotiation.status, action)

            if action == ResponseAction.CANCEL:
                decision = self._gate.can_cancel(negotiation, actor_id)
            else:
                decision = self._gate.can_respond(negotiation, actor_id)
            if not decision.allowed:
                raise ForbiddenError(
                    f"It is the {negotiation.awaiting_role}'s turn to respond, not the {role}'s"
                )

            rules = self._rules[negotiation.kind]
            next_status = self._machines[negotiation.kind].next_status(
                negotiation.status, action, role
            )
            mutation = self._build_mutation(
                negotiation, action, role, payload, next_status, now, rules
            )

            try:
                updated = self._store.transition(
                    negotiation_id,
                    negotiation.status,
                    mutation,
                    expected_revision=negotiation.revision,
                )
            except ConflictError:
                CONFLICTS.inc()
                raise

            TRANSITIONS.labels(
                kind=updated.kind.value, action=action.value, status=updated.status.value
            ).inc()
            logger.info(
                "negotiation_responded",
                action=action,
                actor_role=role,
                from_status=negotiation.status,
                to_status=updated.status,
                current_offer=str(updated.current_offer),
            )
            self._dispatcher.responded(updated, action, role)
            return updated

    def _expire_lazily(self, negotiation: Negotiation, now: datetime) -> None:
        """Move a past-deadline negotiation to EXPIRED without a history entry."""
        mutation = TransitionMutation(
            status=NegotiationStatus.EXPIRED,
            awaiting_role=None,
            updated_at=now,
        )
        try:
            self._store.transition(
                negotiation.id,
                negotiation.status,
                mutation,
                expected_revision=negotiation.revision,
            )
        except (ConflictError, InvalidTransitionError):
            # The sweeper (or a concurrent request) got there first.
            logger.debug("lazy_expiry_superseded")
            return
        EXPIRATIONS.labels(source="lazy").inc()
        logger.info("negotiation_expired", source="lazy")

    def _build_mutation(
        self,
        negotiation: Negotiation,
        action: ResponseAction,
        role: ParticipantRole,
        payload: ResponsePayload,
        next_status: NegotiationStatus,
        now: datetime,
        rules: KindRules,
    ) -> TransitionMutation:
        """Validate *payload* for *action* and describe the resulting change."""
        if action != ResponseAction.COUNTER:
            if payload.counter_value is not None:
                raise NegotiationValidationError(f"{action} does not take a counter_value")
            if payload.expires_in_days is not None:
                raise NegotiationValidationError(f"{action} does not take expires_in_days")

        # History timestamps never go backwards, even if clocks disagree.
        at = max(now, negotiation.history[-1].at) if negotiation.history else now

        event: HistoryEvent
        if action == ResponseAction.COUNTER:
            if payload.counter_value is None:
                raise NegotiationValidationError("counter requires a counter_value")
            counter = _as_money(payload.counter_value, "counter_value")
            evaluation = evaluate_offer(counter, OfferBounds())
            if not evaluation.acceptable:
                raise NegotiationValidationError(evaluation.warning or "invalid counter_value")
            expires_at = None
            if payload.expires_in_days is not None:
                expires_at = now + timedelta(days=rules.expiry_days(payload.expires_in_days))
            event = CounterEvent(
                actor=role,
                at=at,
                from_value=negotiation.current_offer,
                to_value=counter,
                message=payload.message,
            )
            return TransitionMutation(
                status=next_status,
                awaiting_role=role.other,
                current_offer=counter,
                expires_at=expires_at,
                event=event,
                updated_at=now,
            )

        if action == ResponseAction.ACCEPT:
            event = AcceptEvent(
                actor=role, at=at, value=negotiation.current_offer, message=payload.message
            )
            return TransitionMutation(
                status=next_status,
                final_value=negotiation.current_offer,
                event=event,
                updated_at=now,
            )

        if action == ResponseAction.REJECT:
            event = RejectEvent(actor=role, at=at, reason=payload.message)
        else:
            event = CancelEvent(actor=role, at=at, reason=payload.message)
        return TransitionMutation(status=next_status, event=event, updated_at=now)

    # ------------------------------------------------------------------
    # Reads and maintenance
    # ------------------------------------------------------------------

    def get(self, negotiation_id: str) -> Negotiation:
        """Return one negotiation with its full history.

        Raises:
            NotFoundError: If it does not exist.
        """
        negotiation = self._store.get(negotiation_id)
        if negotiation is None:
            raise NotFoundError(f"Negotiation {negotiation_id} not found")
        return negotiation

    def find_open(
        self, initiator_id: str, subject: CatalogItemRef | CustomOrderBrief
    ) -> Negotiation | None:
        """Return the negotiation *initiator_id* has open on *subject*, if any.

        Read-only, for clients deciding whether to show an offer form.  A
        negotiation past its deadline counts as absent even before it is
        expired in storage.
        """
        negotiation = self._store.find_open(initiator_id, subject.subject_key)
        if negotiation is None or negotiation.is_expired(self._clock()):
            return None
        return negotiation

    def list_for(
        self,
        user_id: str,
        role: ParticipantRole | str,
        filters: ListFilters | None = None,
    ) -> Page[NegotiationSummary]:
        """Page through a participant's negotiations on one side."""
        return self._store.list_for(user_id, ParticipantRole(role), filters)

    def stats(
        self,
        user_id: str | None = None,
        role: ParticipantRole | str | None = None,
    ) -> NegotiationStats:
        """Aggregate negotiation outcomes for one participant or everyone."""
        return self._store.stats(user_id, ParticipantRole(role) if role is not None else None)

    def sweep_expired(self, now: datetime | None = None) -> int:
        """Expire every open negotiation past its deadline.

        Args:
            now: Cut-off time.  Defaults to the engine's clock.

        Returns:
            The number of negotiations expired.
        """
        count = self._store.sweep_expired(now or self._clock())
        if count:
            EXPIRATIONS.labels(source="sweep").inc(count)
        logger.info("expired_negotiations_swept", count=count)
        return count


def build_engine(
    settings: Settings,
    catalog: CatalogService,
    store: NegotiationStore | None = None,
    notifier: NotificationGateway | None = None,
    chat_bridge: ChatBridge | None = None,
    executor: Executor | None = None,
    clock: Clock = utc_now,
) -> NegotiationEngine:
    """Wire a ``NegotiationEngine`` from settings and collaborators.

    Args:
        settings: Loaded application settings.
        catalog: Listing and artisan lookups.
        store: Existing store to reuse; otherwise one is opened at
            ``settings.database_path``.
        notifier: Notification transport.  Defaults to structured logging.
        chat_bridge: Optional chat backend for custom orders.
        executor: Executor for side effects.  When None the engine owns a
            thread pool of ``settings.notification_workers`` and shuts it
            down in ``NegotiationEngine.close``.
        clock: The single source of "now".

    Returns:
        A ready engine.
    """
    owns_store = store is None
    if store is None:
        settings.database_path.parent.mkdir(parents=True, exist_ok=True)
        store = NegotiationStore(
            settings.database_path, timeout=settings.database_timeout_seconds
        )
    owns_executor = executor is None
    if executor is None:
        executor = ThreadPoolExecutor(
            max_workers=settings.notification_workers,
            thread_name_prefix="bargaining-side-effects",
        )
    dispatcher = SideEffectDispatcher(
        notifier or LoggingNotificationGateway(),
        chat_bridge=chat_bridge,
        executor=executor,
        attempts=settings.notification_retry_attempts,
        owns_executor=owns_executor,
    )
    return NegotiationEngine(
        store=store,
        policies=build_policies(catalog, settings),
        rules=kind_rules(settings),
        dispatcher=dispatcher,
        clock=clock,
        daily_proposal_limit=settings.daily_proposal_limit,
        owns_store=owns_store,
    )
