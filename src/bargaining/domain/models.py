"""Pydantic v2 models for negotiation data structures.

Monetary values are ``Decimal`` throughout -- float inputs are rejected to
prevent precision errors, mirroring how the catalog stores prices.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Annotated, Any, Generic, Literal, TypeVar

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from bargaining.domain.errors import NegotiationValidationError
from bargaining.domain.types import (
    NegotiationKind,
    NegotiationStatus,
    ParticipantRole,
    is_open,
)

T = TypeVar("T")

MAX_NOTE_LENGTH = 1000


# ---------------------------------------------------------------------------
# Subjects
# ---------------------------------------------------------------------------


class CatalogItemRef(BaseModel):
    """A catalog listing (and optional variant) whose price is negotiated."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["price"] = "price"
    product_id: str
    variant_id: str | None = None

    @property
    def subject_key(self) -> str:
        """Identity used to enforce one open negotiation per initiator."""
        return f"price:{self.product_id}:{self.variant_id or '-'}"


class CustomOrderBrief(BaseModel):
    """A bespoke commission request addressed to one artisan."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["custom_order"] = "custom_order"
    artisan_id: str
    title: str
    description: str
    specifications: dict[str, Any] = Field(default_factory=dict)
    reference_product_id: str | None = None
    attachment_urls: list[str] = Field(default_factory=list)
    timeline: str | None = None

    @property
    def subject_key(self) -> str:
        """A customer holds at most one open custom order per artisan."""
        return f"custom_order:{self.artisan_id}"


SubjectRef = Annotated[CatalogItemRef | CustomOrderBrief, Field(discriminator="kind")]


# ---------------------------------------------------------------------------
# History
# ---------------------------------------------------------------------------


class _HistoryEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    actor: ParticipantRole
    at: datetime


class ProposeEvent(_HistoryEntry):
    """The initiator opened the negotiation."""

    action: Literal["propose"] = "propose"
    offer: Decimal
    quantity: int = 1
    reason: str | None = None


class CounterEvent(_HistoryEntry):
    """A party replaced the value on the table."""

    action: Literal["counter"] = "counter"
    from_value: Decimal
    to_value: Decimal
    message: str | None = None


class AcceptEvent(_HistoryEntry):
    """The awaiting party accepted the value on the table."""

    action: Literal["accept"] = "accept"
    value: Decimal
    message: str | None = None


class RejectEvent(_HistoryEntry):
    """The awaiting party declined."""

    action: Literal["reject"] = "reject"
    reason: str | None = None


class CancelEvent(_HistoryEntry):
    """Either party withdrew."""

    action: Literal["cancel"] = "cancel"
    reason: str | None = None


HistoryEvent = Annotated[
    ProposeEvent | CounterEvent | AcceptEvent | RejectEvent | CancelEvent,
    Field(discriminator="action"),
]


# ---------------------------------------------------------------------------
# Negotiation
# ---------------------------------------------------------------------------


class Negotiation(BaseModel):
    """A bilateral negotiation between one customer and one artisan."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NegotiationKind
    subject: SubjectRef
    subject_label: str = ""
    subject_images: list[str] = Field(default_factory=list)
    initiator_id: str
    counterparty_id: str
    reference_value: Decimal | None = None
    current_offer: Decimal
    final_value: Decimal | None = None
    quantity: int = 1
    status: NegotiationStatus
    awaiting_role: ParticipantRole | None = None
    revision: int = 0
    history: list[HistoryEvent] = Field(default_factory=list)
    expires_at: datetime
    created_at: datetime
    updated_at: datetime

    @model_validator(mode="after")
    def final_value_only_when_accepted(self) -> Negotiation:
        """``final_value`` is set iff the negotiation was accepted."""
        accepted = self.status == NegotiationStatus.ACCEPTED
        if accepted != (self.final_value is not None):
            raise ValueError(
                f"final_value must be set iff status is accepted (status={self.status})"
            )
        return self

    @model_validator(mode="after")
    def turn_matches_status(self) -> Negotiation:
        """Open negotiations always wait on someone; terminal ones never do."""
        if is_open(self.status) and self.awaiting_role is None:
            raise ValueError(f"open negotiation in status {self.status} has no awaiting_role")
        if not is_open(self.status) and self.awaiting_role is not None:
            raise ValueError(f"terminal negotiation in status {self.status} has an awaiting_role")
        return self

    @model_validator(mode="after")
    def history_is_chronological(self) -> Negotiation:
        """Each history entry is no earlier than the one before it."""
        for previous, entry in zip(self.history, self.history[1:], strict=False):
            if entry.at < previous.at:
                raise ValueError("history timestamps must be non-decreasing")
        return self

    @property
    def subject_key(self) -> str:
        return self.subject.subject_key

    @property
    def is_open(self) -> bool:
        return is_open(self.status)

    def is_expired(self, now: datetime) -> bool:
        """Return True if the deadline has strictly passed."""
        return self.expires_at < now

    def role_of(self, user_id: str) -> ParticipantRole | None:
        """Return *user_id*'s side in this negotiation, or None for outsiders."""
        if user_id == self.initiator_id:
            return ParticipantRole.INITIATOR
        if user_id == self.counterparty_id:
            return ParticipantRole.COUNTERPARTY
        return None

    def summary(self) -> NegotiationSummary:
        """Project the negotiation onto its list view."""
        return NegotiationSummary(
            id=self.id,
            kind=self.kind,
            subject_label=self.subject_label,
            subject_images=list(self.subject_images),
            initiator_id=self.initiator_id,
            counterparty_id=self.counterparty_id,
            reference_value=self.reference_value,
            current_offer=self.current_offer,
            final_value=self.final_value,
            quantity=self.quantity,
            status=self.status,
            awaiting_role=self.awaiting_role,
            created_at=self.created_at,
            updated_at=self.updated_at,
            expires_at=self.expires_at,
        )


class NegotiationDraft(BaseModel):
    """Everything the store needs to insert a fresh negotiation."""

    model_config = ConfigDict(frozen=True)

    kind: NegotiationKind
    subject: SubjectRef
    subject_label: str = ""
    subject_images: list[str] = Field(default_factory=list)
    initiator_id: str
    counterparty_id: str
    reference_value: Decimal | None = None
    offer: Decimal
    quantity: int = 1
    reason: str | None = None
    expires_at: datetime
    created_at: datetime

    @model_validator(mode="after")
    def expiry_after_creation(self) -> NegotiationDraft:
        """A negotiation must be created with a deadline in the future."""
        if self.expires_at <= self.created_at:
            raise ValueError("expires_at must be strictly after created_at")
        return self

    @property
    def subject_key(self) -> str:
        return self.subject.subject_key

    def opening_event(self) -> ProposeEvent:
        """The first history entry of the negotiation."""
        return ProposeEvent(
            actor=ParticipantRole.INITIATOR,
            at=self.created_at,
            offer=self.offer,
            quantity=self.quantity,
            reason=self.reason,
        )


class TransitionMutation(BaseModel):
    """A change applied atomically by ``NegotiationStore.transition``.

    ``None`` fields are left untouched, except ``awaiting_role`` which is
    always written (terminal states clear it).
    """

    model_config = ConfigDict(frozen=True)

    status: NegotiationStatus
    awaiting_role: ParticipantRole | None = None
    current_offer: Decimal | None = None
    final_value: Decimal | None = None
    expires_at: datetime | None = None
    event: HistoryEvent | None = None
    updated_at: datetime


# ---------------------------------------------------------------------------
# Requests
# ---------------------------------------------------------------------------

# Request validators raise NegotiationValidationError, which pydantic
# propagates unwrapped.


class ProposeOptions(BaseModel):
    """Optional knobs for ``NegotiationEngine.propose``."""

    model_config = ConfigDict(frozen=True)

    quantity: int | None = None
    reason: str | None = None
    expires_in_days: int | None = None

    @field_validator("reason")
    @classmethod
    def reason_not_too_long(cls, v: str | None) -> str | None:
        """Cap free-text reasons."""
        if v is not None and len(v) > MAX_NOTE_LENGTH:
            raise NegotiationValidationError(
                f"reason cannot exceed {MAX_NOTE_LENGTH} characters"
            )
        return v


class ResponsePayload(BaseModel):
    """Payload accompanying a response action."""

    model_config = ConfigDict(frozen=True)

    counter_value: Decimal | None = None
    message: str | None = None
    expires_in_days: int | None = None

    @field_validator("counter_value", mode="before")
    @classmethod
    def reject_float_inputs(cls, v: object) -> object:
        """Reject float inputs for monetary fields to prevent precision errors."""
        if isinstance(v, float):
            raise NegotiationValidationError(
                "counter_value must be a Decimal or string, not float"
            )
        return v

    @field_validator("message")
    @classmethod
    def message_not_too_long(cls, v: str | None) -> str | None:
        """Cap free-text messages."""
        if v is not None and len(v) > MAX_NOTE_LENGTH:
            raise NegotiationValidationError(
                f"message cannot exceed {MAX_NOTE_LENGTH} characters"
            )
        return v


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------


class NegotiationSummary(BaseModel):
    """Denormalized list projection of a negotiation."""

    model_config = ConfigDict(frozen=True)

    id: str
    kind: NegotiationKind
    subject_label: str
    subject_images: list[str] = Field(default_factory=list)
    initiator_id: str
    counterparty_id: str
    reference_value: Decimal | None = None
    current_offer: Decimal
    final_value: Decimal | None = None
    quantity: int = 1
    status: NegotiationStatus
    awaiting_role: ParticipantRole | None = None
    created_at: datetime
    updated_at: datetime
    expires_at: datetime


SortField = Literal["created_at", "updated_at", "expires_at"]


class ListFilters(BaseModel):
    """Filtering, sorting and pagination for ``list_for``."""

    model_config = ConfigDict(frozen=True)

    kinds: list[NegotiationKind] | None = None
    statuses: list[NegotiationStatus] | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=100)
    sort_by: SortField = "created_at"
    sort_order: Literal["asc", "desc"] = "desc"


class Page(BaseModel, Generic[T]):
    """One page of results."""

    items: list[T]
    total: int
    page: int
    limit: int

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.total else 0


class NegotiationStats(BaseModel):
    """Aggregate counts for a user's (or the whole platform's) negotiations."""

    total: int = 0
    pending: int = 0
    counter_offered: int = 0
    accepted: int = 0
    rejected: int = 0
    expired: int = 0
    cancelled: int = 0
    average_discount: Decimal = Decimal("0")
    success_rate: Decimal = Decimal("0")


__all__ = [
    "AcceptEvent",
    "CancelEvent",
    "CatalogItemRef",
    "CounterEvent",
    "CustomOrderBrief",
    "HistoryEvent",
    "ListFilters",
    "Negotiation",
    "NegotiationDraft",
    "NegotiationStats",
    "NegotiationSummary",
    "Page",
    "ProposeEvent",
    "ProposeOptions",
    "RejectEvent",
    "ResponsePayload",
    "SubjectRef",
    "TransitionMutation",
]
