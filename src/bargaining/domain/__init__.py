"""Domain types, models, and errors for the bargaining engine."""

from bargaining.domain.clock import Clock, utc_now
from bargaining.domain.errors import (
    ConflictError,
    ExpiredError,
    ForbiddenError,
    InvalidTransitionError,
    NegotiationError,
    NegotiationValidationError,
    NotEligibleError,
    NotFoundError,
    RateLimitExceededError,
    StoreError,
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
    ProposeEvent,
    ProposeOptions,
    RejectEvent,
    ResponsePayload,
    SubjectRef,
    TransitionMutation,
)
from bargaining.domain.types import (
    OPEN_STATUSES,
    TERMINAL_STATUSES,
    NegotiationKind,
    NegotiationStatus,
    ParticipantRole,
    ResponseAction,
    is_open,
)

__all__ = [
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "AcceptEvent",
    "CancelEvent",
    "CatalogItemRef",
    "Clock",
    "ConflictError",
    "CounterEvent",
    "CustomOrderBrief",
    "ExpiredError",
    "ForbiddenError",
    "HistoryEvent",
    "InvalidTransitionError",
    "ListFilters",
    "Negotiation",
    "NegotiationDraft",
    "NegotiationError",
    "NegotiationKind",
    "NegotiationStats",
    "NegotiationStatus",
    "NegotiationSummary",
    "NegotiationValidationError",
    "NotEligibleError",
    "NotFoundError",
    "Page",
    "ParticipantRole",
    "ProposeEvent",
    "ProposeOptions",
    "RateLimitExceededError",
    "RejectEvent",
    "ResponseAction",
    "ResponsePayload",
    "StoreError",
    "SubjectRef",
    "TransitionMutation",
    "is_open",
    "utc_now",
]
