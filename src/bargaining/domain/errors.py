"""Domain-specific exception classes for the bargaining engine.

Every error carries a stable ``code`` so the calling layer can map it onto
its own transport (HTTP status, chat error card, CLI exit code) without
string-matching messages.
"""

from bargaining.domain.types import NegotiationStatus, ResponseAction


class NegotiationError(Exception):
    """Base class for all domain errors in the bargaining engine."""

    code = "negotiation_error"


class NotFoundError(NegotiationError):
    """Raised when a negotiation or its subject does not exist."""

    code = "not_found"


class NotEligibleError(NotFoundError):
    """Raised when a subject exists but cannot be negotiated.

    Examples: an unpublished listing, a listing that does not allow
    negotiation, or a listing owned by the would-be initiator.
    """

    code = "not_eligible"


class ForbiddenError(NegotiationError):
    """Raised when the actor is not allowed to act at the current state."""

    code = "forbidden"


class InvalidTransitionError(NegotiationError):
    """Raised when an action is not legal for the current status.

    Attributes:
        status: The status the negotiation was in.
        action: The action that was rejected.
    """

    code = "invalid_transition"

    def __init__(self, status: NegotiationStatus, action: ResponseAction | str) -> None:
        self.status = status
        self.action = action
        super().__init__(f"Cannot apply action '{action}' in status '{status}'")


class ExpiredError(NegotiationError):
    """Raised when acting on a negotiation past its deadline."""

    code = "expired"

    def __init__(self, negotiation_id: str) -> None:
        self.negotiation_id = negotiation_id
        super().__init__(f"Negotiation {negotiation_id} has expired")


class NegotiationValidationError(NegotiationError):
    """Raised when an offer or payload fails validation."""

    code = "validation_error"


class RateLimitExceededError(NegotiationError):
    """Raised when an initiator has opened too many negotiations today.

    Attributes:
        user_id: The initiator that hit the limit.
        limit: The configured daily limit.
    """

    code = "rate_limited"

    def __init__(self, user_id: str, limit: int) -> None:
        self.user_id = user_id
        self.limit = limit
        super().__init__(f"User {user_id} exceeded the daily limit of {limit} new negotiations")


class ConflictError(NegotiationError):
    """Raised when an optimistic transition loses a race.

    The caller may re-read the negotiation and retry.

    Attributes:
        negotiation_id: The contested negotiation.
        expected: The status (and revision) the caller read.
        actual: The status (and revision) found at write time.
    """

    code = "conflict"

    def __init__(self, negotiation_id: str, expected: str, actual: str) -> None:
        self.negotiation_id = negotiation_id
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Negotiation {negotiation_id} changed concurrently "
            f"(expected {expected}, found {actual})"
        )


class StoreError(NegotiationError):
    """Opaque wrapper for persistence-layer failures."""

    code = "internal_error"
