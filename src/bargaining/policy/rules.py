"""Per-kind negotiation rules derived from settings."""

from __future__ import annotations

from pydantic import BaseModel, model_validator

from bargaining.config import Settings
from bargaining.domain.errors import NegotiationValidationError
from bargaining.domain.types import NegotiationKind


class KindRules(BaseModel, frozen=True):
    """Lifecycle rules that differ between negotiation kinds.

    Attributes:
        kind: The kind these rules govern.
        default_expiry_days: Lifetime used when the caller does not ask.
        min_expiry_days: Shortest lifetime a caller may request.
        max_expiry_days: Longest lifetime a caller may request.
        allow_initiator_counter: Whether the initiator may answer a counter
            with a counter of their own.
    """

    kind: NegotiationKind
    default_expiry_days: int
    min_expiry_days: int
    max_expiry_days: int
    allow_initiator_counter: bool

    @model_validator(mode="after")
    def default_within_range(self) -> KindRules:
        if not (1 <= self.min_expiry_days <= self.default_expiry_days <= self.max_expiry_days):
            raise ValueError(
                f"expiry days for {self.kind} must satisfy "
                f"1 <= min <= default <= max, got {self.min_expiry_days}/"
                f"{self.default_expiry_days}/{self.max_expiry_days}"
            )
        return self

    def expiry_days(self, requested: int | None) -> int:
        """Resolve a requested lifetime against this kind's bounds.

        Args:
            requested: Days asked for by the caller, or None for the default.

        Returns:
            The number of days until expiry.

        Raises:
            NegotiationValidationError: If *requested* is out of range.
        """
        if requested is None:
            return self.default_expiry_days
        if not (self.min_expiry_days <= requested <= self.max_expiry_days):
            raise NegotiationValidationError(
                f"expires_in_days must be between {self.min_expiry_days} and "
                f"{self.max_expiry_days} for {self.kind} negotiations, got {requested}"
            )
        return requested


def kind_rules(settings: Settings) -> dict[NegotiationKind, KindRules]:
    """Build the rule set for every kind from *settings*."""
    return {
        NegotiationKind.PRICE: KindRules(
            kind=NegotiationKind.PRICE,
            default_expiry_days=settings.price_default_expiry_days,
            min_expiry_days=settings.price_min_expiry_days,
            max_expiry_days=settings.price_max_expiry_days,
            allow_initiator_counter=settings.price_allow_initiator_counter,
        ),
        NegotiationKind.CUSTOM_ORDER: KindRules(
            kind=NegotiationKind.CUSTOM_ORDER,
            default_expiry_days=settings.custom_order_default_expiry_days,
            min_expiry_days=settings.custom_order_min_expiry_days,
            max_expiry_days=settings.custom_order_max_expiry_days,
            allow_initiator_counter=settings.custom_order_allow_initiator_counter,
        ),
    }
