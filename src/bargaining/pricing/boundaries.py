"""Offer boundary enforcement.

Evaluates a proposed or countered amount against the bounds a
``ReferencePolicy`` produced for the negotiation's subject.
"""

from decimal import Decimal
from enum import StrEnum

from pydantic import BaseModel

from bargaining.pricing.engine import OfferBounds


class BoundaryResult(StrEnum):
    """Classification of an offer relative to its bounds."""

    WITHIN_BOUNDS = "within_bounds"
    BELOW_FLOOR = "below_floor"
    ABOVE_CEILING = "above_ceiling"
    NOT_POSITIVE = "not_positive"


class OfferEvaluation(BaseModel, frozen=True):
    """Result of evaluating an offer against bounds.

    Attributes:
        offer: The amount that was evaluated.
        boundary: The boundary classification result.
        warning: Human-readable explanation when the offer is refused.
    """

    offer: Decimal
    boundary: BoundaryResult
    warning: str | None = None

    @property
    def acceptable(self) -> bool:
        return self.boundary == BoundaryResult.WITHIN_BOUNDS


def evaluate_offer(offer: Decimal, bounds: OfferBounds) -> OfferEvaluation:
    """Evaluate an offer against inclusive bounds.

    Boundary logic (evaluated in order):
    1. If offer <= 0: NOT_POSITIVE
    2. If a floor exists and offer < floor: BELOW_FLOOR
    3. If a ceiling exists and offer > ceiling: ABOVE_CEILING
    4. Otherwise: WITHIN_BOUNDS

    Args:
        offer: The amount proposed by a participant.
        bounds: The acceptable range. Missing ends are unbounded.

    Returns:
        OfferEvaluation with the boundary classification and an optional
        warning message.
    """
    if offer <= 0:
        return OfferEvaluation(
            offer=offer,
            boundary=BoundaryResult.NOT_POSITIVE,
            warning=f"Offer must be positive, got {offer}",
        )

    if bounds.minimum is not None and offer < bounds.minimum:
        return OfferEvaluation(
            offer=offer,
            boundary=BoundaryResult.BELOW_FLOOR,
            warning=f"Offer {offer} is below the minimum of {bounds.minimum}",
        )

    if bounds.maximum is not None and offer > bounds.maximum:
        return OfferEvaluation(
            offer=offer,
            boundary=BoundaryResult.ABOVE_CEILING,
            warning=f"Offer {offer} exceeds the reference value of {bounds.maximum}",
        )

    return OfferEvaluation(offer=offer, boundary=BoundaryResult.WITHIN_BOUNDS)
