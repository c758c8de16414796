"""Pricing arithmetic and offer boundary evaluation.

Re-exports key functions and types for convenient access:
    from bargaining.pricing import calculate_bounds, evaluate_offer, BoundaryResult
"""

from bargaining.pricing.boundaries import (
    BoundaryResult,
    OfferEvaluation,
    evaluate_offer,
)
from bargaining.pricing.engine import (
    DEFAULT_FLOOR_RATIO,
    TWO_PLACES,
    OfferBounds,
    calculate_bounds,
    calculate_discount,
    effective_price,
    quantize_money,
)

__all__ = [
    "DEFAULT_FLOOR_RATIO",
    "TWO_PLACES",
    "BoundaryResult",
    "OfferBounds",
    "OfferEvaluation",
    "calculate_bounds",
    "calculate_discount",
    "effective_price",
    "evaluate_offer",
    "quantize_money",
]
