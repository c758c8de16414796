"""Per-kind variation points: reference policies and lifecycle rules."""

from bargaining.policy.reference import (
    CustomOrderReferencePolicy,
    PriceReferencePolicy,
    Reference,
    ReferencePolicy,
    build_policies,
)
from bargaining.policy.rules import KindRules, kind_rules

__all__ = [
    "CustomOrderReferencePolicy",
    "KindRules",
    "PriceReferencePolicy",
    "Reference",
    "ReferencePolicy",
    "build_policies",
    "kind_rules",
]
