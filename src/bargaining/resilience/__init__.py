"""Retry policies for best-effort calls and optimistic-conflict recovery."""

from bargaining.resilience.retry import resilient_call, retry_on_conflict

__all__ = [
    "resilient_call",
    "retry_on_conflict",
]
