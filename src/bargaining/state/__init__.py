"""Negotiation persistence package.

Provides SQLite-backed storage for negotiations, their append-only history
and per-user proposal quotas, plus serialization helpers for domain objects.
"""

from bargaining.state.schema import init_negotiation_tables
from bargaining.state.serializers import (
    deserialize_event,
    deserialize_subject,
    format_timestamp,
    parse_timestamp,
    serialize_event,
    serialize_subject,
)
from bargaining.state.store import NegotiationStore

__all__ = [
    "NegotiationStore",
    "deserialize_event",
    "deserialize_subject",
    "format_timestamp",
    "init_negotiation_tables",
    "parse_timestamp",
    "serialize_event",
    "serialize_subject",
]
