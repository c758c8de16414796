"""Serialization helpers between domain objects and SQLite columns.

Monetary values are stored as TEXT so no precision is lost; they come back
as ``Decimal``.  Timestamps are stored as fixed-width UTC strings with
microseconds (``2025-06-01T12:00:00.000000Z``) so lexical order equals
chronological order and SQL comparisons on them are correct.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from decimal import Decimal

from pydantic import TypeAdapter

from bargaining.domain.models import (
    CatalogItemRef,
    CustomOrderBrief,
    HistoryEvent,
    SubjectRef,
)

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_SUBJECT_ADAPTER: TypeAdapter[CatalogItemRef | CustomOrderBrief] = TypeAdapter(SubjectRef)
_EVENT_ADAPTER: TypeAdapter[HistoryEvent] = TypeAdapter(HistoryEvent)


def format_timestamp(value: datetime) -> str:
    """Render a timezone-aware datetime as a sortable UTC string.

    Raises:
        ValueError: If *value* is naive.
    """
    if value.tzinfo is None:
        raise ValueError("timestamps must be timezone-aware")
    return value.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """Parse a string produced by ``format_timestamp``."""
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=UTC)


def format_money(value: Decimal | None) -> str | None:
    return None if value is None else str(value)


def parse_money(value: str | None) -> Decimal | None:
    return None if value is None else Decimal(value)


def serialize_subject(subject: CatalogItemRef | CustomOrderBrief) -> str:
    """JSON-encode a subject, keeping its ``kind`` tag."""
    return _SUBJECT_ADAPTER.dump_json(subject).decode()


def deserialize_subject(json_str: str) -> CatalogItemRef | CustomOrderBrief:
    """Decode a subject, dispatching on its ``kind`` tag."""
    return _SUBJECT_ADAPTER.validate_json(json_str)


def serialize_event(event: HistoryEvent) -> str:
    """JSON-encode a history event, keeping its ``action`` tag.

    Decimal values are written as strings.
    """
    return _EVENT_ADAPTER.dump_json(event).decode()


def deserialize_event(json_str: str) -> HistoryEvent:
    """Decode a history event, dispatching on its ``action`` tag."""
    return _EVENT_ADAPTER.validate_json(json_str)


def serialize_images(images: list[str]) -> str:
    return json.dumps(images)


def deserialize_images(json_str: str) -> list[str]:
    result: list[str] = json.loads(json_str)
    return result
