"""Contracts for the services the negotiation engine consumes.

The engine never talks to a catalog, a push service or a chat backend
directly; it depends on these ``Protocol`` classes so deployments can plug in
whatever transport they run.
"""

from __future__ import annotations

from decimal import Decimal
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from bargaining.domain.models import CatalogItemRef, CustomOrderBrief, NegotiationSummary
from bargaining.domain.types import (
    NegotiationKind,
    NegotiationStatus,
    ResponseAction,
)


class CatalogReference(BaseModel):
    """What the catalog knows about a negotiation subject.

    For a PRICE subject this describes the listing (or variant). For a
    CUSTOM_ORDER subject it describes the artisan; ``price`` is then the
    price of the optional reference product.

    Attributes:
        owner_id: The artisan who owns the listing or receives the brief.
        label: Display name used in summaries.
        images: Display images used in summaries.
        price: List price, if any.
        discount_price: Discounted price, if any.
        published: Whether the listing is visible (or the artisan active).
        negotiable: Whether the owner accepts offers on it.
        available_quantity: Stock on hand, or None when untracked.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str
    label: str = ""
    images: list[str] = Field(default_factory=list)
    price: Decimal | None = None
    discount_price: Decimal | None = None
    published: bool = True
    negotiable: bool = True
    available_quantity: int | None = None


@runtime_checkable
class CatalogService(Protocol):
    """Read-only view of listings and artisans."""

    def reference(self, subject: CatalogItemRef | CustomOrderBrief) -> CatalogReference:
        """Return catalog facts for *subject*.

        Raises:
            NotFoundError: If the listing, variant or artisan does not exist.
        """
        ...


class NotificationType(StrEnum):
    """Kinds of notification the engine emits."""

    NEGOTIATION_PROPOSED = "negotiation_proposed"
    NEGOTIATION_RESPONDED = "negotiation_responded"


class NotificationEvent(BaseModel):
    """A best-effort message to one participant about a negotiation."""

    model_config = ConfigDict(frozen=True)

    type: NotificationType
    recipient_id: str
    actor_id: str
    negotiation_id: str
    kind: NegotiationKind
    status: NegotiationStatus
    action: ResponseAction | None = None
    title: str
    message: str


@runtime_checkable
class NotificationGateway(Protocol):
    """Fire-and-forget delivery of notifications."""

    def notify(self, event: NotificationEvent) -> None: ...


@runtime_checkable
class ChatBridge(Protocol):
    """Renders a custom-order negotiation as a card in the parties' chat."""

    def post_card(self, negotiation_id: str, summary: NegotiationSummary) -> None: ...
