"""Reference policies: the per-kind source of baseline value and offer bounds.

A ``ReferencePolicy`` answers one question for the engine: given who is
asking and what they want to negotiate, what is the baseline value, what
range may an offer take, and who is on the other side?
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from bargaining.collaborators.contracts import CatalogService
from bargaining.config import Settings
from bargaining.domain.errors import NegotiationValidationError, NotEligibleError
from bargaining.domain.models import CatalogItemRef, CustomOrderBrief
from bargaining.domain.types import NegotiationKind
from bargaining.pricing.engine import OfferBounds, calculate_bounds, effective_price

TITLE_MIN_LENGTH = 5
TITLE_MAX_LENGTH = 200
DESCRIPTION_MIN_LENGTH = 10
DESCRIPTION_MAX_LENGTH = 2000


class Reference(BaseModel):
    """Resolved baseline for a negotiation subject.

    Attributes:
        value: The baseline amount, or None when the subject has none.
        bounds: Inclusive range an offer must fall within.
        counterparty_id: The artisan the negotiation is addressed to.
        label: Display name denormalized onto the negotiation.
        images: Display images denormalized onto the negotiation.
        available_quantity: Stock on hand, or None when untracked.
    """

    model_config = ConfigDict(frozen=True)

    value: Decimal | None
    bounds: OfferBounds
    counterparty_id: str
    label: str = ""
    images: list[str] = Field(default_factory=list)
    available_quantity: int | None = None


class ReferencePolicy(Protocol):
    """Per-kind resolution of reference value and bounds."""

    kind: NegotiationKind

    def reference(
        self, initiator_id: str, subject: CatalogItemRef | CustomOrderBrief
    ) -> Reference: ...


class PriceReferencePolicy:
    """Bounds a price offer to ``[floor_ratio * effective price, effective price]``.

    Args:
        catalog: Source of listing facts.
        floor_ratio: Fraction of the effective price below which offers are
            refused.
    """

    kind = NegotiationKind.PRICE

    def __init__(self, catalog: CatalogService, floor_ratio: Decimal) -> None:
        self._catalog = catalog
        self._floor_ratio = floor_ratio

    def reference(
        self, initiator_id: str, subject: CatalogItemRef | CustomOrderBrief
    ) -> Reference:
        """Resolve the listing's effective price and the acceptable range.

        Raises:
            NotFoundError: If the listing or variant does not exist.
            NotEligibleError: If the listing is unpublished, not negotiable,
                owned by the initiator, or has no price.
        """
        if not isinstance(subject, CatalogItemRef):
            raise NegotiationValidationError("price negotiations require a catalog item subject")

        listing = self._catalog.reference(subject)
        if not listing.published:
            raise NotEligibleError(f"Product {subject.product_id} is not available")
        if not listing.negotiable:
            raise NotEligibleError(f"Product {subject.product_id} does not accept offers")
        if listing.owner_id == initiator_id:
            raise NotEligibleError("Cannot negotiate on your own product")

        value = effective_price(listing.price, listing.discount_price)
        if value is None or value <= 0:
            raise NotEligibleError(f"Product {subject.product_id} has no price to negotiate")

        return Reference(
            value=value,
            bounds=calculate_bounds(value, self._floor_ratio),
            counterparty_id=listing.owner_id,
            label=listing.label,
            images=list(listing.images),
            available_quantity=listing.available_quantity,
        )


class CustomOrderReferencePolicy:
    """Validates a brief and resolves its artisan; bounds are advisory.

    The optional reference product's price is recorded as the baseline but
    does not constrain the offer beyond being positive.
    """

    kind = NegotiationKind.CUSTOM_ORDER

    def __init__(self, catalog: CatalogService) -> None:
        self._catalog = catalog

    def reference(
        self, initiator_id: str, subject: CatalogItemRef | CustomOrderBrief
    ) -> Reference:
        """Validate the brief and resolve the addressed artisan.

        Raises:
            NegotiationValidationError: If the title or description is too
                short or too long.
            NotFoundError: If the artisan does not exist.
            NotEligibleError: If the artisan is not accepting custom orders
                or is the initiator.
        """
        if not isinstance(subject, CustomOrderBrief):
            raise NegotiationValidationError("custom orders require a custom order brief")

        title = subject.title.strip()
        if not (TITLE_MIN_LENGTH <= len(title) <= TITLE_MAX_LENGTH):
            raise NegotiationValidationError(
                f"title must be {TITLE_MIN_LENGTH}-{TITLE_MAX_LENGTH} characters"
            )
        description = subject.description.strip()
        if not (DESCRIPTION_MIN_LENGTH <= len(description) <= DESCRIPTION_MAX_LENGTH):
            raise NegotiationValidationError(
                f"description must be {DESCRIPTION_MIN_LENGTH}-{DESCRIPTION_MAX_LENGTH} characters"
            )
        if subject.artisan_id == initiator_id:
            raise NotEligibleError("Cannot send a custom order to yourself")

        artisan = self._catalog.reference(subject)
        if not artisan.published:
            raise NotEligibleError(f"Artisan {subject.artisan_id} is not accepting custom orders")

        return Reference(
            value=effective_price(artisan.price, artisan.discount_price),
            bounds=OfferBounds(),
            counterparty_id=subject.artisan_id,
            label=title,
            images=list(subject.attachment_urls) or list(artisan.images),
        )


def build_policies(
    catalog: CatalogService, settings: Settings
) -> Mapping[NegotiationKind, ReferencePolicy]:
    """Return the reference policy for every negotiation kind."""
    return {
        NegotiationKind.PRICE: PriceReferencePolicy(catalog, settings.price_floor_ratio),
        NegotiationKind.CUSTOM_ORDER: CustomOrderReferencePolicy(catalog),
    }
