"""Tests for the per-kind reference policies."""

from __future__ import annotations

from decimal import Decimal

import pytest

from bargaining.config import Settings
from bargaining.domain.errors import NegotiationValidationError, NotEligibleError, NotFoundError
from bargaining.domain.models import CatalogItemRef, CustomOrderBrief
from bargaining.domain.types import NegotiationKind
from bargaining.policy.reference import (
    CustomOrderReferencePolicy,
    PriceReferencePolicy,
    build_policies,
)
from bargaining.pricing.engine import OfferBounds


class TestPriceReferencePolicy:
    def test_bounds_from_list_price(self, catalog):
        policy = PriceReferencePolicy(catalog, Decimal("0.3"))
        reference = policy.reference("cust_1", CatalogItemRef(product_id="prod_1"))
        assert reference.value == Decimal("450000.00")
        assert reference.bounds == OfferBounds(
            minimum=Decimal("135000.00"), maximum=Decimal("450000.00")
        )
        assert reference.counterparty_id == "art_1"
        assert reference.label == "Product prod_1"
        assert reference.images == ["https://img.example/prod_1.jpg"]

    def test_discount_price_is_the_reference(self, catalog):
        catalog.add_product("prod_2", price="1000", discount_price=Decimal("800"))
        policy = PriceReferencePolicy(catalog, Decimal("0.5"))
        reference = policy.reference("cust_1", CatalogItemRef(product_id="prod_2"))
        assert reference.value == Decimal("800.00")
        assert reference.bounds.minimum == Decimal("400.00")

    def test_variant_lookup(self, catalog):
        catalog.add_product("prod_3", price="200", variant_id="large", available_quantity=4)
        policy = PriceReferencePolicy(catalog, Decimal("0.3"))
        reference = policy.reference(
            "cust_1", CatalogItemRef(product_id="prod_3", variant_id="large")
        )
        assert reference.value == Decimal("200.00")
        assert reference.available_quantity == 4

    def test_missing_product(self, catalog):
        policy = PriceReferencePolicy(catalog, Decimal("0.3"))
        with pytest.raises(NotFoundError):
            policy.reference("cust_1", CatalogItemRef(product_id="nope"))

    @pytest.mark.parametrize(
        ("overrides", "initiator", "match"),
        [
            ({"published": False}, "cust_1", "not available"),
            ({"negotiable": False}, "cust_1", "does not accept offers"),
            ({}, "art_1", "your own product"),
            ({"price": None}, "cust_1", "no price"),
        ],
        ids=["unpublished", "not_negotiable", "own_product", "no_price"],
    )
    def test_not_eligible(self, catalog, overrides: dict[str, object], initiator: str, match: str):
        catalog.add_product("prod_x", **overrides)
        policy = PriceReferencePolicy(catalog, Decimal("0.3"))
        with pytest.raises(NotEligibleError, match=match):
            policy.reference(initiator, CatalogItemRef(product_id="prod_x"))

    def test_rejects_custom_order_subject(self, catalog, brief):
        policy = PriceReferencePolicy(catalog, Decimal("0.3"))
        with pytest.raises(NegotiationValidationError):
            policy.reference("cust_1", brief)


class TestCustomOrderReferencePolicy:
    def test_resolves_artisan_with_open_bounds(self, catalog, brief):
        reference = CustomOrderReferencePolicy(catalog).reference("cust_1", brief)
        assert reference.counterparty_id == "art_1"
        assert reference.bounds == OfferBounds()
        assert reference.value is None
        assert reference.label == "Carved walnut bowl"
        assert reference.images == ["https://img.example/art_1.jpg"]

    def test_attachments_replace_artisan_images(self, catalog, brief):
        with_attachments = brief.model_copy(
            update={"attachment_urls": ["https://files.example/sketch.png"]}
        )
        reference = CustomOrderReferencePolicy(catalog).reference("cust_1", with_attachments)
        assert reference.images == ["https://files.example/sketch.png"]

    @pytest.mark.parametrize(
        ("title", "description", "match"),
        [
            ("Bowl", "A carved walnut serving bowl", "title"),
            ("x" * 201, "A carved walnut serving bowl", "title"),
            ("Carved bowl", "too short", "description"),
            ("Carved bowl", "y" * 2001, "description"),
            ("   Bowl     ", "A carved walnut serving bowl", "title"),
        ],
        ids=[
            "title_short",
            "title_long",
            "description_short",
            "description_long",
            "title_padded",
        ],
    )
    def test_brief_validation(self, catalog, title: str, description: str, match: str):
        brief = CustomOrderBrief(artisan_id="art_1", title=title, description=description)
        with pytest.raises(NegotiationValidationError, match=match):
            CustomOrderReferencePolicy(catalog).reference("cust_1", brief)

    def test_cannot_commission_yourself(self, catalog, brief):
        with pytest.raises(NotEligibleError, match="yourself"):
            CustomOrderReferencePolicy(catalog).reference("art_1", brief)

    def test_inactive_artisan(self, catalog, brief):
        catalog.add_artisan("art_1", published=False)
        with pytest.raises(NotEligibleError):
            CustomOrderReferencePolicy(catalog).reference("cust_1", brief)

    def test_unknown_artisan(self, catalog):
        brief = CustomOrderBrief(
            artisan_id="art_404", title="Carved bowl", description="A carved walnut bowl"
        )
        with pytest.raises(NotFoundError):
            CustomOrderReferencePolicy(catalog).reference("cust_1", brief)


def test_build_policies_covers_every_kind(catalog):
    policies = build_policies(catalog, Settings(_env_file=None))  # type: ignore[call-arg]
    assert set(policies) == set(NegotiationKind)
    for kind, policy in policies.items():
        assert policy.kind == kind
