"""Shared pytest fixtures for the bargaining engine test suite."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from pathlib import Path

import pytest
from tenacity import wait_none

from bargaining.collaborators.contracts import CatalogReference, NotificationEvent
from bargaining.collaborators.dispatch import SideEffectDispatcher
from bargaining.config import Settings
from bargaining.domain.errors import NotFoundError
from bargaining.domain.models import (
    CatalogItemRef,
    CustomOrderBrief,
    NegotiationSummary,
)
from bargaining.engine import NegotiationEngine
from bargaining.policy.reference import build_policies
from bargaining.policy.rules import kind_rules
from bargaining.state.store import NegotiationStore

ARTISAN = "art_1"

START = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


class MutableClock:
    """A clock tests can move forward."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


class FakeCatalog:
    """In-memory catalog keyed by product/variant and artisan id."""

    def __init__(self) -> None:
        self.products: dict[tuple[str, str | None], CatalogReference] = {}
        self.artisans: dict[str, CatalogReference] = {}

    def add_product(
        self,
        product_id: str,
        price: str | None = "450000",
        variant_id: str | None = None,
        **overrides: object,
    ) -> None:
        fields: dict[str, object] = {
            "owner_id": ARTISAN,
            "label": f"Product {product_id}",
            "images": [f"https://img.example/{product_id}.jpg"],
            "price": Decimal(price) if price is not None else None,
        }
        fields.update(overrides)
        self.products[(product_id, variant_id)] = CatalogReference(**fields)  # type: ignore[arg-type]

    def add_artisan(self, artisan_id: str, **overrides: object) -> None:
        fields: dict[str, object] = {
            "owner_id": artisan_id,
            "label": f"Workshop {artisan_id}",
            "images": [f"https://img.example/{artisan_id}.jpg"],
        }
        fields.update(overrides)
        self.artisans[artisan_id] = CatalogReference(**fields)  # type: ignore[arg-type]

    def reference(self, subject: CatalogItemRef | CustomOrderBrief) -> CatalogReference:
        if isinstance(subject, CatalogItemRef):
            key = (subject.product_id, subject.variant_id)
            if key not in self.products:
                raise NotFoundError(f"Product {subject.product_id} not found")
            return self.products[key]
        if subject.artisan_id not in self.artisans:
            raise NotFoundError(f"Artisan {subject.artisan_id} not found")
        return self.artisans[subject.artisan_id]


class RecordingNotifier:
    """Collects every notification it is handed."""

    def __init__(self) -> None:
        self.events: list[NotificationEvent] = []

    def notify(self, event: NotificationEvent) -> None:
        self.events.append(event)


class FailingNotifier:
    """Raises on every delivery and counts the attempts."""

    def __init__(self) -> None:
        self.calls = 0

    def notify(self, event: NotificationEvent) -> None:
        self.calls += 1
        raise ConnectionError("push service unavailable")


class RecordingChatBridge:
    """Collects every chat card it is handed."""

    def __init__(self) -> None:
        self.cards: list[tuple[str, NegotiationSummary]] = []

    def post_card(self, negotiation_id: str, summary: NegotiationSummary) -> None:
        self.cards.append((negotiation_id, summary))


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings isolated from the environment and pointed at *tmp_path*."""
    return Settings(  # type: ignore[call-arg]
        _env_file=None,
        database_path=tmp_path / "negotiations.db",
        daily_proposal_limit=0,
    )


@pytest.fixture
def clock() -> MutableClock:
    return MutableClock()


@pytest.fixture
def catalog() -> FakeCatalog:
    """A catalog with one negotiable product and one active artisan."""
    fake = FakeCatalog()
    fake.add_product("prod_1", price="450000")
    fake.add_artisan(ARTISAN)
    return fake


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def chat_bridge() -> RecordingChatBridge:
    return RecordingChatBridge()


@pytest.fixture
def store(tmp_path: Path) -> Iterator[NegotiationStore]:
    """A file-backed store; per-thread connections need a real file."""
    negotiation_store = NegotiationStore(tmp_path / "negotiations.db")
    yield negotiation_store
    negotiation_store.close()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def make_engine(
    store: NegotiationStore,
    settings: Settings,
    catalog: FakeCatalog,
    notifier: RecordingNotifier,
    chat_bridge: RecordingChatBridge,
    clock: MutableClock,
) -> Callable[..., NegotiationEngine]:
    """Build engines over the shared store with per-test overrides.

    Keyword arguments override ``Settings`` fields, except ``notifier``
    which replaces the recording notifier.
    """

    def _make(notifier_override: object | None = None, **overrides: object) -> NegotiationEngine:
        engine_settings = settings.model_copy(update=overrides) if overrides else settings
        return NegotiationEngine(
            store=store,
            policies=build_policies(catalog, engine_settings),
            rules=kind_rules(engine_settings),
            dispatcher=SideEffectDispatcher(
                notifier_override or notifier,  # type: ignore[arg-type]
                chat_bridge=chat_bridge,
                attempts=engine_settings.notification_retry_attempts,
                wait=wait_none(),
            ),
            clock=clock,
            daily_proposal_limit=engine_settings.daily_proposal_limit,
        )

    return _make


@pytest.fixture
def engine(make_engine: Callable[..., NegotiationEngine]) -> NegotiationEngine:
    """An engine wired to fakes, delivering side effects inline without backoff."""
    return make_engine()


@pytest.fixture
def price_subject() -> CatalogItemRef:
    return CatalogItemRef(product_id="prod_1")


@pytest.fixture
def brief() -> CustomOrderBrief:
    return CustomOrderBrief(
        artisan_id=ARTISAN,
        title="Carved walnut bowl",
        description="A 30cm hand-carved walnut serving bowl with oil finish.",
        specifications={"diameter_cm": 30, "wood": "walnut"},
        timeline="6 weeks",
    )
