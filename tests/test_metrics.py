"""Tests for Prometheus metrics endpoint and custom business metrics."""

from __future__ import annotations

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from prometheus_client import REGISTRY

from bargaining.domain.errors import ExpiredError
from bargaining.domain.models import ResponsePayload
from bargaining.domain.types import NegotiationKind, ResponseAction
from bargaining.observability.metrics import setup_metrics


def _sample(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsEndpoint:
    def test_metrics_exposed_and_health_checks_excluded(self) -> None:
        app = FastAPI()

        @app.get("/hello")
        async def hello():
            return {"msg": "hello"}

        @app.get("/health")
        async def health():
            return {"status": "healthy"}

        setup_metrics(app)
        client = TestClient(app)
        client.get("/hello")
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert 'handler="/hello"' in body
        assert 'handler="/health"' not in body
        assert "bargaining_transition_conflicts_total" in body


class TestBusinessMetrics:
    """Counters cannot be reset, so tests assert on relative increments."""

    def test_proposal_and_transition_counters(self, engine, price_subject) -> None:
        proposals_before = _sample("bargaining_proposals_created_total", {"kind": "price"})
        counter_labels = {"kind": "price", "action": "counter", "status": "counter_offered"}
        transitions_before = _sample("bargaining_transitions_total", counter_labels)

        negotiation = engine.propose("cust_1", NegotiationKind.PRICE, price_subject, "400000")
        engine.propose("cust_1", NegotiationKind.PRICE, price_subject, "400000")
        engine.respond(
            negotiation.id,
            "art_1",
            ResponseAction.COUNTER,
            ResponsePayload(counter_value="420000"),  # type: ignore[arg-type]
        )

        assert _sample("bargaining_proposals_created_total", {"kind": "price"}) == (
            proposals_before + 1
        )
        assert _sample("bargaining_transitions_total", counter_labels) == transitions_before + 1

    def test_expiration_counters(self, engine, price_subject, clock) -> None:
        lazy_before = _sample("bargaining_expirations_total", {"source": "lazy"})
        sweep_before = _sample("bargaining_expirations_total", {"source": "sweep"})

        first = engine.propose("cust_1", NegotiationKind.PRICE, price_subject, "400000")
        engine.propose("cust_2", NegotiationKind.PRICE, price_subject, "400000")
        clock.advance(days=30)

        with pytest.raises(ExpiredError):
            engine.respond(first.id, "art_1", ResponseAction.ACCEPT)
        engine.sweep_expired()

        assert _sample("bargaining_expirations_total", {"source": "lazy"}) == lazy_before + 1
        assert _sample("bargaining_expirations_total", {"source": "sweep"}) == sweep_before + 1
