"""Tests for structlog configuration."""

from __future__ import annotations

import json

import pytest
import structlog

from bargaining.observability.log_config import configure_logging


@pytest.fixture(autouse=True)
def _reset_structlog():
    yield
    structlog.reset_defaults()
    structlog.contextvars.clear_contextvars()


def test_production_renders_json(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(production=True)

    structlog.get_logger().info("negotiation_proposed", negotiation_id="neg_1")

    line = capsys.readouterr().out.strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload["event"] == "negotiation_proposed"
    assert payload["negotiation_id"] == "neg_1"
    assert payload["service"] == "bargaining-engine"
    assert payload["level"] == "info"
    assert "timestamp" in payload


def test_production_drops_debug(capsys: pytest.CaptureFixture[str]) -> None:
    configure_logging(production=True)

    structlog.get_logger().debug("lazy_expiry_superseded")

    assert capsys.readouterr().out == ""


def test_sentry_processor_in_chain() -> None:
    configure_logging(production=True, sentry_enabled=True)

    names = [type(p).__name__ for p in structlog.get_config()["processors"]]
    assert "SentryProcessor" in names
