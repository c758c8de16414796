"""Prometheus metrics instrumentation for the bargaining engine.

Provides:
- ``setup_metrics(app)``: Attach prometheus-fastapi-instrumentator to a FastAPI app,
  exposing ``/metrics`` with HTTP request duration/count plus the business
  metrics below.
- ``PROPOSALS_CREATED``: Counter of negotiations opened, by kind.
- ``TRANSITIONS``: Counter of committed responses, by kind, action and outcome status.
- ``EXPIRATIONS``: Counter of negotiations expired, by source (lazy or sweep).
- ``CONFLICTS``: Counter of optimistic transitions lost to a concurrent writer.
- ``LAST_SWEEP_TIMESTAMP``: Gauge holding the Unix time of the last successful sweep.

Business metrics are updated where the change commits (not by polling the database).
"""

from __future__ import annotations

from fastapi import FastAPI
from prometheus_client import Counter, Gauge
from prometheus_fastapi_instrumentator import Instrumentator

PROPOSALS_CREATED: Counter = Counter(
    "bargaining_proposals_created_total",
    "Total number of negotiations opened",
    ["kind"],
)

TRANSITIONS: Counter = Counter(
    "bargaining_transitions_total",
    "Total number of committed negotiation responses",
    ["kind", "action", "status"],
)

EXPIRATIONS: Counter = Counter(
    "bargaining_expirations_total",
    "Total number of negotiations moved to EXPIRED",
    ["source"],
)

CONFLICTS: Counter = Counter(
    "bargaining_transition_conflicts_total",
    "Total number of transitions rejected because the negotiation changed concurrently",
)

LAST_SWEEP_TIMESTAMP: Gauge = Gauge(
    "bargaining_last_sweep_timestamp_seconds",
    "Unix time of the last successful expiry sweep",
)


def setup_metrics(app: FastAPI) -> None:
    """Instrument *app* with Prometheus HTTP metrics and expose ``/metrics``.

    Excludes health/ready/metrics endpoints from instrumentation to avoid
    noise in dashboards.

    Args:
        app: The FastAPI application to instrument.
    """
    Instrumentator(
        should_group_status_codes=True,
        should_ignore_untemplated=True,
        excluded_handlers=["/health", "/ready", "/metrics"],
    ).instrument(app).expose(app, include_in_schema=False, should_gzip=True)
