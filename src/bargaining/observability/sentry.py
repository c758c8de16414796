"""Sentry error reporting wired through structlog.

Provides:
- ``init_sentry(dsn, environment)``: Initialize the Sentry SDK.  No-op when *dsn* is empty.
- ``get_sentry_processor()``: Return a structlog processor that forwards
  ERROR-level log events (store failures, exhausted side-effect retries,
  sweeper errors) to Sentry.
"""

from __future__ import annotations

import logging

import sentry_sdk
import structlog
from sentry_sdk.integrations.logging import LoggingIntegration
from structlog_sentry import SentryProcessor


def init_sentry(dsn: str, environment: str = "development") -> bool:
    """Initialize the Sentry SDK for *environment*.

    When *dsn* is empty the function returns immediately -- no network calls,
    no SDK initialization.  Safe to call unconditionally at startup.

    Args:
        dsn: Sentry DSN string.  Empty string disables Sentry.
        environment: Deployment environment tag attached to every event.

    Returns:
        True if the SDK was initialized.
    """
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,
        traces_sample_rate=0.0,
        send_default_pii=False,
        integrations=[
            # structlog-sentry does the capturing; stdlib logging capture
            # would report every event twice.
            LoggingIntegration(event_level=None, level=None),
        ],
    )
    return True


def get_sentry_processor() -> structlog.types.Processor:
    """Return a structlog processor that forwards ERROR events to Sentry.

    Must sit **after** ``add_log_level`` and **before** the renderer in the
    processor chain.

    Returns:
        A ``SentryProcessor`` instance configured for ERROR-level capture,
        tagging events with the negotiation id when one is bound.
    """
    return SentryProcessor(event_level=logging.ERROR, tag_keys=["negotiation_id", "operation"])
