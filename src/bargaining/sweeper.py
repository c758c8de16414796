"""Periodic expiry of open negotiations past their deadline.

The sweeper's only write is one conditional UPDATE, so any number of
instances may run it concurrently and a repeated sweep is a no-op.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import structlog

from bargaining.domain.clock import Clock, utc_now
from bargaining.domain.errors import StoreError
from bargaining.observability.metrics import EXPIRATIONS, LAST_SWEEP_TIMESTAMP
from bargaining.state.store import NegotiationStore

logger = structlog.get_logger()

DEFAULT_INTERVAL_SECONDS = 3600

# Proposal quota counters are only consulted for the current UTC day.
QUOTA_RETENTION = timedelta(days=2)


class ExpirySweeper:
    """Move every open, past-deadline negotiation to EXPIRED.

    Args:
        store: The negotiation store.
        clock: The same clock the engine uses, so a lazily expired read and
            a sweep agree on "now".
    """

    def __init__(self, store: NegotiationStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._last_success_at: datetime | None = None

    @property
    def last_success_at(self) -> datetime | None:
        """When the last sweep completed, or None if none has yet."""
        return self._last_success_at

    def run(self) -> int:
        """Sweep once.

        Storage failures are logged and swallowed so the next tick can try
        again.

        Returns:
            The number of negotiations expired, 0 on failure.
        """
        now = self._clock()
        try:
            count = self._store.sweep_expired(now)
            self._store.prune_quota(now - QUOTA_RETENTION)
        except StoreError:
            logger.exception("expiry_sweep_failed")
            return 0

        self._last_success_at = now
        LAST_SWEEP_TIMESTAMP.set(now.timestamp())
        if count:
            EXPIRATIONS.labels(source="sweep").inc(count)
        logger.info("expiry_sweep_completed", expired=count)
        return count

    async def run_periodically(self, interval_seconds: float = DEFAULT_INTERVAL_SECONDS) -> None:
        """Sweep immediately, then every *interval_seconds*, until cancelled.

        Each sweep runs in a worker thread so the event loop stays free for
        health checks.

        Args:
            interval_seconds: Pause between sweeps.
        """
        logger.info("expiry_sweeper_started", interval_seconds=interval_seconds)
        while True:
            await asyncio.to_thread(self.run)
            await asyncio.sleep(interval_seconds)
