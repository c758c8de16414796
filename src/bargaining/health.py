"""Health and readiness endpoints for container orchestration.

Provides two top-level routes:

- ``GET /health`` -- Liveness check.  Returns 200 if the process is alive.
- ``GET /ready``  -- Readiness check.  Returns 200 only when the negotiation
  store answers queries **and** the expiry sweeper has completed a sweep
  within the last two intervals.  Returns 503 with per-check details
  otherwise.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bargaining.domain.clock import utc_now

# A sweep older than this many intervals marks the worker not ready.
STALE_SWEEP_INTERVALS = 2


def register_health_routes(app: FastAPI) -> None:
    """Register ``/health`` and ``/ready`` endpoints on *app*.

    Args:
        app: The FastAPI application instance.  ``app.state.services`` must
            hold ``store``, ``sweeper`` and ``sweep_interval_seconds``.
    """

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness check -- always returns 200 if the process is running."""
        return {"status": "healthy"}

    @app.get("/ready")
    async def ready(request: Request) -> JSONResponse:
        """Readiness check -- verifies the store and sweeper freshness."""
        services: dict[str, Any] = request.app.state.services
        checks: dict[str, str] = {}

        # Check 1: negotiation store reachable
        store = services.get("store")
        if store is not None and await asyncio.to_thread(store.ping):
            checks["store"] = "ok"
        else:
            checks["store"] = "fail"

        # Check 2: sweeper ran recently
        sweeper = services.get("sweeper")
        last_sweep = sweeper.last_success_at if sweeper is not None else None
        interval = services.get("sweep_interval_seconds", 3600)
        clock = services.get("clock", utc_now)
        max_age = timedelta(seconds=interval * STALE_SWEEP_INTERVALS)
        if last_sweep is not None and clock() - last_sweep <= max_age:
            checks["sweeper"] = "ok"
        else:
            checks["sweeper"] = "fail"

        all_ok = all(v == "ok" for v in checks.values())
        status = "ready" if all_ok else "not_ready"
        code = 200 if all_ok else 503

        return JSONResponse(content={"status": status, "checks": checks}, status_code=code)
