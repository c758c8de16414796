"""Worker process entry point: expiry sweeper plus health and metrics endpoints.

Runs concurrently via ``asyncio.gather``:

- **ExpirySweeper** loop, moving past-deadline negotiations to EXPIRED
- **uvicorn** serving FastAPI ``/health``, ``/ready`` and ``/metrics``

Logging uses **structlog** with JSON rendering (production) or colored
console (development); ERROR events go to Sentry when a DSN is configured.

Usage::

    python -m bargaining.app
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI

from bargaining.config import Settings, get_settings, validate_startup
from bargaining.domain.clock import utc_now
from bargaining.health import register_health_routes
from bargaining.observability.log_config import configure_logging
from bargaining.observability.metrics import setup_metrics
from bargaining.observability.sentry import init_sentry
from bargaining.state.store import NegotiationStore
from bargaining.sweeper import ExpirySweeper

logger = structlog.get_logger()


def initialize_services(settings: Settings | None = None) -> dict[str, Any]:
    """Set up the shared services for the worker.

    Opens the negotiation store (creating the database directory and schema
    if needed) and an ``ExpirySweeper`` sharing the process clock.

    Args:
        settings: Application settings.  If ``None``, ``get_settings()`` is used.

    Returns:
        A dict of initialized service instances keyed by name.
    """
    if settings is None:
        settings = get_settings()

    services: dict[str, Any] = {"_settings": settings, "clock": utc_now}

    db_path = settings.database_path.expanduser()
    db_path.parent.mkdir(parents=True, exist_ok=True)
    store = NegotiationStore(db_path, timeout=settings.database_timeout_seconds)
    services["store"] = store
    logger.info("negotiation_store_opened", db_path=str(db_path))

    services["sweeper"] = ExpirySweeper(store, clock=services["clock"])
    services["sweep_interval_seconds"] = settings.sweep_interval_seconds

    return services


def close_services(services: dict[str, Any]) -> None:
    """Release resources held by *services*.  Safe to call twice."""
    store = services.pop("store", None)
    if store is not None:
        store.close()
        logger.info("negotiation_store_closed")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None]:
    """Lifespan context manager for FastAPI startup and shutdown.

    On shutdown: closes the negotiation store.

    Args:
        app: The FastAPI application instance.

    Yields:
        Control to the application.
    """
    logger.info("worker_http_starting")
    yield
    close_services(app.state.services)


def create_app(services: dict[str, Any]) -> FastAPI:
    """Create the FastAPI app with health checks and Prometheus metrics.

    Args:
        services: The initialized services dict from ``initialize_services``.

    Returns:
        The configured FastAPI application.
    """
    fastapi_app = FastAPI(title="Bargaining Engine Worker", lifespan=lifespan)
    fastapi_app.state.services = services
    fastapi_app.state.settings = services.get("_settings", get_settings())
    register_health_routes(fastapi_app)
    setup_metrics(fastapi_app)
    return fastapi_app


async def main() -> None:
    """Main entry point: run the sweeper and the health server concurrently.

    1. Initialize Sentry and configure logging
    2. Validate settings
    3. Initialize services
    4. Run uvicorn + sweeper loop with asyncio.gather
    5. Close the store on exit
    """
    settings = get_settings()
    sentry_enabled = init_sentry(
        settings.sentry_dsn.get_secret_value(),
        environment="production" if settings.production else "development",
    )
    configure_logging(production=settings.production, sentry_enabled=sentry_enabled)
    logger.info("worker_starting")

    validate_startup(settings)

    services = initialize_services(settings)
    fastapi_app = create_app(services)

    config = uvicorn.Config(
        fastapi_app,
        host="0.0.0.0",
        port=settings.health_port,
        log_level="info",
    )
    server = uvicorn.Server(config)

    try:
        await asyncio.gather(
            server.serve(),
            services["sweeper"].run_periodically(settings.sweep_interval_seconds),
        )
    finally:
        close_services(services)


def run() -> None:
    """Synchronous wrapper for the ``bargaining-worker`` console script."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
