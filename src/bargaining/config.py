"""Centralized, typed configuration using pydantic-settings.

Provides a single ``Settings`` class backed by ``.env`` file and environment
variables, a cached ``get_settings()`` accessor, and a ``validate_startup()``
gate that refuses inconsistent settings in production mode.

IMPORTANT: This module has ZERO imports from the ``bargaining`` package to
prevent circular imports.  Only stdlib, pydantic, pydantic_settings, and
structlog are used.
"""

from __future__ import annotations

import sys
from decimal import Decimal
from functools import lru_cache
from pathlib import Path

import structlog
from pydantic import Field, SecretStr, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = structlog.get_logger()


class Settings(BaseSettings):
    """Application settings loaded from environment variables and ``.env`` file.

    Every variable is prefixed with ``BARGAINING_`` (e.g.
    ``BARGAINING_DATABASE_PATH``).  ``SecretStr`` fields prevent accidental
    leaks in logs or error output.
    """

    model_config = SettingsConfigDict(
        env_prefix="BARGAINING_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- General ---------------------------------------------------------------
    production: bool = False
    health_port: int = 8000

    # -- Storage ---------------------------------------------------------------
    database_path: Path = Path("data/negotiations.db")
    database_timeout_seconds: float = 5.0

    # -- Expiry sweeper --------------------------------------------------------
    sweep_interval_seconds: int = Field(default=3600, gt=0)

    # -- Observability (secrets) -----------------------------------------------
    sentry_dsn: SecretStr = SecretStr("")

    # -- Price negotiation rules -----------------------------------------------
    price_floor_ratio: Decimal = Decimal("0.3")
    price_default_expiry_days: int = 3
    price_min_expiry_days: int = 1
    price_max_expiry_days: int = 7
    price_allow_initiator_counter: bool = False

    # -- Custom order rules ----------------------------------------------------
    custom_order_default_expiry_days: int = 7
    custom_order_min_expiry_days: int = 1
    custom_order_max_expiry_days: int = 30
    custom_order_allow_initiator_counter: bool = True

    # -- Limits ----------------------------------------------------------------
    daily_proposal_limit: int = Field(default=20, ge=0)
    notification_retry_attempts: int = Field(default=3, ge=1)
    notification_workers: int = Field(default=4, ge=1)

    @field_validator("price_floor_ratio", mode="before")
    @classmethod
    def parse_ratio(cls, v: object) -> object:
        """Accept ratios written as floats in ``.env`` files without binary noise."""
        if isinstance(v, float):
            return Decimal(str(v))
        return v


@lru_cache
def get_settings() -> Settings:
    """Return a cached ``Settings`` instance.

    The ``@lru_cache`` decorator ensures environment variables are parsed
    exactly once.  Call ``get_settings.cache_clear()`` in tests to reset.

    Returns:
        The application ``Settings``.
    """
    try:
        return Settings()
    except ValidationError as exc:
        # Log only the structured errors list -- never the full exception
        # which may contain raw SecretStr values.
        logger.error("settings_validation_failed", errors=exc.errors())
        sys.exit(1)


def _expiry_errors(prefix: str, default: int, minimum: int, maximum: int) -> list[str]:
    errors: list[str] = []
    if minimum < 1:
        errors.append(f"{prefix}_min_expiry_days must be at least 1, got {minimum}")
    if not (minimum <= default <= maximum):
        errors.append(
            f"{prefix}_default_expiry_days ({default}) must lie within "
            f"[{minimum}, {maximum}]"
        )
    return errors


def validate_startup(settings: Settings) -> None:
    """Enforce consistent settings at startup.

    In **production** mode (``settings.production is True``), the process
    exits with a clear error block if any check fails.

    In **development** mode, each problem is logged as a warning but the
    process continues to start.

    Args:
        settings: The loaded application settings.
    """
    errors: list[str] = []

    if not (Decimal("0") < settings.price_floor_ratio <= Decimal("1")):
        errors.append(f"price_floor_ratio must be in (0, 1], got {settings.price_floor_ratio}")

    errors.extend(
        _expiry_errors(
            "price",
            settings.price_default_expiry_days,
            settings.price_min_expiry_days,
            settings.price_max_expiry_days,
        )
    )
    errors.extend(
        _expiry_errors(
            "custom_order",
            settings.custom_order_default_expiry_days,
            settings.custom_order_min_expiry_days,
            settings.custom_order_max_expiry_days,
        )
    )

    db_dir = settings.database_path.expanduser().parent
    if not db_dir.exists():
        errors.append(f"Database directory not found: {db_dir}")

    if settings.production and not settings.sentry_dsn.get_secret_value():
        errors.append("BARGAINING_SENTRY_DSN is empty or not set")

    if not errors:
        logger.info("startup_validation_passed")
        return

    if settings.production:
        for err in errors:
            logger.error("startup_check_failed", detail=err)
        print("\n=== STARTUP FAILED ===", file=sys.stderr)
        print("Invalid settings for production mode:", file=sys.stderr)
        for err in errors:
            print(f"  - {err}", file=sys.stderr)
        print("======================\n", file=sys.stderr)
        sys.exit(1)
    else:
        for err in errors:
            logger.warning("startup_check_failed_dev", detail=err)
