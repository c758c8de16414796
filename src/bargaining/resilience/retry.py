"""Retry decorators built on tenacity.

Two policies are offered:

- ``resilient_call`` for best-effort external calls (notifications, chat
  cards): retry 3 times with exponential backoff and jitter, log every retry
  and the final failure, then re-raise.
- ``retry_on_conflict`` for callers of ``NegotiationEngine.respond`` that
  want to re-read and retry after losing an optimistic race.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, TypeVar

import structlog
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
    wait_random,
)
from tenacity.wait import wait_base

from bargaining.domain.errors import ConflictError

logger = structlog.get_logger()

F = TypeVar("F", bound=Callable[..., Any])


def _final_failure_logger(call_name: str) -> Callable[[RetryCallState], None]:
    """Build a callback that logs exhaustion and re-raises the last error.

    Args:
        call_name: Name reported in the log event.
    """

    def log_final_failure(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.error(
            "call_failed_after_retries",
            call_name=call_name,
            attempts=retry_state.attempt_number,
            exception=str(exception),
        )
        if exception is not None:
            raise exception

    return log_final_failure


def _before_sleep_logger(call_name: str) -> Callable[[RetryCallState], None]:
    """Build a callback that logs a warning before each retry attempt.

    Args:
        call_name: Name reported in the log event.
    """

    def before_sleep_log(retry_state: RetryCallState) -> None:
        logger.warning(
            "retrying_call",
            call_name=call_name,
            attempt=retry_state.attempt_number,
            wait=retry_state.next_action.sleep if retry_state.next_action else 0,
        )

    return before_sleep_log


def resilient_call(
    call_name: str,
    attempts: int = 3,
    wait: wait_base | None = None,
) -> Callable[[F], F]:
    """Create a retry decorator for a best-effort external call.

    Returns a tenacity retry decorator configured with:
    - *attempts* attempts maximum (3 by default)
    - Exponential backoff with jitter (1s initial, 30s max, 5s jitter)
    - Warning log before each retry
    - Error log on final failure
    - Original exception re-raised after exhaustion

    Args:
        call_name: Human-readable name for the call (used in logs).
        attempts: Maximum number of attempts, including the first.
        wait: Optional tenacity wait strategy overriding the backoff.

    Returns:
        A decorator that wraps the function with retry logic.
    """
    return retry(  # type: ignore[return-value]
        stop=stop_after_attempt(attempts),
        wait=wait if wait is not None else wait_exponential_jitter(initial=1, max=30, jitter=5),
        before_sleep=_before_sleep_logger(call_name),
        retry_error_callback=_final_failure_logger(call_name),
        reraise=True,
    )


def retry_on_conflict(attempts: int = 3, wait: wait_base | None = None) -> Callable[[F], F]:
    """Retry the decorated function when it raises ``ConflictError``.

    Intended for a caller-side "re-read, re-decide, re-submit" loop around
    ``NegotiationEngine.respond``. The decorated function must re-read the
    negotiation on each call. Any other exception propagates immediately.

    Args:
        attempts: Maximum number of attempts, including the first.
        wait: Optional tenacity wait strategy. Defaults to a short random
            pause so concurrent losers do not collide again.

    Returns:
        A decorator that wraps the function with conflict-retry logic.
    """
    return retry(  # type: ignore[return-value]
        retry=retry_if_exception_type(ConflictError),
        stop=stop_after_attempt(attempts),
        wait=wait if wait is not None else wait_random(min=0, max=0.2),
        before_sleep=_before_sleep_logger("conflict_retry"),
        reraise=True,
    )
