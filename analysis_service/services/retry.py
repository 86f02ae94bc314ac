# analysis_service/services/retry.py
import asyncio
from typing import Awaitable, Callable, Optional, Union

import structlog
from tenacity import AsyncRetrying, RetryCallState, retry_if_not_exception_type, stop_after_attempt, wait_exponential

from analysis_service.core.config import settings
from analysis_service.domain.exceptions import ConfigurationError, TokenRejectedError

log = structlog.get_logger(__name__)

SleepFn = Callable[[Union[int, float]], Awaitable[None]]


class _BackoffUnlessTokenRejected:
    """Exponential backoff (base * 2**(attempt-1)); a rejected token retries at once with a fresh one."""

    def __init__(self, base_seconds: float):
        self._exponential = wait_exponential(multiplier=base_seconds, exp_base=2, min=0)

    def __call__(self, retry_state: RetryCallState) -> float:
        if retry_state.outcome is not None and isinstance(retry_state.outcome.exception(), TokenRejectedError):
            return 0.0
        return self._exponential(retry_state)


def component_retrying(
    operation: str,
    max_attempts: Optional[int] = None,
    backoff_seconds: Optional[float] = None,
    sleep: Optional[SleepFn] = None,
) -> AsyncRetrying:
    """
    Bounded retry policy shared by the embedding, vector search and text search calls.

    The last error is re-raised once attempts run out. Configuration errors are never retried.
    """
    attempts = max_attempts if max_attempts is not None else settings.SEARCH_MAX_RETRIES
    base = backoff_seconds if backoff_seconds is not None else settings.RETRY_BACKOFF_SECONDS

    def _log_before_sleep(retry_state: RetryCallState) -> None:
        log.warning(
            f"Retrying {operation}",
            attempt_number=retry_state.attempt_number,
            max_attempts=attempts,
            wait_time=retry_state.next_action.sleep if retry_state.next_action else None,
            error=str(retry_state.outcome.exception()) if retry_state.outcome else "Unknown error",
        )

    return AsyncRetrying(
        stop=stop_after_attempt(attempts),
        wait=_BackoffUnlessTokenRejected(base),
        retry=retry_if_not_exception_type(ConfigurationError),
        before_sleep=_log_before_sleep,
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )
