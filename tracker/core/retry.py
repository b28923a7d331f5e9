"""Bounded exponential-backoff retry for rate-limited external calls."""

import logging
import time
from collections.abc import Callable
from typing import TypeVar

import groq
from tenacity import Retrying, before_sleep_log, retry_if_exception, stop_after_attempt, wait_exponential

from tracker.core.utils import get_logger

HTTP_TOO_MANY_REQUESTS = 429

logger = get_logger("card-tracker.retry")

T = TypeVar("T")


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True if the error signals that the remote API is throttling us."""
    if isinstance(exc, groq.RateLimitError):
        return True
    return getattr(exc, "status_code", None) == HTTP_TOO_MANY_REQUESTS


def with_rate_limit_retry(
    fn: Callable[[], T],
    max_attempts: int = 5,
    base_delay: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call `fn`, retrying rate-limit failures with delays of base_delay * 2**(attempt - 1).

    Any other error propagates on the first occurrence. Once `max_attempts` calls have been
    rate limited the last rate-limit error is raised.
    """
    if max_attempts < 1:
        msg = f"max_attempts must be positive, got {max_attempts}"
        raise ValueError(msg)
    retrying = Retrying(
        retry=retry_if_exception(is_rate_limit_error),
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=base_delay),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        sleep=sleep,
        reraise=True,
    )
    return retrying(fn)
