"""Tests for the rate-limit retry wrapper."""

import pytest

from tracker.core.retry import is_rate_limit_error, with_rate_limit_retry


class ThrottledError(Exception):
    """An HTTP error carrying a status code, as raised by most API clients."""

    def __init__(self, status_code: int) -> None:
        """Record the status code."""
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code


def scripted(*outcomes: object) -> tuple[list[int], object]:
    """Return a call log and a callable that raises or returns each outcome in turn."""
    calls: list[int] = []
    remaining = list(outcomes)

    def fn() -> object:
        calls.append(len(calls) + 1)
        outcome = remaining.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    return calls, fn


def test_status_code_429_counts_as_rate_limit() -> None:
    """Any error with status_code 429 is treated as throttling; other statuses are not."""
    if not is_rate_limit_error(ThrottledError(429)):
        msg = "Expected status 429 to be a rate limit"
        raise AssertionError(msg)
    if is_rate_limit_error(ThrottledError(500)) or is_rate_limit_error(ValueError("429")):
        msg = "Expected only a 429 status to be a rate limit"
        raise AssertionError(msg)


def test_rate_limits_are_retried_with_doubling_delays() -> None:
    """Throttled calls are repeated with delays of base, 2*base, 4*base until one succeeds."""
    sleeps: list[float] = []
    calls, fn = scripted(ThrottledError(429), ThrottledError(429), ThrottledError(429), "done")
    result = with_rate_limit_retry(fn, max_attempts=5, base_delay=2.0, sleep=sleeps.append)
    if result != "done" or len(calls) != 4:  # noqa: PLR2004
        msg = f"Expected success on the fourth call, got {result} after {len(calls)} calls"
        raise AssertionError(msg)
    if sleeps != [2.0, 4.0, 8.0]:
        msg = f"Expected delays [2.0, 4.0, 8.0], got {sleeps}"
        raise AssertionError(msg)


def test_last_rate_limit_error_is_raised_when_attempts_run_out() -> None:
    """After max_attempts throttled calls the final error itself propagates."""
    last = ThrottledError(429)
    sleeps: list[float] = []
    calls, fn = scripted(ThrottledError(429), last, "never reached")
    with pytest.raises(ThrottledError) as excinfo:
        with_rate_limit_retry(fn, max_attempts=2, base_delay=1.0, sleep=sleeps.append)
    if excinfo.value is not last:
        msg = "Expected the last rate-limit error to be raised unchanged"
        raise AssertionError(msg)
    if len(calls) != 2 or sleeps != [1.0]:  # noqa: PLR2004
        msg = f"Expected 2 calls and one sleep, got {len(calls)} calls and {sleeps}"
        raise AssertionError(msg)


def test_other_errors_are_not_retried() -> None:
    """A non-throttling failure propagates from the first call without sleeping."""
    sleeps: list[float] = []
    calls, fn = scripted(ThrottledError(503), "never reached")
    with pytest.raises(ThrottledError, match="HTTP 503"):
        with_rate_limit_retry(fn, max_attempts=5, base_delay=1.0, sleep=sleeps.append)
    if len(calls) != 1 or sleeps:
        msg = f"Expected one call and no sleeps, got {len(calls)} calls and {sleeps}"
        raise AssertionError(msg)


def test_attempts_must_be_positive() -> None:
    """Zero attempts is a configuration error."""
    with pytest.raises(ValueError, match="max_attempts"):
        with_rate_limit_retry(lambda: "ok", max_attempts=0)
