from __future__ import annotations

import time
from typing import Callable, Optional, TypeVar

from marketo_archive.http.policies import RetryPolicy, backoff_delay_ms
from marketo_archive.utils.logging import get_logger

T = TypeVar("T")

RETRY_STATUSES = (429,)


def status_of(exc: BaseException) -> Optional[int]:
    """HTTP status carried by an exception, if any."""
    status = getattr(exc, "status_code", None)
    if status is None:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", None)
    try:
        return int(status) if status is not None else None
    except (TypeError, ValueError):
        return None


def is_retryable_error(exc: BaseException) -> bool:
    """
    Default transient-error heuristic.

    An explicit ``retryable`` attribute on the exception wins. Otherwise an
    error without an HTTP status (connection reset, timeout, DNS) is retried,
    as are 429 and 5xx responses. Any other status is final.
    """
    flag = getattr(exc, "retryable", None)
    if flag is not None:
        return bool(flag)

    status = status_of(exc)
    if status is None:
        return True
    return status in RETRY_STATUSES or 500 <= status < 600


class RetryExecutor:
    """Runs an operation with bounded retries and exponential backoff."""

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        should_retry: Callable[[BaseException], bool] = is_retryable_error,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.policy = policy or RetryPolicy()
        self.should_retry = should_retry
        self._sleep = sleep
        self.log = get_logger("marketo_archive.retry")

    def execute(self, operation: Callable[[], T], context: str = "Operation") -> T:
        """
        Call `operation` until it succeeds or the policy is exhausted.

        The last error is re-raised unchanged, so callers see the original
        failure type.
        """
        max_attempts = self.policy.max_attempts

        for attempt in range(1, max_attempts + 1):
            try:
                return operation()
            except Exception as e:
                if not self.should_retry(e):
                    # Final by classification (404 lookups, auth, validation); the caller decides severity.
                    self.log.debug("%s not retried: %s: %s", context, type(e).__name__, e)
                    raise
                if attempt >= max_attempts:
                    self.log.error(
                        "%s failed after %s attempt(s): %s: %s",
                        context,
                        attempt,
                        type(e).__name__,
                        e,
                    )
                    raise

                delay_ms = backoff_delay_ms(self.policy, attempt)
                self.log.warning(
                    "%s failed (attempt %s/%s), retrying in %sms: %s",
                    context,
                    attempt,
                    max_attempts,
                    int(delay_ms),
                    e,
                )
                self._sleep(delay_ms / 1000.0)

        # Should never hit
        raise RuntimeError(f"{context} exhausted retries unexpectedly")
