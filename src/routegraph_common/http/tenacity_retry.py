"""Tenacity-based retry strategy implementation.

:class:`TenacityRetryStrategy` turns a :class:`RetryPolicyDoc` into a
``tenacity.Retrying`` object: exceptions are retried when their class name is
listed in the policy or when they carry a retryable HTTP status, waits follow
exponential backoff with jitter unless the server sent ``Retry-After``.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from dataclasses import dataclass

from tenacity import (
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    stop_after_delay,
)
from tenacity.wait import wait_base

from routegraph_common.http.errors import HttpStatusError
from routegraph_common.http.policy import RetryPolicyDoc
from routegraph_common.http.types import RetryStrategy
from routegraph_common.logging import get_logger

logger = get_logger(__name__)

_rng = random.Random()  # noqa: S311


@dataclass(frozen=True)
class WaitRetryAfterOrJitter(wait_base):
    """Wait strategy that respects Retry-After headers or uses exponential backoff with jitter.

    Attributes
    ----------
    initial : float
        Initial wait time in seconds.
    max_s : float
        Maximum wait time in seconds.
    jitter : float
        Jitter fraction (0.0 to 1.0).
    base : float
        Base multiplier for exponential backoff.
    respect_retry_after : bool
        Whether to respect Retry-After headers.
    """

    initial: float
    max_s: float
    jitter: float
    base: float
    respect_retry_after: bool

    def __call__(self, retry_state: object) -> float:
        """Return the number of seconds to sleep before the next attempt."""
        attempt = getattr(retry_state, "attempt_number", 1)
        sleep = None
        if self.respect_retry_after:
            outcome = getattr(retry_state, "outcome", None)
            exc = outcome.exception() if outcome else None
            if isinstance(exc, HttpStatusError):
                ra = _parse_retry_after(exc.headers.get("Retry-After"))
                if ra is not None:
                    sleep = min(ra, self.max_s)
        if sleep is None:
            base = min(self.max_s, self.initial * (self.base ** (attempt - 1)))
            jitter_amount = base * self.jitter
            sleep = max(0.0, base - jitter_amount + _rng.random() * (2 * jitter_amount))
        return sleep


def _parse_retry_after(s: str | None) -> float | None:
    if not s:
        return None
    try:
        return float(s)
    except (ValueError, TypeError):
        return None


def _status_in_sets(status: int, sets: tuple[tuple[int, int] | int, ...]) -> bool:
    for x in sets:
        if isinstance(x, int) and status == x:
            return True
        if isinstance(x, tuple) and x[0] <= status <= x[1]:
            return True
    return False


def _should_retry_exception(method: str, policy: RetryPolicyDoc) -> Callable[[BaseException], bool]:
    """Create the retry predicate for ``method`` under ``policy``.

    Returns
    -------
    Callable[[BaseException], bool]
        Predicate returning True if the exception should be retried.
    """
    allowed_methods = set(policy.methods)
    retry_exc_names = set(policy.retry_exceptions)
    give_up = set(policy.give_up_status)
    status_sets = policy.retry_status

    def _pred(e: BaseException) -> bool:
        if method.upper() not in allowed_methods:
            return False
        if e.__class__.__name__ in retry_exc_names:
            return True
        if isinstance(e, HttpStatusError):
            if e.status in give_up:
                return False
            return _status_in_sets(e.status, status_sets)
        return False

    return _pred


def _log_retry(retry_state: object) -> None:
    outcome = getattr(retry_state, "outcome", None)
    exc = outcome.exception() if outcome else None
    logger.warning(
        "Retrying HTTP request after failure",
        extra={
            "operation": "http_retry",
            "attempt": getattr(retry_state, "attempt_number", 0),
            "error_type": type(exc).__name__ if exc else None,
        },
    )


@dataclass(frozen=True)
class _MethodStrategy(RetryStrategy[object]):
    """Retry strategy bound to one HTTP method."""

    retrying: Retrying

    def run(self, fn: Callable[[], object]) -> object:
        """Execute ``fn`` under the bound ``Retrying`` instance."""
        return self.retrying(fn)


class TenacityRetryStrategy(RetryStrategy[object]):
    """Retry strategy implementation using tenacity library.

    Parameters
    ----------
    policy : RetryPolicyDoc
        Retry policy configuration.
    sleep : Callable[[float], None], optional
        Sleep function used between attempts. Defaults to :func:`time.sleep`.
    """

    def __init__(
        self, policy: RetryPolicyDoc, sleep: Callable[[float], None] = time.sleep
    ) -> None:
        self.policy = policy
        self._sleep = sleep

    def run(self, fn: Callable[[], object]) -> object:
        """Execute ``fn`` with retries, treating it as a GET request.

        The final exception propagates once the policy gives up.
        """
        return self.for_method("GET").run(fn)

    def for_method(self, method: str) -> RetryStrategy[object]:
        """Create a retry strategy specialised for ``method``."""
        return _MethodStrategy(self._build_retrying(method))

    def _build_retrying(self, method: str) -> Retrying:
        predicate = retry_if_exception(_should_retry_exception(method=method, policy=self.policy))
        stopper = stop_after_attempt(self.policy.stop_after_attempt)
        if self.policy.stop_after_delay_s:
            stopper |= stop_after_delay(self.policy.stop_after_delay_s)
        waiter = WaitRetryAfterOrJitter(
            initial=self.policy.wait_initial_s,
            max_s=self.policy.wait_max_s,
            jitter=self.policy.wait_jitter,
            base=self.policy.wait_base,
            respect_retry_after=self.policy.respect_retry_after,
        )
        return Retrying(
            retry=predicate,
            stop=stopper,
            wait=waiter,
            sleep=self._sleep,
            before_sleep=_log_retry,
            reraise=True,
        )
