"""Retry strategy protocol shared by the HTTP client and its callers."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol


class RetryStrategy[T](Protocol):
    """Protocol for retry strategies.

    Implementations execute a callable according to a configured policy and
    re-raise the final error once retries are exhausted.
    """

    def run(self, fn: Callable[[], T]) -> T:
        """Execute ``fn`` with retries per configured policy; re-raise final error."""
        ...
