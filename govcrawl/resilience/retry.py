"""Retry policy with exponential backoff and error classification.

This module provides the RetryPolicy used by the fetch executor. It decides how
many attempts a fetch gets, how long to back off between them, and which
failures are worth retrying at all.

Example:
    Default policy (3 retries, 1s base, doubling, 30s cap):
        >>> policy = RetryPolicy()
        >>> [policy.get_delay(n) for n in (1, 2, 3)]
        [1.0, 2.0, 4.0]

    Classifying errors:
        >>> policy.is_retryable(NavigationTimeoutError("Navigation timeout of 30000 ms"))
        True
        >>> policy.is_retryable(HttpError(404))
        False
"""

import random
from collections.abc import Iterable

from govcrawl.core.config import (
    DEFAULT_NON_RETRYABLE_STATUS_CODES,
    DEFAULT_RETRYABLE_ERRORS,
    Settings,
)
from govcrawl.core.errors import HttpError


class RetryPolicy:
    """Configurable retry policy with exponential backoff.

    Attributes:
        max_retries: Retries after the first attempt (attempts = max_retries + 1)
        base_delay: Delay before the first retry in seconds
        backoff_multiplier: Factor applied per additional retry
        max_delay: Upper bound for a single delay in seconds
        retryable_errors: Lower-case substrings marking an error as transient
        non_retryable_status_codes: HTTP statuses never retried
        jitter: Fraction of the delay added as random jitter (0 disables)
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        backoff_multiplier: float = 2.0,
        max_delay: float = 30.0,
        retryable_errors: Iterable[str] = DEFAULT_RETRYABLE_ERRORS,
        non_retryable_status_codes: Iterable[int] = DEFAULT_NON_RETRYABLE_STATUS_CODES,
        jitter: float = 0.0,
    ) -> None:
        """Initialize retry policy.

        Raises:
            ValueError: If max_retries is negative
        """
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")

        self.max_retries = max_retries
        self.base_delay = base_delay
        self.backoff_multiplier = backoff_multiplier
        self.max_delay = max_delay
        self.retryable_errors = tuple(e.lower() for e in retryable_errors)
        self.non_retryable_status_codes = frozenset(non_retryable_status_codes)
        self.jitter = jitter

    @classmethod
    def from_settings(cls, settings: Settings, max_retries: int = 3) -> "RetryPolicy":
        """Build a policy from Settings backoff values."""
        return cls(
            max_retries=max_retries,
            base_delay=settings.retry_base_delay,
            backoff_multiplier=settings.backoff_multiplier,
            max_delay=settings.max_retry_delay,
        )

    def with_max_retries(self, max_retries: int) -> "RetryPolicy":
        """Return a copy of this policy with a different retry budget."""
        return RetryPolicy(
            max_retries=max_retries,
            base_delay=self.base_delay,
            backoff_multiplier=self.backoff_multiplier,
            max_delay=self.max_delay,
            retryable_errors=self.retryable_errors,
            non_retryable_status_codes=self.non_retryable_status_codes,
            jitter=self.jitter,
        )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def get_delay(self, attempt: int) -> float:
        """Calculate the backoff after a failed attempt.

        Args:
            attempt: Number of the attempt that just failed (1-indexed)

        Returns:
            min(base_delay * backoff_multiplier ** (attempt - 1), max_delay),
            plus jitter when configured
        """
        delay = min(
            self.base_delay * self.backoff_multiplier ** max(attempt - 1, 0),
            self.max_delay,
        )
        if self.jitter:
            delay += random.uniform(0, delay * self.jitter)
        return delay

    def is_retryable(self, error: BaseException) -> bool:
        """Decide whether error is transient.

        HTTP errors retry only for 5xx statuses outside the non-retryable set.
        Any other error retries when "<ClassName>: <message>" (lower-cased)
        contains one of the configured substrings.

        Args:
            error: Exception raised by an attempt

        Returns:
            True if another attempt may succeed
        """
        if isinstance(error, HttpError):
            return (
                error.status >= 500
                and error.status not in self.non_retryable_status_codes
            )

        description = f"{type(error).__name__}: {error}".lower()
        return any(fragment in description for fragment in self.retryable_errors)
