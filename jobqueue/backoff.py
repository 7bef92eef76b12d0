"""Retry delay calculation."""

import random
from collections.abc import Callable
from typing import Optional

from jobqueue.config import DEFAULT_BACKOFF_BASE_SECONDS, DEFAULT_MAX_RETRY_ATTEMPTS

# Returned instead of a delay once the retry ceiling is passed
NO_RETRY = None

JITTER_RATIO = 0.1


class BackoffCalculator:
    """Exponential backoff with jitter and a hard retry ceiling."""

    def __init__(
        self,
        base_delay_seconds: float = DEFAULT_BACKOFF_BASE_SECONDS,
        max_attempts: int = DEFAULT_MAX_RETRY_ATTEMPTS,
        jitter: Optional[Callable[[], float]] = None,
    ):
        """
        Args:
            base_delay_seconds: Delay before the first retry, without jitter
            max_attempts: Highest attempt number a retry may be scheduled for
            jitter: Source of uniform values in [0, 1); defaults to random.random
        """
        self.base_delay_seconds = base_delay_seconds
        self.max_attempts = max_attempts
        self._jitter = jitter or random.random

    def base_delay_for_attempt(self, attempt: int) -> float:
        """Deterministic part of the delay: base * 2^(attempt-1)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return self.base_delay_seconds * (2 ** (attempt - 1))

    def delay_for_attempt(self, attempt: int) -> Optional[float]:
        """
        Calculate the delay in seconds before running the given attempt.

        Args:
            attempt: The attempt number about to be scheduled (1-indexed)

        Returns:
            Delay in seconds, or NO_RETRY when attempt exceeds the ceiling
        """
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        if attempt > self.max_attempts:
            return NO_RETRY

        delay = self.base_delay_for_attempt(attempt)
        return delay + self._jitter() * (delay * JITTER_RATIO)
