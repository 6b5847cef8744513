"""Retry scheduling policies.

A policy decides when a failed action becomes eligible again. It never
changes *whether* an action is retried; that is bounded by the action's
``max_retries``.

FIXED       : retry on the very next pass (no delay).
EXPONENTIAL : wait ``base * 2 ** (attempt - 1)`` seconds, capped, plus jitter.
"""
from __future__ import annotations

import datetime
import random
from enum import Enum


class BackoffStrategy(str, Enum):
    """Named retry scheduling strategies."""

    FIXED = "fixed"
    EXPONENTIAL = "exponential"


class RetryPolicy:
    """Protocol-like base for retry scheduling."""

    def next_attempt_at(
        self, failed_attempts: int, now: datetime.datetime
    ) -> datetime.datetime | None:
        """Return the earliest next attempt time, or None for "next pass".

        Parameters
        ----------
        failed_attempts:
            ``retry_count`` after the failure being scheduled (>= 1).
        now:
            Time of the failure.
        """
        raise NotImplementedError


class FixedRetryPolicy(RetryPolicy):
    """Retry on the next pass without delay."""

    def next_attempt_at(
        self, failed_attempts: int, now: datetime.datetime
    ) -> datetime.datetime | None:
        return None


class ExponentialBackoffPolicy(RetryPolicy):
    """Exponential backoff with proportional jitter.

    Parameters
    ----------
    base_seconds:
        Delay after the first failure.
    max_seconds:
        Upper bound on the delay before jitter.
    jitter:
        Fraction (0-1) of the delay added at random on top of it.
    rng:
        Random source, injectable for deterministic tests.
    """

    def __init__(
        self,
        base_seconds: float = 5.0,
        max_seconds: float = 300.0,
        jitter: float = 0.1,
        rng: random.Random | None = None,
    ) -> None:
        if base_seconds <= 0:
            raise ValueError(f"base_seconds must be > 0, got {base_seconds}")
        if max_seconds < base_seconds:
            raise ValueError("max_seconds must be >= base_seconds")
        if not 0.0 <= jitter <= 1.0:
            raise ValueError(f"jitter must be within [0, 1], got {jitter}")
        self._base = base_seconds
        self._max = max_seconds
        self._jitter = jitter
        self._rng = rng or random.Random()

    def delay_seconds(self, failed_attempts: int) -> float:
        """Return the delay before attempt ``failed_attempts + 1``."""
        exponent = max(failed_attempts - 1, 0)
        delay = min(self._max, self._base * (2 ** exponent))
        return delay + self._rng.uniform(0.0, delay * self._jitter)

    def next_attempt_at(
        self, failed_attempts: int, now: datetime.datetime
    ) -> datetime.datetime | None:
        return now + datetime.timedelta(seconds=self.delay_seconds(failed_attempts))


def build_retry_policy(
    strategy: BackoffStrategy | str,
    base_seconds: float = 5.0,
    max_seconds: float = 300.0,
    jitter: float = 0.1,
) -> RetryPolicy:
    """Return the :class:`RetryPolicy` for a named *strategy*."""
    strategy = BackoffStrategy(strategy)
    if strategy == BackoffStrategy.EXPONENTIAL:
        return ExponentialBackoffPolicy(base_seconds, max_seconds, jitter)
    return FixedRetryPolicy()


__all__ = [
    "BackoffStrategy",
    "ExponentialBackoffPolicy",
    "FixedRetryPolicy",
    "RetryPolicy",
    "build_retry_policy",
]
