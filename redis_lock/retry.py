"""Retry strategies for the retrying lock acquisition.

A strategy is asked after every failed attempt how long to wait before the
next one. ``attempt`` counts failed attempts so far, starting at 1, and the
answer depends on nothing else, so one instance can be shared by any number
of concurrent callers.
"""
from __future__ import annotations

import abc
import random
from dataclasses import dataclass
from typing import Optional


class RetryStrategy(abc.ABC):
    @abc.abstractmethod
    def next_interval(self, attempt: int) -> Optional[float]:
        """Seconds to wait before retrying, or None to give up."""
        raise NotImplementedError

    def _exhausted(self, attempt: int, max_retries: Optional[int]) -> bool:
        return max_retries is not None and attempt > max_retries


class NoRetry(RetryStrategy):
    def next_interval(self, attempt: int) -> Optional[float]:
        return None


@dataclass(frozen=True)
class FixedIntervalRetry(RetryStrategy):
    interval: float
    max_retries: Optional[int] = 3

    def next_interval(self, attempt: int) -> Optional[float]:
        if self._exhausted(attempt, self.max_retries):
            return None
        return self.interval


@dataclass(frozen=True)
class LinearBackoffRetry(RetryStrategy):
    initial: float
    step: float
    max_interval: Optional[float] = None
    max_retries: Optional[int] = 10

    def next_interval(self, attempt: int) -> Optional[float]:
        if self._exhausted(attempt, self.max_retries):
            return None
        interval = self.initial + self.step * (attempt - 1)
        if self.max_interval is not None:
            interval = min(interval, self.max_interval)
        return interval


@dataclass(frozen=True)
class ExponentialBackoffRetry(RetryStrategy):
    """Exponential backoff with optional jitter.

    With ``max_retries=None`` it never gives up; bound the whole call with
    ``asyncio.timeout`` instead.
    """

    initial: float = 0.05
    multiplier: float = 2.0
    max_interval: float = 1.0
    max_retries: Optional[int] = 10
    jitter: float = 0.0

    def next_interval(self, attempt: int) -> Optional[float]:
        if self._exhausted(attempt, self.max_retries):
            return None
        # cap the exponent so huge attempt counts cannot overflow
        exponent = min(attempt - 1, 64)
        interval = min(self.initial * (self.multiplier ** exponent), self.max_interval)
        if self.jitter > 0:
            interval += random.uniform(0, self.jitter)
        return interval
