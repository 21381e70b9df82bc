"""Backoff policies for the run loop.

The run loop owns the attempt budget; a policy only answers "how long to
wait before attempt *n + 1*".

Example:
    >>> from tracecheck.retry import ExponentialBackoff
    >>>
    >>> strategy = ExponentialBackoff(base_delay=1.0, max_delay=8.0, jitter=False)
    >>> [strategy.next_delay(n) for n in range(5)]
    [1.0, 2.0, 4.0, 8.0, 8.0]
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod
from dataclasses import dataclass

from tracecheck.errors import ConfigError


class BackoffStrategy(ABC):
    """Abstract base for backoff strategies."""

    @abstractmethod
    def next_delay(self, attempt: int) -> float:
        """Calculate delay before the next attempt.

        Args:
            attempt: Zero-based index of the attempt that just failed

        Returns:
            Delay in seconds
        """
        ...


@dataclass
class ConstantBackoff(BackoffStrategy):
    """Constant delay between attempts."""

    delay: float = 2.0

    def next_delay(self, attempt: int) -> float:
        return self.delay


@dataclass
class LinearBackoff(BackoffStrategy):
    """Delay = base_delay + (increment * attempt), capped at max_delay."""

    base_delay: float = 1.0
    increment: float = 1.0
    max_delay: float = 30.0

    def next_delay(self, attempt: int) -> float:
        return min(self.base_delay + (self.increment * attempt), self.max_delay)


@dataclass
class ExponentialBackoff(BackoffStrategy):
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) + jitter

    Attributes:
        base_delay: Initial delay in seconds
        max_delay: Maximum delay cap in seconds
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness of +/- jitter_range * delay
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: bool = False
    jitter_range: float = 0.25

    def next_delay(self, attempt: int) -> float:
        delay = min(self.base_delay * (self.multiplier**attempt), self.max_delay)

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0.0, delay)

        return delay


def build_backoff(kind: str, interval: float, max_interval: float) -> BackoffStrategy:
    """Build the strategy named on the command line."""
    if interval < 0 or max_interval < 0:
        raise ConfigError("Backoff intervals must be >= 0", interval=interval, max_interval=max_interval)
    if kind == "constant":
        return ConstantBackoff(delay=interval)
    if kind == "linear":
        return LinearBackoff(base_delay=interval, increment=interval, max_delay=max(max_interval, interval))
    if kind == "exponential":
        return ExponentialBackoff(base_delay=interval, max_delay=max(max_interval, interval))
    raise ConfigError(f"Unknown backoff strategy: {kind!r}", backoff=kind)


__all__ = [
    "BackoffStrategy",
    "ConstantBackoff",
    "ExponentialBackoff",
    "LinearBackoff",
    "build_backoff",
]
