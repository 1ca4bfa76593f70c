"""Reconnect delay policies for the stream supervisor."""

import math
import random
import logging

from ..config.settings import ReconnectConfig

logger = logging.getLogger(__name__)


class ReconnectPolicy:
    """
    Computes how long to wait before reconnection attempt number ``attempt``.

    ``attempt`` starts at 1 for the first retry after a loss and is reset by the
    supervisor whenever a connection opens.
    """

    def next_delay(self, attempt: int) -> float:
        raise NotImplementedError


class FixedDelay(ReconnectPolicy):
    """Same delay for every attempt."""

    def __init__(self, delay: float = 3.0):
        if delay <= 0:
            raise ValueError("Reconnect delay must be positive")
        self.delay = delay

    def next_delay(self, attempt: int) -> float:
        return self.delay

    def __repr__(self):
        return f"FixedDelay(delay={self.delay})"


class ExponentialBackoff(ReconnectPolicy):
    """
    Exponential backoff with an upper bound.

    Args:
        initial_delay: Delay before the first retry (seconds)
        max_delay: Maximum delay between retries (seconds)
        backoff_factor: Multiplier applied per attempt
        jitter: Whether to add ±25% random jitter
    """

    def __init__(
        self,
        initial_delay: float = 1.0,
        max_delay: float = 60.0,
        backoff_factor: float = 2.0,
        jitter: bool = False
    ):
        if initial_delay <= 0 or max_delay <= 0:
            raise ValueError("Backoff delays must be positive")
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.backoff_factor = backoff_factor
        self.jitter = jitter

    def next_delay(self, attempt: int) -> float:
        exponent = max(attempt - 1, 0)

        # Stop growing the exponent once the cap is reached; large attempt counts would overflow
        if self.backoff_factor > 1:
            ceiling = math.log(self.max_delay / self.initial_delay, self.backoff_factor)
            exponent = min(exponent, max(math.ceil(ceiling), 0))

        delay = min(self.initial_delay * (self.backoff_factor ** exponent), self.max_delay)

        if self.jitter:
            jitter_range = delay * 0.25
            delay = delay + random.uniform(-jitter_range, jitter_range)

        return min(delay, self.max_delay)

    def __repr__(self):
        return (
            f"ExponentialBackoff(initial_delay={self.initial_delay}, max_delay={self.max_delay}, "
            f"backoff_factor={self.backoff_factor}, jitter={self.jitter})"
        )


def build_reconnect_policy(config: ReconnectConfig) -> ReconnectPolicy:
    """Create the policy described by the reconnect configuration."""
    if config.strategy == 'exponential':
        policy = ExponentialBackoff(
            initial_delay=config.delay_seconds,
            max_delay=config.max_delay_seconds,
            backoff_factor=config.multiplier,
            jitter=config.jitter
        )
    else:
        policy = FixedDelay(config.delay_seconds)

    logger.debug(f"Using reconnect policy {policy!r}")
    return policy
