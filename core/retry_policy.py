"""
Retry policies for the push channel reconnection supervisor
"""

import random
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Optional


class RetryReason(Enum):
    """Why a reconnect is being scheduled"""
    CONNECT_FAILED = "connect_failed"     # the handshake never completed
    CONNECTION_LOST = "connection_lost"   # an open connection went away


class RetryPolicy(ABC):
    """Decides how long to wait before the next connection attempt"""

    @abstractmethod
    def next_delay(self, reason: RetryReason, attempt: int) -> Optional[float]:
        """
        Get the delay before the next attempt

        Args:
            reason: What ended the previous attempt
            attempt: 1-based count of consecutive failures since the last
                successful connection

        Returns:
            Delay in seconds, or None to stop retrying
        """
        pass

    def describe(self) -> Dict[str, Any]:
        return {"strategy": self.__class__.__name__}


class FixedDelayPolicy(RetryPolicy):
    """Constant delay per failure class, retries forever"""

    def __init__(self, connect_failure_delay: float = 5.0, disconnect_delay: float = 3.0):
        self.connect_failure_delay = connect_failure_delay
        self.disconnect_delay = disconnect_delay

    def next_delay(self, reason: RetryReason, attempt: int) -> Optional[float]:
        if reason is RetryReason.CONNECT_FAILED:
            return self.connect_failure_delay
        return self.disconnect_delay

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": "fixed",
            "connect_failure_delay": self.connect_failure_delay,
            "disconnect_delay": self.disconnect_delay
        }


class ExponentialBackoffPolicy(RetryPolicy):
    """Bounded exponential backoff with random jitter"""

    def __init__(self,
                 base_delay: float = 1.0,
                 multiplier: float = 2.0,
                 max_delay: float = 30.0,
                 jitter: float = 0.5,
                 max_attempts: Optional[int] = None,
                 rng: Optional[random.Random] = None):
        """
        Initialize backoff policy

        Args:
            base_delay: Delay after the first failure
            multiplier: Growth factor per consecutive failure
            max_delay: Ceiling applied before and after jitter
            jitter: Up to this fraction of the delay is added at random
            max_attempts: Give up after this many consecutive failures
            rng: Random source, injectable for tests
        """
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter = jitter
        self.max_attempts = max_attempts
        self.rng = rng or random.Random()

    def next_delay(self, reason: RetryReason, attempt: int) -> Optional[float]:
        if self.max_attempts is not None and attempt > self.max_attempts:
            return None

        exponent = max(attempt - 1, 0)
        delay = min(self.max_delay, self.base_delay * (self.multiplier ** exponent))
        if self.jitter:
            delay += delay * self.jitter * self.rng.random()
        return min(self.max_delay, delay)

    def describe(self) -> Dict[str, Any]:
        return {
            "strategy": "exponential",
            "base_delay": self.base_delay,
            "multiplier": self.multiplier,
            "max_delay": self.max_delay,
            "jitter": self.jitter,
            "max_attempts": self.max_attempts
        }


def build_retry_policy(config: Dict[str, Any]) -> RetryPolicy:
    """
    Build a retry policy from a RECONNECT_CONFIG-style dict

    Raises:
        ValueError: If the strategy name is unknown
    """
    strategy = str(config.get("strategy", "fixed")).lower()

    if strategy == "fixed":
        return FixedDelayPolicy(
            connect_failure_delay=float(config.get("connect_failure_delay", 5.0)),
            disconnect_delay=float(config.get("disconnect_delay", 3.0))
        )

    if strategy == "exponential":
        return ExponentialBackoffPolicy(
            base_delay=float(config.get("base_delay", 1.0)),
            multiplier=float(config.get("multiplier", 2.0)),
            max_delay=float(config.get("max_delay", 30.0)),
            jitter=float(config.get("jitter", 0.5)),
            max_attempts=config.get("max_attempts")
        )

    raise ValueError(f"Unknown retry strategy: {strategy}")
