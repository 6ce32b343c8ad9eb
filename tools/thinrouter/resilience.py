"""
THINROUTER Resilience

Per-chain fault tolerance for RPC traffic:

    RetryPolicy    bounded retries with backoff for idempotent reads
    RateLimiter    token bucket keeping each chain under its request budget

Transactions are never retried here. The orchestrator owns the single
explicit-gas retry for deployments because only it knows whether a
resubmission is safe.

Copyright (c) 2026 Momentum. All rights reserved.
"""

from __future__ import annotations

import functools
import random
import threading
import time
from dataclasses import dataclass
from enum import Enum, auto
from typing import Callable, Optional, TypeVar

T = TypeVar("T")


# ════════════════════════════════════════════════════════════════════════════
# RETRY POLICY
# ════════════════════════════════════════════════════════════════════════════


class BackoffStrategy(Enum):
    """Retry backoff strategies."""
    FIXED = auto()
    EXPONENTIAL = auto()
    EXPONENTIAL_JITTER = auto()


@dataclass
class RetryMetrics:
    total_attempts: int = 0
    failed_attempts: int = 0
    retries_exhausted: int = 0


class RetryExhaustedError(Exception):
    """Raised when all retry attempts are exhausted."""
    def __init__(self, attempts: int, last_exception: Exception):
        self.attempts = attempts
        self.last_exception = last_exception
        super().__init__(f"Retry exhausted after {attempts} attempts: {last_exception}")


class RetryPolicy:
    """
    Retry with configurable backoff.

    Example:
        retry = RetryPolicy(max_attempts=3, base_delay_seconds=0.5)
        balance = retry.execute(lambda: w3.eth.get_balance(address))
    """

    def __init__(
        self,
        max_attempts: int = 3,
        base_delay_seconds: float = 0.5,
        max_delay_seconds: float = 10.0,
        backoff_strategy: BackoffStrategy = BackoffStrategy.EXPONENTIAL_JITTER,
        retryable_exceptions: tuple = (Exception,),
        non_retryable_exceptions: tuple = (),
        on_retry: Optional[Callable[[int, Exception, float], None]] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.max_attempts = max_attempts
        self.base_delay_seconds = base_delay_seconds
        self.max_delay_seconds = max_delay_seconds
        self.backoff_strategy = backoff_strategy
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions
        self._on_retry = on_retry
        self._sleep = sleep
        self._metrics = RetryMetrics()
        self._lock = threading.Lock()

    @property
    def metrics(self) -> RetryMetrics:
        with self._lock:
            return RetryMetrics(**vars(self._metrics))

    def _calculate_delay(self, attempt: int) -> float:
        base = self.base_delay_seconds
        if self.backoff_strategy == BackoffStrategy.FIXED:
            delay = base
        elif self.backoff_strategy == BackoffStrategy.EXPONENTIAL:
            delay = base * (2 ** (attempt - 1))
        else:
            exp_delay = base * (2 ** (attempt - 1))
            delay = exp_delay + random.uniform(0, 0.5 * exp_delay)
        return min(delay, self.max_delay_seconds)

    def _is_retryable(self, exc: Exception) -> bool:
        if isinstance(exc, self.non_retryable_exceptions):
            return False
        return isinstance(exc, self.retryable_exceptions)

    def execute(self, func: Callable[[], T]) -> T:
        last_exception: Optional[Exception] = None

        for attempt in range(1, self.max_attempts + 1):
            with self._lock:
                self._metrics.total_attempts += 1
            try:
                return func()
            except Exception as e:
                last_exception = e
                with self._lock:
                    self._metrics.failed_attempts += 1
                if not self._is_retryable(e):
                    raise
                if attempt < self.max_attempts:
                    delay = self._calculate_delay(attempt)
                    if self._on_retry:
                        self._on_retry(attempt, e, delay)
                    self._sleep(delay)

        with self._lock:
            self._metrics.retries_exhausted += 1
        raise RetryExhaustedError(self.max_attempts, last_exception)

    def __call__(self, func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            return self.execute(lambda: func(*args, **kwargs))
        return wrapper


# ════════════════════════════════════════════════════════════════════════════
# RATE LIMITER
# ════════════════════════════════════════════════════════════════════════════


class RateLimiter:
    """Token bucket rate limiter."""

    def __init__(self, requests_per_minute: int, burst_size: int = 10):
        self.requests_per_minute = requests_per_minute
        self.burst_size = burst_size
        self._tokens = float(burst_size)
        self._last_update = time.monotonic()
        self._refill_rate = requests_per_minute / 60.0
        self._lock = threading.Lock()

    def acquire(self, tokens: int = 1) -> bool:
        """Try to take tokens without waiting."""
        with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now
            self._tokens = min(self.burst_size, self._tokens + elapsed * self._refill_rate)
            if self._tokens >= tokens:
                self._tokens -= tokens
                return True
            return False

    def wait_and_acquire(self, tokens: int = 1, max_wait_seconds: float = 30.0) -> bool:
        start = time.monotonic()
        while True:
            if self.acquire(tokens):
                return True
            if time.monotonic() - start >= max_wait_seconds:
                return False
            time.sleep(0.05)
