"""
sommelier.orchestration.retry_manager - Retry Policies and Manager
====================================================================

Retries an async operation according to a set of pluggable policies, with
every attempt routed through a circuit breaker.

Decision Rules:
    - After a failed attempt, retry if ANY policy says the error is worth
      retrying (policies are permissive, not restrictive).
    - The wait before the next attempt is the LONGEST delay any policy asks
      for.
    - ``max_attempts`` is a hard cap regardless of what policies say.
    - When attempts run out, or every policy declines, the last error is
      re-raised unchanged.

Example delay progression, ExponentialBackoffPolicy(base_delay=0.1, max_delay=1.0):
    after attempt 1: 0.1s
    after attempt 2: 0.2s
    after attempt 3: 0.4s
    after attempt 4: 0.8s
    after attempt 5: 1.0s (capped)

Usage:
    >>> manager = RetryManager(
    ...     circuit_breaker=CircuitBreaker(),
    ...     policies=[ExponentialBackoffPolicy(0.1, 2.0, retryable_errors=(TimeoutError,))],
    ...     max_attempts=4,
    ... )
    >>> await manager.execute_with_retry(lambda: handler.handle(msg, err, meta))
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Awaitable, Callable, Iterable, Optional, TypeVar

import structlog

from sommelier.core.config import RetryConfig
from sommelier.orchestration.circuit_breaker import CircuitBreaker

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

T = TypeVar("T")

ErrorTypes = tuple[type[BaseException], ...]


# =============================================================================
# Retry Policies
# =============================================================================
class RetryPolicy(ABC):
    """Decides whether an error is worth retrying and how long to wait.

    ``attempt`` is 1-based: it is the number of the attempt that just failed.
    """

    @abstractmethod
    def should_retry(self, attempt: int, error: BaseException) -> bool:
        """Return True if the operation should be tried again."""

    @abstractmethod
    def get_delay(self, attempt: int) -> float:
        """Return the wait in seconds before the next attempt."""


class ExponentialBackoffPolicy(RetryPolicy):
    """Doubles the delay after each failure, capped at ``max_delay``.

    Only errors that are instances of ``retryable_errors`` are retried.
    """

    def __init__(
        self,
        base_delay: float,
        max_delay: float,
        retryable_errors: ErrorTypes = (Exception,),
    ) -> None:
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.retryable_errors = retryable_errors

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return isinstance(error, self.retryable_errors)

    def get_delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


class FixedDelayPolicy(RetryPolicy):
    """Waits the same ``delay`` after every failure."""

    def __init__(
        self,
        delay: float,
        retryable_errors: ErrorTypes = (Exception,),
    ) -> None:
        self.delay = delay
        self.retryable_errors = retryable_errors

    def should_retry(self, attempt: int, error: BaseException) -> bool:
        return isinstance(error, self.retryable_errors)

    def get_delay(self, attempt: int) -> float:
        return self.delay


# =============================================================================
# Retry Manager
# =============================================================================
class RetryManager:
    """Runs an operation through a circuit breaker, retrying per policy.

    Attributes:
        circuit_breaker: Breaker every attempt goes through. An OPEN breaker
            raises CircuitOpenError, which policies see like any other error.
        policies: Retry policies consulted after each failure.
        max_attempts: Total attempts allowed, including the first.
    """

    def __init__(
        self,
        circuit_breaker: CircuitBreaker,
        policies: Iterable[RetryPolicy],
        max_attempts: int = 3,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.circuit_breaker = circuit_breaker
        self.policies: list[RetryPolicy] = list(policies)
        self.max_attempts = max_attempts
        self._sleep = sleep
        self._logger = logger.bind(component="retry_manager")

    def add_policy(self, policy: RetryPolicy) -> None:
        self.policies.append(policy)

    async def execute_with_retry(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Execute ``fn`` until it succeeds or retries are exhausted.

        Args:
            fn: Zero-argument callable returning an awaitable.

        Returns:
            The first successful result.

        Raises:
            Exception: The error from the last attempt.
        """
        last_error: Optional[BaseException] = None

        for attempt in range(1, self.max_attempts + 1):
            try:
                return await self.circuit_breaker.execute(fn)
            except Exception as exc:
                last_error = exc

                if attempt >= self.max_attempts:
                    self._logger.warning(
                        "retry_attempts_exhausted",
                        attempts=attempt,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    break

                if not self._should_retry(attempt, exc):
                    self._logger.info(
                        "retry_declined_by_policies",
                        attempt=attempt,
                        error_type=type(exc).__name__,
                    )
                    break

                delay = self._get_delay(attempt)
                self._logger.info(
                    "retry_scheduled",
                    attempt=attempt,
                    max_attempts=self.max_attempts,
                    delay_seconds=delay,
                    error=str(exc),
                )
                if delay > 0:
                    await self._sleep(delay)

        if last_error is None:
            raise RuntimeError("execute_with_retry finished without an attempt")
        raise last_error

    def _should_retry(self, attempt: int, error: BaseException) -> bool:
        return any(policy.should_retry(attempt, error) for policy in self.policies)

    def _get_delay(self, attempt: int) -> float:
        return max((policy.get_delay(attempt) for policy in self.policies), default=0.0)


class BasicRetryManager(RetryManager):
    """RetryManager preconfigured with a FixedDelayPolicy and its own breaker.

    Example:
        >>> manager = BasicRetryManager(max_attempts=3, delay=0.1)
        >>> manager = BasicRetryManager.from_config(config.retry)
    """

    def __init__(
        self,
        circuit_breaker: Optional[CircuitBreaker] = None,
        max_attempts: int = 3,
        delay: float = 0.1,
        policies: Optional[Iterable[RetryPolicy]] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        super().__init__(
            circuit_breaker=circuit_breaker or CircuitBreaker(name="retry-manager"),
            policies=policies if policies is not None else [FixedDelayPolicy(delay)],
            max_attempts=max_attempts,
            sleep=sleep,
        )

    @classmethod
    def from_config(
        cls,
        config: RetryConfig,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> BasicRetryManager:
        """Build a manager with a fixed-delay and an exponential policy."""
        return cls(
            circuit_breaker=circuit_breaker,
            max_attempts=config.max_attempts,
            policies=[
                FixedDelayPolicy(config.fixed_delay_seconds),
                ExponentialBackoffPolicy(
                    config.base_delay_seconds, config.max_delay_seconds
                ),
            ],
        )
