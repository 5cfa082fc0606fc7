"""
sommelier.orchestration.circuit_breaker - Circuit Breaker
===========================================================

Wraps calls to an unreliable collaborator (another agent, the graph
database) and stops calling it once it keeps failing.

Architecture Context:

    ┌──────────────────┐   execute(fn)   ┌──────────────────┐    fn()    ┌────────────┐
    │ Coordinator /    │ ──────────────> │  CircuitBreaker   │ ─────────> │ collaborator│
    │ GraphCircuitWrap │ <────────────── │  CLOSED/OPEN/HALF │ <───────── │            │
    └──────────────────┘  result/raise   └──────────────────┘            └────────────┘
                                                │ OPEN
                                                v
                                          fallback(error)

State Machine:
        ┌────────┐   failure_threshold    ┌────────┐
        │ CLOSED │ ─────────────────────> │  OPEN  │
        └────────┘                         └────┬───┘
             ^                                  │ next call after timeout
             │   success_threshold              v
        ┌────┴────┐                        ┌─────────┐
        │ CLOSED  │ <───────────────────── │HALF_OPEN│ ──(failure)──> OPEN
        └─────────┘                        └─────────┘

The OPEN → HALF_OPEN transition is lazy: it happens on the first call that
arrives once ``timeout`` seconds have passed since the last failure. There
is no background timer.

Usage:
    >>> breaker = CircuitBreaker(failure_threshold=3, timeout=30.0)
    >>> result = await breaker.execute(lambda: bus.send_message_and_wait_for_response(...))

    >>> @breaker.protect
    ... async def query_graph(cypher: str) -> list:
    ...     ...
"""

from __future__ import annotations

import functools
import inspect
import time
from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from sommelier.core.enums import CircuitState
from sommelier.core.exceptions import CircuitOpenError

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

T = TypeVar("T")

Fallback = Callable[[BaseException], Any]


def _raise_open(error: BaseException) -> Any:
    raise error


class CircuitBreaker:
    """Three-state circuit breaker around async callables.

    Attributes:
        failure_threshold: Consecutive failures before the circuit opens.
        success_threshold: Successful HALF_OPEN calls needed to close it.
        timeout: Seconds an OPEN circuit short-circuits calls before it
            lets a trial call through.

    Example:
        >>> breaker = CircuitBreaker(
        ...     failure_threshold=2,
        ...     timeout=5.0,
        ...     fallback=lambda err: {"recommended_wines": []},
        ... )
        >>> await breaker.execute(fetch_wines)
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        success_threshold: int = 2,
        timeout: float = 60.0,
        fallback: Optional[Fallback] = None,
        clock: Callable[[], float] = time.monotonic,
        name: str = "circuit",
    ) -> None:
        """Initialize the breaker in CLOSED state.

        Args:
            failure_threshold: Failures that trip the circuit.
            success_threshold: Half-open successes that close it again.
            timeout: Seconds before an OPEN circuit allows a trial call.
            fallback: Called with a CircuitOpenError while the circuit is
                OPEN. May be sync or async. May raise. The default raises
                the CircuitOpenError it is given.
            clock: Monotonic time source. Tests inject a fake one.
            name: Label used in logs.
        """
        self.failure_threshold = failure_threshold
        self.success_threshold = success_threshold
        self.timeout = timeout
        self.name = name

        self._fallback: Fallback = fallback or _raise_open
        self._clock = clock

        self._state: CircuitState = CircuitState.CLOSED
        self._failure_count: int = 0
        self._success_count: int = 0
        self._last_failure_time: Optional[float] = None

        # All state changes happen between awaits, so no lock is needed on a
        # single event loop.
        self._logger = logger.bind(component="circuit_breaker", circuit=name)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_time(self) -> Optional[float]:
        return self._last_failure_time

    def get_state(self) -> dict[str, Any]:
        """Return a snapshot of the breaker for diagnostics."""
        return {
            "name": self.name,
            "state": self._state.value,
            "failure_count": self._failure_count,
            "success_count": self._success_count,
            "last_failure_time": self._last_failure_time,
        }

    # =========================================================================
    # Execution
    # =========================================================================

    async def execute(self, fn: Callable[[], Awaitable[T]]) -> T:
        """Run ``fn`` under the breaker.

        Args:
            fn: Zero-argument callable returning an awaitable.

        Returns:
            Whatever ``fn`` returns, or the fallback's value while OPEN.

        Raises:
            CircuitOpenError: While OPEN, with the default fallback.
            Exception: Whatever ``fn`` raised, after it has been counted.
        """
        if self._state == CircuitState.OPEN:
            elapsed = self._clock() - (self._last_failure_time or 0.0)
            if elapsed < self.timeout:
                self._logger.debug(
                    "circuit_breaker_short_circuit",
                    remaining_seconds=round(self.timeout - elapsed, 3),
                )
                error = CircuitOpenError(
                    f"{self.name} circuit is open",
                    details={"circuit": self.name, "failure_count": self._failure_count},
                )
                outcome = self._fallback(error)
                if inspect.isawaitable(outcome):
                    outcome = await outcome
                return outcome

            self._state = CircuitState.HALF_OPEN
            self._success_count = 0
            self._logger.info(
                "circuit_breaker_half_open",
                elapsed_seconds=round(elapsed, 3),
                timeout=self.timeout,
            )

        try:
            result = await fn()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def protect(
        self, fn: Callable[..., Awaitable[T]]
    ) -> Callable[..., Awaitable[T]]:
        """Wrap an async callable so every call goes through ``execute``."""

        @functools.wraps(fn)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            return await self.execute(lambda: fn(*args, **kwargs))

        return wrapper

    def reset(self) -> None:
        """Force the breaker back to CLOSED with zeroed counters."""
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_time = None
        self._logger.info("circuit_breaker_reset")

    # =========================================================================
    # Internal Bookkeeping
    # =========================================================================

    def _on_success(self) -> None:
        if self._state == CircuitState.HALF_OPEN:
            self._success_count += 1
            self._logger.info(
                "circuit_breaker_half_open_success",
                success_count=self._success_count,
                success_threshold=self.success_threshold,
            )
            if self._success_count >= self.success_threshold:
                self._state = CircuitState.CLOSED
                self._failure_count = 0
                self._success_count = 0
                self._logger.info("circuit_breaker_closed", reason="recovery_confirmed")
        else:
            # Only consecutive failures count toward the threshold.
            self._failure_count = 0

    def _on_failure(self) -> None:
        self._failure_count += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            self._success_count = 0
            self._logger.warning(
                "circuit_breaker_reopened",
                reason="failure_during_half_open",
                failure_count=self._failure_count,
            )
        elif (
            self._state == CircuitState.CLOSED
            and self._failure_count >= self.failure_threshold
        ):
            self._state = CircuitState.OPEN
            self._logger.warning(
                "circuit_breaker_opened",
                failure_count=self._failure_count,
                failure_threshold=self.failure_threshold,
                timeout=self.timeout,
            )
