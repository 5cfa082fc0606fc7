"""
sommelier.core.exceptions - Custom Exception Hierarchy
========================================================

Components raise and catch specific exception types that carry a
machine-readable code and a details dict, instead of bare Exceptions.

Exception Hierarchy:
    SommelierError (base)
        ├── ConfigurationError          - Invalid config, unreadable YAML
        ├── MessageBusError             - Bus misuse (e.g. closed bus)
        ├── CircuitOpenError            - Call short-circuited by an OPEN breaker
        └── AgentError                  - Failure attributed to an agent
                └── RecommendationFailedError - Load-bearing stage failed

AgentError is special: besides being raisable, it is the error arm of every
``Result[T, AgentError]`` a handler returns, and it round-trips through the
payload of an ``ERROR`` envelope (``to_payload`` / ``from_payload``).

Usage:
    >>> from sommelier.core.exceptions import AgentError
    >>> from sommelier.core.enums import ErrorCode
    >>> raise AgentError(
    ...     "LLM returned nothing",
    ...     error_code=ErrorCode.LLM_SERVICE_ERROR,
    ...     agent_id="fallback-agent",
    ...     correlation_id="fallback-agent-1700000000000-42",
    ... )
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Optional, Union

from sommelier.core.enums import ErrorCode


def _code(error_code: Union[str, Enum]) -> str:
    return str(error_code.value) if isinstance(error_code, Enum) else error_code


class SommelierError(Exception):
    """Base exception for all sommelier errors.

    Attributes:
        message: Human-readable error description.
        error_code: Machine-readable error code (UPPER_SNAKE_CASE).
        details: Arbitrary dict with additional debugging context.

    Example:
        >>> try:
        ...     do_something()
        ... except SommelierError as e:
        ...     print(f"[{e.error_code}] {e.message}")
    """

    def __init__(
        self,
        message: str,
        error_code: Union[str, Enum] = "UNKNOWN_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_code = _code(error_code)
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize this exception for structured logs and dead-letter records."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "error_code": self.error_code,
            "details": self.details,
        }

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ConfigurationError(SommelierError):
    """Raised when configuration is invalid or cannot be parsed.

    Example:
        >>> raise ConfigurationError(
        ...     message="sommelier.yaml must contain a mapping",
        ...     details={"path": "sommelier.yaml"},
        ... )
    """

    def __init__(
        self,
        message: str,
        error_code: Union[str, Enum] = "CONFIG_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class MessageBusError(SommelierError):
    """Raised when the communication bus itself is misused."""

    def __init__(
        self,
        message: str,
        error_code: Union[str, Enum] = "MESSAGE_BUS_ERROR",
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class CircuitOpenError(SommelierError):
    """Raised by the default circuit-breaker fallback while the circuit is OPEN."""

    def __init__(
        self,
        message: str = "Circuit is open",
        error_code: Union[str, Enum] = ErrorCode.CIRCUIT_OPEN,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)


class AgentError(SommelierError):
    """Failure attributed to an agent, carried as the error arm of a Result.

    Attributes:
        agent_id: ID of the agent (or bus) that produced the error.
        correlation_id: Correlation id of the request that failed, if any.
        recoverable: Advises callers whether retrying may help.

    Example:
        >>> err = AgentError(
        ...     "No handler registered for agent shopper-agent",
        ...     error_code=ErrorCode.NO_HANDLER_REGISTERED,
        ...     agent_id="communication-bus",
        ...     correlation_id="abc-123",
        ... )
        >>> err.to_payload()["code"]
        'NO_HANDLER_REGISTERED'
    """

    def __init__(
        self,
        message: str,
        error_code: Union[str, Enum] = "AGENT_ERROR",
        agent_id: str = "unknown",
        correlation_id: Optional[str] = None,
        recoverable: bool = True,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message=message, error_code=error_code, details=details)

        self.agent_id = agent_id
        self.correlation_id = correlation_id
        self.recoverable = recoverable

    @property
    def code(self) -> str:
        """Alias for ``error_code``, matching the ERROR payload key."""
        return self.error_code

    def to_payload(self) -> dict[str, Any]:
        """Serialize into the payload of an ``ERROR`` envelope."""
        return {
            "message": self.message,
            "code": self.error_code,
            "agent_id": self.agent_id,
            "correlation_id": self.correlation_id,
            "recoverable": self.recoverable,
            "details": self.details,
        }

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            agent_id=self.agent_id,
            correlation_id=self.correlation_id,
            recoverable=self.recoverable,
        )
        return data

    @classmethod
    def from_payload(
        cls,
        payload: Any,
        *,
        agent_id: str = "unknown",
        correlation_id: Optional[str] = None,
    ) -> AgentError:
        """Rebuild an AgentError from an ``ERROR`` envelope payload.

        Payloads that are not dicts (a bare string, None) still produce an
        error, with the payload text as the message.
        """
        if not isinstance(payload, dict):
            return cls(
                str(payload) if payload is not None else "Unknown error",
                error_code=ErrorCode.COMMUNICATION_ERROR,
                agent_id=agent_id,
                correlation_id=correlation_id,
            )
        return cls(
            payload.get("message", "Unknown error"),
            error_code=payload.get("code", "AGENT_ERROR"),
            agent_id=payload.get("agent_id") or agent_id,
            correlation_id=payload.get("correlation_id") or correlation_id,
            recoverable=payload.get("recoverable", True),
            details=payload.get("details") or {},
        )

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"agent_id={self.agent_id!r}, "
            f"correlation_id={self.correlation_id!r}, "
            f"recoverable={self.recoverable!r})"
        )


class RecommendationFailedError(AgentError):
    """Raised by the coordinator when the load-bearing Recommendation stage fails."""

    def __init__(
        self,
        message: str = "Recommendation failed.",
        agent_id: str = "sommelier-coordinator",
        correlation_id: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(
            message,
            error_code=ErrorCode.RECOMMENDATION_FAILED,
            agent_id=agent_id,
            correlation_id=correlation_id,
            recoverable=False,
            details=details,
        )
