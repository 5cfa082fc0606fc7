"""
sommelier.integrations.graph.circuit_wrapper - Breaker-Guarded Graph Access
=============================================================================

Puts a ``CircuitBreaker`` between the Recommendation agent and the graph
client, and turns failures into ``Err(AgentError)``.

    ┌───────────────────┐ execute_query() ┌────────────────────┐  run()  ┌─────────────┐
    │ RecommendationAgt │ ──────────────> │ GraphCircuitWrapper │ ──────> │ GraphClient │
    │                   │ <─ Result ───── │  CircuitBreaker     │ <────── │             │
    └───────────────────┘                 └────────────────────┘         └─────────────┘

    execute_query     Err code NEO4J_QUERY_FAILED       (recoverable)
    verify_connection Err code NEO4J_CONNECTION_FAILED  (not recoverable)

Usage:
    >>> wrapper = GraphCircuitWrapper(InMemoryGraphClient())
    >>> result = await wrapper.execute_query("MATCH (w:Wine) RETURN w", {"ingredients": ["lamb"]})
    >>> result.data[0]["name"]
    'Malbec Reserva'
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog

from sommelier.core.config import CircuitBreakerConfig
from sommelier.core.enums import ErrorCode
from sommelier.core.exceptions import AgentError, CircuitOpenError
from sommelier.core.result import Err, Ok, Result
from sommelier.integrations.graph.base import GraphClient
from sommelier.orchestration.circuit_breaker import CircuitBreaker

logger = structlog.get_logger()

T = TypeVar("T")

SOURCE = "GraphCircuitWrapper"


class GraphCircuitWrapper:
    """Graph client access guarded by a circuit breaker.

    Attributes:
        client: The wrapped graph client.
    """

    def __init__(
        self,
        client: GraphClient,
        config: Optional[CircuitBreakerConfig] = None,
        circuit_breaker: Optional[CircuitBreaker] = None,
    ) -> None:
        self.client = client
        self._logger = logger.bind(component="graph_circuit_wrapper")

        if circuit_breaker is None:
            config = config or CircuitBreakerConfig(
                failure_threshold=3, success_threshold=2, timeout_seconds=10.0
            )
            circuit_breaker = CircuitBreaker(
                failure_threshold=config.failure_threshold,
                success_threshold=config.success_threshold,
                timeout=config.timeout_seconds,
                fallback=self._blocked,
                name="graph",
            )
        self._circuit = circuit_breaker

    def _blocked(self, error: BaseException) -> Any:
        self._logger.warning("graph_circuit_open_blocked", error=str(error))
        raise CircuitOpenError(f"Circuit breaker is open: {error}")

    @property
    def circuit_breaker(self) -> CircuitBreaker:
        return self._circuit

    async def execute(self, fn: Callable[[GraphClient], Awaitable[T]]) -> T:
        """Run ``fn(client)`` under the breaker. Raises what ``fn`` raises."""
        return await self._circuit.execute(lambda: fn(self.client))

    async def execute_query(
        self,
        query: str,
        params: Optional[dict[str, Any]] = None,
    ) -> Result[list[dict[str, Any]], AgentError]:
        self._logger.debug("graph_query_requested", query=query, params=params)
        try:
            records = await self._circuit.execute(lambda: self.client.run(query, params or {}))
        except Exception as exc:
            self._logger.error("graph_query_failed", query=query, params=params, error=str(exc))
            return Err(
                AgentError(
                    f"Neo4j query failed: {exc}",
                    error_code=ErrorCode.NEO4J_QUERY_FAILED,
                    agent_id=SOURCE,
                    recoverable=True,
                    details={"original_error": str(exc)},
                )
            )
        return Ok(records)

    async def verify_connection(self) -> Result[bool, AgentError]:
        try:
            await self._circuit.execute(self.client.verify_connectivity)
        except Exception as exc:
            self._logger.error("graph_connection_failed", error=str(exc))
            return Err(
                AgentError(
                    f"Neo4j connection failed: {exc}",
                    error_code=ErrorCode.NEO4J_CONNECTION_FAILED,
                    agent_id=SOURCE,
                    recoverable=False,
                    details={"original_error": str(exc)},
                )
            )
        self._logger.debug("graph_connection_verified")
        return Ok(True)

    async def close(self) -> None:
        try:
            await self.client.close()
        except Exception as exc:
            self._logger.error("graph_close_failed", error=str(exc))
            raise
        self._logger.info("graph_client_closed")

    def get_circuit_state(self) -> str:
        return self._circuit.state.value
