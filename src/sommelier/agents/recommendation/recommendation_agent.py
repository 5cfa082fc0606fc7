"""
sommelier.agents.recommendation.recommendation_agent - Knowledge Graph Recommendations
=========================================================================================

The load-bearing stage of the pipeline: turns ingredients and preferences
into a list of wines by querying the knowledge graph through a
``GraphCircuitWrapper``.

Architecture Context:

    ┌─────────────┐ generate_recommendations ┌─────────────────────┐ execute_query ┌─────────────────────┐
    │ Coordinator │ ───────────────────────> │ RecommendationAgent │ ────────────> │ GraphCircuitWrapper │
    │             │ <─────────────────────── │                     │ <──────────── │  (breaker + client) │
    └─────────────┘  recommendations_result  └─────────────────────┘    Result     └─────────────────────┘

    Input payload:
        {
            "ingredients": ["lamb"],                         # optional
            "preferences": {"wineType": "red", "maxPrice": 30},  # optional
            "message": "...",                                # optional, unused here
        }

    Output payload (recommendations_result):
        {
            "recommended_wines": [{"name": "Malbec Reserva", ...}, ...],
            "source": "knowledge_graph",
        }

    With ingredients the pairing query runs; otherwise the preference
    query. A graph failure (including an open circuit) comes back as
    ``Err(NEO4J_QUERY_FAILED)``.
"""

from __future__ import annotations

from typing import Any, Optional

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, ErrorCode, MessageType, RecommendationSource
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.integrations.graph.circuit_wrapper import GraphCircuitWrapper
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

# =============================================================================
# Queries
# =============================================================================

RECOMMEND_BY_INGREDIENTS = """
MATCH (w:Wine)-[:PAIRS_WITH]->(i:Ingredient)
WHERE i.name IN $ingredients
  AND ($wine_type IS NULL OR w.type = $wine_type)
  AND ($max_price IS NULL OR w.price <= $max_price)
WITH w, count(i) AS hits
RETURN w.name AS name, w.type AS type, w.region AS region, w.price AS price, w.rating AS rating
ORDER BY hits DESC, w.rating DESC
LIMIT $limit
"""

RECOMMEND_BY_PREFERENCES = """
MATCH (w:Wine)
WHERE ($wine_type IS NULL OR w.type = $wine_type)
  AND ($max_price IS NULL OR w.price <= $max_price)
RETURN w.name AS name, w.type AS type, w.region AS region, w.price AS price, w.rating AS rating
ORDER BY w.rating DESC
LIMIT $limit
"""

DEFAULT_LIMIT = 5


def _pick(mapping: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if mapping.get(key) is not None:
            return mapping[key]
    return None


class RecommendationAgent(CommunicatingAgent):
    """Recommends wines from the knowledge graph.

    Attributes:
        graph: Breaker-guarded graph access.
        limit: Maximum wines returned per request.
    """

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        graph: GraphCircuitWrapper,
        limit: int = DEFAULT_LIMIT,
    ) -> None:
        self.graph = graph
        self.limit = limit
        super().__init__(
            AgentId.RECOMMENDATION.value,
            bus,
            name="RecommendationAgent",
            capabilities=["wine-recommendations", "knowledge-graph-query"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.GENERATE_RECOMMENDATIONS: self._handle_generate}

    async def _handle_generate(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        payload = message.payload
        if not isinstance(payload, dict):
            code = ErrorCode.MISSING_PAYLOAD if payload is None else ErrorCode.INVALID_PAYLOAD
            return Err(
                AgentError(
                    "Recommendation request needs an object payload",
                    error_code=code,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                )
            )

        query, params = self.build_query(payload)
        result = await self.graph.execute_query(query, params)
        if not result.success:
            self._logger.error(
                "recommendation_query_failed",
                correlation_id=correlation_id,
                error=result.error.message,
            )
            return Err(
                AgentError(
                    result.error.message,
                    error_code=result.error.code,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                    recoverable=result.error.recoverable,
                    details={**result.error.details, "circuit_state": self.graph.get_circuit_state()},
                )
            )

        self._logger.info(
            "recommendations_generated",
            correlation_id=correlation_id,
            count=len(result.data),
        )
        return Ok(
            message.create_response(
                MessageType.RECOMMENDATIONS_RESULT,
                {
                    "recommended_wines": result.data,
                    "source": RecommendationSource.KNOWLEDGE_GRAPH.value,
                },
                self.agent_id,
            )
        )

    def build_query(self, payload: dict[str, Any]) -> tuple[str, dict[str, Any]]:
        """Choose the Cypher query and parameters for a request payload."""
        preferences: dict[str, Any] = payload.get("preferences") or {}
        ingredients: Optional[list[str]] = payload.get("ingredients") or None

        params: dict[str, Any] = {
            "wine_type": _pick(preferences, "wineType", "wine_type"),
            "max_price": _pick(preferences, "maxPrice", "max_price"),
            "limit": self.limit,
        }
        if ingredients:
            params["ingredients"] = list(ingredients)
            return RECOMMEND_BY_INGREDIENTS, params
        return RECOMMEND_BY_PREFERENCES, params
