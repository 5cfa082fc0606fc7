"""
sommelier.agents.recommendation.llm_recommendation_agent - LLM Recommendations
================================================================================

Alternative to the knowledge-graph stage, selected with
``recommendation_source="llm"``. Asks the LLM for a JSON answer and
validates it into ``LLMRecommendation``.

Failure Handling:
    This agent never answers with an error envelope. When the LLM call
    fails or its output does not validate, the failure is dead-lettered and
    the reply is a normal recommendations_result carrying an ``error``
    field. The coordinator treats that field as a failed stage.

        LLM call failed         dead-letter stage "LLMEnhancementCall"
        output did not parse    dead-letter stage "LLMEnhancementParsing"

Output payload (recommendations_result):
    {
        "recommended_wines": [{"name": "Chianti Classico"}, ...],
        "confidence": 0.8,
        "reasoning": "...",
        "source": "llm",
    }
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, Field

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, MessageType, RecommendationSource
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Ok
from sommelier.integrations.llm.base import BaseLLMProvider
from sommelier.orchestration.dead_letter import DeadLetterProcessor
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

SYSTEM_PROMPT = (
    "You are an experienced sommelier. Recommend specific wines by name. "
    "Reply with JSON only, no prose around it."
)


class LLMRecommendation(BaseModel):
    """Shape the LLM must answer with."""

    recommendations: list[str] = Field(description="Wine names, best first")
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)
    reasoning: str = Field(default="", description="Short justification")


class LLMRecommendationAgent(CommunicatingAgent):
    """Recommends wines by asking the LLM for structured output."""

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        llm_provider: BaseLLMProvider,
        dead_letter_processor: DeadLetterProcessor,
    ) -> None:
        self.llm_provider = llm_provider
        self.dead_letter_processor = dead_letter_processor
        super().__init__(
            AgentId.LLM_RECOMMENDATION.value,
            bus,
            name="LLMRecommendationAgent",
            capabilities=["wine-recommendations", "llm-integration"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.GENERATE_RECOMMENDATIONS: self._handle_generate}

    async def _handle_generate(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        result = await self.llm_provider.send_structured_prompt(
            self._build_prompt(message.payload),
            LLMRecommendation,
            correlation_id=correlation_id,
            system_prompt=SYSTEM_PROMPT,
        )

        if not result.success:
            error = result.error
            stage = (
                "LLMEnhancementParsing"
                if error.details.get("stage") == "parsing"
                else "LLMEnhancementCall"
            )
            await self.dead_letter_processor.process(
                message.payload,
                error,
                {"source": self.get_name(), "stage": stage, "correlation_id": correlation_id},
            )
            self._logger.warning(
                "llm_recommendation_failed",
                correlation_id=correlation_id,
                stage=stage,
                error=error.message,
            )
            body: dict[str, Any] = {
                "recommended_wines": [],
                "source": RecommendationSource.LLM.value,
                "error": error.message,
            }
        else:
            answer = result.data
            body = {
                "recommended_wines": [{"name": name} for name in answer.recommendations],
                "confidence": answer.confidence,
                "reasoning": answer.reasoning,
                "source": RecommendationSource.LLM.value,
            }
            self._logger.info(
                "llm_recommendations_generated",
                correlation_id=correlation_id,
                count=len(answer.recommendations),
            )

        return Ok(message.create_response(MessageType.RECOMMENDATIONS_RESULT, body, self.agent_id))

    @staticmethod
    def _build_prompt(payload: Any) -> str:
        request = payload if isinstance(payload, dict) else {"message": payload}
        return (
            "Suggest wines for the following request.\n"
            f"Request: {json.dumps(request, default=str, ensure_ascii=False)}\n"
            'Respond with JSON: {"recommendations": [<wine names>], '
            '"confidence": <0..1>, "reasoning": <string>}'
        )
