"""
sommelier.agents.recommendation.explanation_agent - Recommendation Prose
==========================================================================

Turns a list of recommended wines into a short natural-language
explanation. The coordinator attaches it to the result when it succeeds
and drops it when it does not.

    generate_explanation  {"recommended_wines": [...], "context": {...}}
        ↓
    explanation_result    {"explanation": "..."}
"""

from __future__ import annotations

import json
from typing import Any

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult


class ExplanationAgent(CommunicatingAgent):
    def __init__(self, bus: EnhancedAgentCommunicationBus) -> None:
        super().__init__(
            AgentId.EXPLANATION.value,
            bus,
            name="ExplanationAgent",
            capabilities=["recommendation-explanation", "llm-integration"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.GENERATE_EXPLANATION: self._handle_generate_explanation}

    async def _handle_generate_explanation(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        payload = message.payload
        wines = payload.get("recommended_wines") if isinstance(payload, dict) else None
        if wines is None:
            return Err(
                AgentError(
                    "Explanation request needs 'recommended_wines'",
                    error_code=ErrorCode.INVALID_PAYLOAD if payload is not None else ErrorCode.MISSING_PAYLOAD,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                )
            )

        llm_result = await self.bus.send_llm_prompt(
            self._build_prompt(wines, payload.get("context") or {}),
            correlation_id=correlation_id,
        )
        if not llm_result.success:
            return Err(
                AgentError(
                    f"Failed to generate explanation: {llm_result.error.message}",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                    details={"original_code": llm_result.error.code},
                )
            )

        self._logger.info("explanation_generated", correlation_id=correlation_id)
        return Ok(
            message.create_response(
                MessageType.EXPLANATION_RESULT,
                {"explanation": llm_result.data.strip()},
                self.agent_id,
            )
        )

    @staticmethod
    def _build_prompt(wines: list[Any], context: dict[str, Any]) -> str:
        names = [w.get("name", str(w)) if isinstance(w, dict) else str(w) for w in wines]
        return (
            "Explain in plain language why these wines suit the request.\n"
            f"Wines: {', '.join(names) or 'none'}\n"
            f"Request details: {json.dumps(context, default=str, ensure_ascii=False)}"
        )
