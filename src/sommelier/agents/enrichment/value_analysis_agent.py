"""
sommelier.agents.enrichment.value_analysis_agent - Price/Value Commentary
===========================================================================

Asks the LLM (through the bus) for a short value-for-money commentary on a
recommendation request. The coordinator treats this stage as optional: a
failure is dead-lettered and the pipeline carries on.

    analyze_value  {"preferences": {...}, "ingredients": [...], "message": "..."}
        ↓
    value_analysis_result  {"analysis": "..."}
"""

from __future__ import annotations

from typing import Any

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult


class ValueAnalysisAgent(CommunicatingAgent):
    """LLM-backed value analysis stage."""

    def __init__(self, bus: EnhancedAgentCommunicationBus) -> None:
        super().__init__(
            AgentId.VALUE_ANALYSIS.value,
            bus,
            name="ValueAnalysisAgent",
            capabilities=["value-analysis", "price-evaluation", "llm-integration"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.ANALYZE_VALUE: self._handle_analyze_value}

    async def _handle_analyze_value(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        if message.payload is None:
            return Err(
                AgentError(
                    "Missing payload in value analysis request",
                    error_code=ErrorCode.MISSING_PAYLOAD,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                )
            )

        llm_result = await self.bus.send_llm_prompt(
            self._build_prompt(message.payload), correlation_id=correlation_id
        )
        if not llm_result.success:
            self._logger.error(
                "value_analysis_llm_failed",
                correlation_id=correlation_id,
                error=llm_result.error.message,
            )
            return Err(
                AgentError(
                    f"LLM service failed: {llm_result.error.message}",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                    details={"original_code": llm_result.error.code},
                )
            )

        analysis = llm_result.data.strip()
        if not analysis:
            return Err(
                AgentError(
                    "No response data from LLM",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                )
            )

        self._logger.info("value_analysis_completed", correlation_id=correlation_id)
        return Ok(
            message.create_response(
                MessageType.VALUE_ANALYSIS_RESULT,
                {"analysis": analysis},
                self.agent_id,
            )
        )

    @staticmethod
    def _build_prompt(payload: Any) -> str:
        if isinstance(payload, dict):
            lines = [f"{key}: {value}" for key, value in payload.items() if value]
            request = "\n".join(lines) or "no details given"
        else:
            request = str(payload)
        return (
            "Assess the price-to-quality value of wines suitable for this request.\n"
            f"{request}\n"
            "Answer in two sentences."
        )
