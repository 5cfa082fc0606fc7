"""
sommelier.agents.fallback_agent - Graceful Degradation
========================================================

When the coordinator cannot build a proper recommendation it asks this
agent for a degraded, user-facing answer. The agent asks the LLM to phrase
one; if the LLM is unavailable it falls back to a configured sentence, so
a reply is always produced for a well-formed request.

    fallback_request / emergency_recommendations
        payload  {"error": "...", "preferences": {...}, ...}
        ↓
    fallback-response  {"recommendation": "..."}

Failures:
    no payload   dead-lettered (stage "FallbackValidation"),
                 Err(MISSING_PAYLOAD)
"""

from __future__ import annotations

import json
from typing import Any, Optional

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.config import FallbackConfig
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.integrations.llm.base import BaseLLMProvider
from sommelier.orchestration.dead_letter import DeadLetterProcessor
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult


class FallbackAgent(CommunicatingAgent):
    """Produces a degraded recommendation when the pipeline cannot.

    Attributes:
        config: Holds the default response used when the LLM fails.
    """

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        llm_provider: Optional[BaseLLMProvider],
        dead_letter_processor: DeadLetterProcessor,
        config: Optional[FallbackConfig] = None,
    ) -> None:
        self.llm_provider = llm_provider
        self.dead_letter_processor = dead_letter_processor
        self.config = config or FallbackConfig()
        super().__init__(
            AgentId.FALLBACK.value,
            bus,
            name="FallbackAgent",
            capabilities=["error-handling", "llm-fallback-generation", "graceful-degradation"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {
            MessageType.FALLBACK_REQUEST: self._handle_fallback_request,
            MessageType.EMERGENCY_RECOMMENDATIONS: self._handle_fallback_request,
        }

    async def _handle_fallback_request(self, message: AgentMessage) -> HandlerResult:
        correlation_id = message.correlation_id
        if message.payload is None:
            error = AgentError(
                "Missing payload in fallback request",
                error_code=ErrorCode.MISSING_PAYLOAD,
                agent_id=self.agent_id,
                correlation_id=correlation_id,
            )
            await self.dead_letter_processor.process(
                message.payload,
                error,
                {"source": self.get_name(), "stage": "FallbackValidation", "correlation_id": correlation_id},
            )
            return Err(error)

        text = await self.generate_fallback_text(message.payload, correlation_id)
        self._logger.info("fallback_response_generated", correlation_id=correlation_id)
        return Ok(
            message.create_response(
                MessageType.FALLBACK_RESPONSE,
                {"recommendation": text},
                self.agent_id,
            )
        )

    async def generate_fallback_text(self, payload: Any, correlation_id: Optional[str] = None) -> str:
        """Ask the LLM for a fallback message; use the configured default on failure."""
        if self.llm_provider is None:
            self._logger.warning("fallback_llm_not_configured", correlation_id=correlation_id)
            return self.config.default_response

        result = await self.llm_provider.send_prompt(self._build_prompt(payload), correlation_id=correlation_id)
        if not result.success:
            self._logger.warning(
                "fallback_llm_failed",
                correlation_id=correlation_id,
                error=result.error.message,
            )
            return self.config.default_response

        text = result.data.strip()
        return text or self.config.default_response

    @staticmethod
    def _build_prompt(payload: Any) -> str:
        if isinstance(payload, dict):
            error = payload.get("error", "unknown error")
            context = {key: value for key, value in payload.items() if key != "error"}
        else:
            error, context = payload, {}
        return (
            f"A wine recommendation request failed with error: {error}.\n"
            f"Context: {json.dumps(context, default=str, ensure_ascii=False)}\n"
            "Generate a short, user-friendly fallback message that still suggests "
            "a safe wine choice."
        )
