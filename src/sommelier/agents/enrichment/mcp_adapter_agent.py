"""
sommelier.agents.enrichment.mcp_adapter_agent - External Tool Adapter
=======================================================================

Placeholder for calls to external tools over the Model Context Protocol.
No tool is actually called: the agent acknowledges the request and echoes
what it received, so the coordinator's pipeline has the stage in place.

    mcp_tool_call  {...anything...}
        ↓
    mcp_tool_result  {"status": "MCP tool call simulated (basic)",
                      "receivedInput": {...}}
"""

from __future__ import annotations

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

SIMULATED_STATUS = "MCP tool call simulated (basic)"


class MCPAdapterAgent(CommunicatingAgent):
    def __init__(self, bus: EnhancedAgentCommunicationBus) -> None:
        super().__init__(
            AgentId.MCP_ADAPTER.value,
            bus,
            name="MCPAdapterAgent",
            capabilities=["mcp-tool-integration", "external-service-adapter"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.MCP_TOOL_CALL: self._handle_tool_call}

    async def _handle_tool_call(self, message: AgentMessage) -> HandlerResult:
        if message.payload is None:
            return Err(
                AgentError(
                    "Missing payload in MCP tool request",
                    error_code=ErrorCode.MISSING_PAYLOAD,
                    agent_id=self.agent_id,
                    correlation_id=message.correlation_id,
                )
            )

        self._logger.debug("mcp_tool_call_simulated", correlation_id=message.correlation_id)
        return Ok(
            message.create_response(
                MessageType.MCP_TOOL_RESULT,
                {"status": SIMULATED_STATUS, "receivedInput": message.payload},
                self.agent_id,
            )
        )
