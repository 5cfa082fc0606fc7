"""
sommelier.agents.base - Communicating Agent Base Class
========================================================

Every sommelier agent talks to the others only through the enhanced bus.
This base class wires an agent into the bus and gives it the helpers it
needs to send requests and broadcasts.

Handler Table Pattern:
    Subclasses declare which message types they answer by returning a
    handler table from ``_register_handlers()``. The base class merges it
    with the default handlers and registers every entry on the bus once,
    at construction time.

    ┌──────────────────────────────────────────────────────────┐
    │  CommunicatingAgent.__init__(agent_id, bus)              │
    │  ┌────────────────────────────────────────────────────┐  │
    │  │ 1. bus.register_agent(agent_id, name, capabilities) │  │
    │  │ 2. table = defaults | _register_handlers()  ← you  │  │
    │  │ 3. bus.register_message_handler(id, type, ...)      │  │
    │  └────────────────────────────────────────────────────┘  │
    └──────────────────────────────────────────────────────────┘

    Default handlers (a subclass entry for the same type replaces them):
        error          log it, nothing to send back
        broadcast      reply with broadcast-ack {"status": "acknowledged"}
        broadcast-ack  log it

Handler Contract:
    ``async handler(message) -> Result[AgentMessage | None, AgentError]``

    - ``Ok(envelope)``: the bus delivers ``envelope`` to the sender.
    - ``Ok(None)``: nothing is sent back.
    - ``Err(error)``: the bus turns ``error`` into an ``error`` envelope.

    Handlers return ``Err`` rather than raising.

Usage:
    class EchoAgent(CommunicatingAgent):
        def _register_handlers(self):
            return {"echo": self._handle_echo}

        async def _handle_echo(self, message):
            return Ok(message.create_response("echo-result", message.payload, self.agent_id))
"""

from __future__ import annotations

import time
import uuid
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Optional, Union

import structlog

from sommelier.core.enums import ErrorCode, MessageType, as_str
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage, create_agent_message
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import (
    EnhancedAgentCommunicationBus,
    HandlerResult,
    MessageHandler,
)

# =============================================================================
# Logger Setup
# =============================================================================
# Each agent binds its id to the logger so every line says who logged it.
# =============================================================================
logger = structlog.get_logger()

HandlerTable = dict[Union[str, Enum], MessageHandler]


class CommunicatingAgent(ABC):
    """Abstract base class for all agents connected to the bus.

    What CommunicatingAgent Handles:
        - Registering the agent and its handler table on the bus
        - Dispatching inbound messages by type
        - Default error / broadcast / broadcast-ack handling
        - Request/response and broadcast helpers
        - Correlation id generation

    What Subclasses Must Implement:
        - _register_handlers(): message type → handler

    Attributes:
        agent_id: Unique id the bus routes on (e.g. "fallback-agent").
        bus: The enhanced bus this agent is registered with.
    """

    def __init__(
        self,
        agent_id: str,
        bus: EnhancedAgentCommunicationBus,
        name: Optional[str] = None,
        capabilities: Optional[list[str]] = None,
    ) -> None:
        """Register the agent and its handlers on ``bus``.

        Args:
            agent_id: Unique routing id.
            bus: Enhanced communication bus shared by all agents.
            name: Human-readable name. Defaults to the class name.
            capabilities: Capability tags published in the bus registry.
        """
        self.agent_id = agent_id
        self.bus = bus
        self._name = name or type(self).__name__
        self._capabilities = list(capabilities or ["communication"])

        self._logger = logger.bind(agent_id=agent_id)

        self.bus.register_agent(agent_id, self._name, self._capabilities)

        table: dict[str, MessageHandler] = {
            MessageType.ERROR.value: self._handle_error,
            MessageType.BROADCAST.value: self._handle_broadcast,
            MessageType.BROADCAST_ACK.value: self._handle_broadcast_ack,
        }
        for message_type, handler in self._register_handlers().items():
            table[as_str(message_type)] = handler
        self._handlers = table

        for message_type in table:
            self.bus.register_message_handler(agent_id, message_type, self.handle_message)

        self._logger.info(
            "agent_initialized",
            name=self._name,
            message_types=sorted(table),
        )

    # =========================================================================
    # Identity
    # =========================================================================

    def get_name(self) -> str:
        return self._name

    def get_capabilities(self) -> list[str]:
        return list(self._capabilities)

    @property
    def handled_types(self) -> list[str]:
        """Message types this agent answers, defaults included."""
        return sorted(self._handlers)

    # =========================================================================
    # Abstract Methods
    # =========================================================================

    @abstractmethod
    def _register_handlers(self) -> HandlerTable:
        """Return this agent's handler table.

        Keys may be plain strings or ``MessageType`` members. Called once
        from ``__init__``; attributes the handlers rely on must be set
        before ``super().__init__`` runs.
        """
        ...

    # =========================================================================
    # Dispatch
    # =========================================================================

    async def handle_message(self, message: AgentMessage) -> HandlerResult:
        """Dispatch ``message`` to the handler registered for its type."""
        handler = self._handlers.get(message.type)
        if handler is None:
            self._logger.warning(
                "unhandled_message_type",
                message_type=message.type,
                correlation_id=message.correlation_id,
            )
            return Err(
                AgentError(
                    f"Unhandled message type: {message.type}",
                    error_code=ErrorCode.UNHANDLED_MESSAGE_TYPE,
                    agent_id=self.agent_id,
                    correlation_id=message.correlation_id,
                    recoverable=False,
                    details={"message_type": message.type},
                )
            )
        return await handler(message)

    async def _handle_error(self, message: AgentMessage) -> HandlerResult:
        self._logger.warning(
            "error_message_received",
            source_agent=message.source_agent,
            correlation_id=message.correlation_id,
            payload=message.payload,
        )
        return Ok(None)

    async def _handle_broadcast(self, message: AgentMessage) -> HandlerResult:
        self._logger.info(
            "broadcast_received",
            source_agent=message.source_agent,
            correlation_id=message.correlation_id,
        )
        return Ok(
            message.create_response(
                MessageType.BROADCAST_ACK,
                {"status": "acknowledged"},
                self.agent_id,
            )
        )

    async def _handle_broadcast_ack(self, message: AgentMessage) -> HandlerResult:
        self._logger.debug(
            "broadcast_acknowledged",
            source_agent=message.source_agent,
            correlation_id=message.correlation_id,
        )
        return Ok(None)

    # =========================================================================
    # Sending
    # =========================================================================

    async def send_to_agent(
        self,
        target_agent_id: str,
        message_type: Union[str, Enum],
        payload: Any,
        correlation_id: Optional[str] = None,
        conversation_id: Optional[str] = None,
        user_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> HandlerResult:
        """Send a request to another agent and wait for its reply.

        Args:
            target_agent_id: Recipient agent id.
            message_type: Request type.
            payload: Request body.
            correlation_id: Pairs the reply. Generated when omitted.
            conversation_id: Defaults to the correlation id.
            user_id: End user the request concerns.
            timeout: Seconds to wait. None uses the bus default.

        Returns:
            Ok(reply envelope) or Err(AgentError). Never raises, except
            for cancellation.
        """
        correlation_id = correlation_id or self.generate_correlation_id()
        message = create_agent_message(
            type=message_type,
            payload=payload,
            source_agent=self.agent_id,
            conversation_id=conversation_id or correlation_id,
            correlation_id=correlation_id,
            target_agent=target_agent_id,
            user_id=user_id,
        )

        self._logger.debug(
            "sending_to_agent",
            target_agent=target_agent_id,
            message_type=message.type,
            correlation_id=correlation_id,
        )
        try:
            return await self.bus.send_message_and_wait_for_response(
                target_agent_id, message, timeout=timeout
            )
        except Exception as exc:
            self._logger.error(
                "send_to_agent_failed",
                target_agent=target_agent_id,
                correlation_id=correlation_id,
                error=str(exc),
            )
            return Err(
                AgentError(
                    f"Failed to send message to {target_agent_id}: {exc}",
                    error_code=ErrorCode.COMMUNICATION_ERROR,
                    agent_id=self.agent_id,
                    correlation_id=correlation_id,
                    details={"original_error": str(exc)},
                )
            )

    def broadcast(
        self,
        message_type: Union[str, Enum],
        payload: Any,
        correlation_id: Optional[str] = None,
    ) -> AgentMessage:
        """Send ``payload`` to every agent that handles ``message_type``."""
        correlation_id = correlation_id or self.generate_correlation_id()
        message = create_agent_message(
            type=message_type,
            payload=payload,
            source_agent=self.agent_id,
            conversation_id=correlation_id,
            correlation_id=correlation_id,
        )
        self._logger.info(
            "broadcasting_message",
            message_type=message.type,
            correlation_id=correlation_id,
        )
        self.bus.broadcast(message)
        return message

    def generate_correlation_id(self) -> str:
        return f"{self.agent_id}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"

    def __repr__(self) -> str:
        return f"{type(self).__name__}(agent_id={self.agent_id!r})"
