"""
sommelier.orchestration.communication_bus - Agent Registry, Pub/Sub, Context
==============================================================================

The base communication bus: the in-process meeting point every agent is
registered with. It provides four services:

    ┌───────────────────────────────────────────────────────────────────┐
    │                    AgentCommunicationBus                          │
    │                                                                   │
    │  Registry      register_agent / get_agent_info / list_agents      │
    │  Pub/Sub       publish / subscribe / unsubscribe                  │
    │                ("message" or "message:<topic>" events)            │
    │  Context       set/get/share/broadcast_context                    │
    │                (only for registered agents)                       │
    │  LLM access    send_llm_prompt → Result[str, AgentError]          │
    └───────────────────────────────────────────────────────────────────┘

Request/response routing lives in the subclass,
``EnhancedAgentCommunicationBus``.

Usage:
    >>> bus = AgentCommunicationBus(llm_provider=MockLLMProvider())
    >>> bus.register_agent("user-preference-agent", "UserPreferenceAgent", ["preferences"])
    >>> bus.subscribe("explanation-agent", on_message, topic="recommendations")
    >>> await bus.publish(msg, topic="recommendations")
"""

from __future__ import annotations

import asyncio
import inspect
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional, Union

import structlog
from pydantic import BaseModel, Field

from sommelier.core.enums import ErrorCode
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok, Result
from sommelier.integrations.llm.base import BaseLLMProvider
from sommelier.orchestration.context_memory import (
    ContextEntry,
    ContextVersion,
    SharedContextMemory,
)

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

MessageCallback = Callable[[AgentMessage], Union[Awaitable[None], None]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _event_name(topic: Optional[str]) -> str:
    return f"message:{topic}" if topic else "message"


# =============================================================================
# Agent Info
# =============================================================================
class AgentInfo(BaseModel):
    """Registry entry for an agent known to the bus."""

    id: str = Field(description="Unique agent id")
    name: str = Field(description="Human-readable agent name")
    capabilities: list[str] = Field(default_factory=list)
    last_seen: datetime = Field(default_factory=_now)


# =============================================================================
# Base Bus
# =============================================================================
class AgentCommunicationBus:
    """In-process registry, pub/sub fan-out and shared context for agents.

    Attributes:
        llm_provider: Optional LLM client used by ``send_llm_prompt``.
    """

    def __init__(self, llm_provider: Optional[BaseLLMProvider] = None) -> None:
        self.llm_provider = llm_provider

        self._agents: dict[str, AgentInfo] = {}
        # event name → [(agent_id, callback)], in subscription order
        self._listeners: dict[str, list[tuple[str, MessageCallback]]] = {}
        self._context = SharedContextMemory()

        self._logger = logger.bind(component="communication_bus")

    # =========================================================================
    # Registry
    # =========================================================================

    def register_agent(
        self,
        agent_id: str,
        name: str,
        capabilities: Optional[list[str]] = None,
    ) -> AgentInfo:
        """Insert or refresh an agent's registry entry."""
        info = AgentInfo(id=agent_id, name=name, capabilities=list(capabilities or []))
        self._agents[agent_id] = info
        self._logger.debug("agent_registered", agent_id=agent_id, name=name)
        return info

    def get_agent_info(self, agent_id: str) -> Optional[AgentInfo]:
        return self._agents.get(agent_id)

    def list_agents(self) -> list[AgentInfo]:
        return list(self._agents.values())

    # =========================================================================
    # Pub/Sub
    # =========================================================================

    async def publish(self, message: AgentMessage, topic: Optional[str] = None) -> None:
        """Deliver ``message`` to every subscriber of the topic.

        Subscriber errors are logged and never reach the publisher.
        """
        event = _event_name(topic)
        listeners = list(self._listeners.get(event, []))

        self._logger.debug(
            "message_publishing",
            event_name=event,
            message_id=message.id,
            message_type=message.type,
            subscriber_count=len(listeners),
        )

        if not listeners:
            return

        results = await asyncio.gather(
            *(self._invoke_callback(callback, message) for _, callback in listeners),
            return_exceptions=True,
        )
        for (agent_id, _), result in zip(listeners, results):
            if isinstance(result, Exception):
                self._logger.error(
                    "subscriber_callback_error",
                    event_name=event,
                    agent_id=agent_id,
                    message_id=message.id,
                    error=str(result),
                )

    @staticmethod
    async def _invoke_callback(callback: MessageCallback, message: AgentMessage) -> None:
        outcome = callback(message)
        if inspect.isawaitable(outcome):
            await outcome

    def subscribe(
        self,
        agent_id: str,
        callback: MessageCallback,
        topic: Optional[str] = None,
    ) -> None:
        """Add a subscriber. Subscribing the same callback twice delivers twice."""
        event = _event_name(topic)
        self._listeners.setdefault(event, []).append((agent_id, callback))
        self._logger.debug("agent_subscribed", agent_id=agent_id, event_name=event)

    def unsubscribe(
        self,
        agent_id: str,
        callback: MessageCallback,
        topic: Optional[str] = None,
    ) -> None:
        """Remove one matching subscription; other callbacks stay."""
        event = _event_name(topic)
        listeners = self._listeners.get(event, [])
        for index, (owner, registered) in enumerate(listeners):
            if owner == agent_id and registered == callback:
                del listeners[index]
                break
        if not listeners:
            self._listeners.pop(event, None)
        self._logger.debug("agent_unsubscribed", agent_id=agent_id, event_name=event)

    def get_subscriptions(self, agent_id: str) -> list[str]:
        """Event names ``agent_id`` currently has at least one callback on."""
        return [
            event
            for event, listeners in self._listeners.items()
            if any(owner == agent_id for owner, _ in listeners)
        ]

    # =========================================================================
    # Shared Context
    # =========================================================================
    # Context operations silently do nothing for agents that never
    # registered.
    # =========================================================================

    def set_context(
        self,
        agent_id: str,
        key: str,
        value: Any,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        if agent_id not in self._agents:
            self._logger.debug("context_write_ignored", agent_id=agent_id, key=key)
            return
        self._context.set_context(agent_id, key, value, metadata)

    def get_context(self, agent_id: str, key: str) -> Any:
        entry = self.get_context_with_metadata(agent_id, key)
        return entry.value if entry is not None else None

    def get_context_with_metadata(self, agent_id: str, key: str) -> Optional[ContextEntry]:
        if agent_id not in self._agents:
            return None
        return self._context.get_context(agent_id, key)

    def share_context(self, source_agent_id: str, target_agent_id: str, key: str) -> None:
        entry = self.get_context_with_metadata(source_agent_id, key)
        if entry is not None:
            self.set_context(target_agent_id, key, entry.value, dict(entry.metadata))

    def broadcast_context(self, agent_id: str, key: str) -> None:
        entry = self.get_context_with_metadata(agent_id, key)
        if entry is None:
            return
        for info in self.list_agents():
            if info.id != agent_id:
                self.set_context(info.id, key, entry.value, dict(entry.metadata))

    def get_version_history(self, key: str) -> list[ContextVersion]:
        return self._context.get_version_history(key)

    # =========================================================================
    # LLM Access
    # =========================================================================

    async def send_llm_prompt(
        self,
        prompt: str,
        correlation_id: Optional[str] = None,
    ) -> Result[str, AgentError]:
        """Forward a prompt to the configured LLM provider.

        Returns:
            Ok(text), or Err with LLM_SERVICE_NOT_CONFIGURED when no provider
            was injected, or LLM_SERVICE_ERROR when the provider fails.
        """
        if self.llm_provider is None:
            self._logger.warning("llm_not_configured", correlation_id=correlation_id)
            return Err(
                AgentError(
                    "LLM service is not configured on the communication bus",
                    error_code=ErrorCode.LLM_SERVICE_NOT_CONFIGURED,
                    agent_id=self.get_name(),
                    correlation_id=correlation_id,
                    recoverable=False,
                )
            )

        return await self.llm_provider.send_prompt(prompt, correlation_id=correlation_id)

    def get_name(self) -> str:
        return "AgentCommunicationBus"
