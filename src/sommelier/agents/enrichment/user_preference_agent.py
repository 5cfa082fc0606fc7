"""
sommelier.agents.enrichment.user_preference_agent - Per-User Preferences
==========================================================================

Remembers what each user asked for. Preferences and recommendation history
live in the bus's shared context memory under this agent's id, so other
agents can be handed a copy with ``bus.share_context``.

Message Types:
    get_preferences
        payload  {"user_id": "u1", "preferences": {"wineType": "red"}}
        reply    preferences_result {"preferences": {...merged...}}

        Incoming preferences win over stored ones key by key. Without a
        user id nothing is stored and the incoming preferences are echoed.

    update_recommendation_history   (fire and forget, no reply)
        payload  {"user_id": "u1", "recommendation": {...}}

Context Keys:
    preferences:<user_id>   merged preference dict
    history:<user_id>       list of past recommendation payloads
"""

from __future__ import annotations

from typing import Any, Optional

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.enums import AgentId, ErrorCode, MessageType
from sommelier.core.exceptions import AgentError
from sommelier.core.messages import AgentMessage
from sommelier.core.result import Err, Ok
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult


def preferences_key(user_id: str) -> str:
    return f"preferences:{user_id}"


def history_key(user_id: str) -> str:
    return f"history:{user_id}"


class UserPreferenceAgent(CommunicatingAgent):
    """Stores and merges per-user wine preferences."""

    def __init__(self, bus: EnhancedAgentCommunicationBus) -> None:
        super().__init__(
            AgentId.USER_PREFERENCE.value,
            bus,
            name="UserPreferenceAgent",
            capabilities=["preference-storage", "recommendation-history"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {
            MessageType.GET_PREFERENCES: self._handle_get_preferences,
            MessageType.UPDATE_RECOMMENDATION_HISTORY: self._handle_update_history,
        }

    # =========================================================================
    # Queries
    # =========================================================================

    def get_preferences(self, user_id: str) -> dict[str, Any]:
        return dict(self.bus.get_context(self.agent_id, preferences_key(user_id)) or {})

    def get_history(self, user_id: str) -> list[Any]:
        return list(self.bus.get_context(self.agent_id, history_key(user_id)) or [])

    # =========================================================================
    # Handlers
    # =========================================================================

    async def _handle_get_preferences(self, message: AgentMessage) -> HandlerResult:
        payload = message.payload
        if payload is None:
            return Err(self._missing_payload(message.correlation_id))
        if not isinstance(payload, dict):
            return Err(
                AgentError(
                    "Preference request payload must be an object",
                    error_code=ErrorCode.INVALID_PAYLOAD,
                    agent_id=self.agent_id,
                    correlation_id=message.correlation_id,
                )
            )

        incoming = payload.get("preferences") or {}
        user_id: Optional[str] = payload.get("user_id") or message.user_id

        if user_id:
            merged = {**self.get_preferences(user_id), **incoming}
            self.bus.set_context(
                self.agent_id,
                preferences_key(user_id),
                merged,
                metadata={"correlation_id": message.correlation_id},
            )
        else:
            merged = dict(incoming)

        self._logger.info(
            "preferences_resolved",
            user_id=user_id,
            correlation_id=message.correlation_id,
            keys=sorted(merged),
        )
        return Ok(
            message.create_response(
                MessageType.PREFERENCES_RESULT,
                {"preferences": merged},
                self.agent_id,
            )
        )

    async def _handle_update_history(self, message: AgentMessage) -> HandlerResult:
        payload = message.payload
        if not isinstance(payload, dict):
            return Err(self._missing_payload(message.correlation_id))

        user_id = payload.get("user_id") or message.user_id
        if not user_id:
            self._logger.warning("history_update_without_user", correlation_id=message.correlation_id)
            return Ok(None)

        history = self.get_history(user_id)
        history.append(payload.get("recommendation"))
        self.bus.set_context(self.agent_id, history_key(user_id), history)

        self._logger.debug("recommendation_history_updated", user_id=user_id, size=len(history))
        return Ok(None)

    def _missing_payload(self, correlation_id: str) -> AgentError:
        return AgentError(
            "Missing payload in preference request",
            error_code=ErrorCode.MISSING_PAYLOAD,
            agent_id=self.agent_id,
            correlation_id=correlation_id,
        )
