"""
sommelier.core.messages - Agent Communication Envelope
========================================================

This module defines the envelope that flows through the communication bus.
Every request and every response between agents is an ``AgentMessage``.

Message Architecture:

    ┌─────────────────────────────────────────────────────────────┐
    │  AgentMessage (envelope, immutable)                          │
    │  ├── id:               Unique identifier (uuid4 hex)         │
    │  ├── type:             Handler selector ("analyze_value")    │
    │  ├── payload:          Any JSON-ish data                     │
    │  ├── source_agent:     Who sent it                           │
    │  ├── target_agent:     Who it's for ("*" = broadcast)        │
    │  ├── conversation_id:  Groups messages of one dialogue       │
    │  ├── correlation_id:   Pairs a response with its request     │
    │  ├── timestamp:        When it was created (UTC)             │
    │  ├── priority:         HIGH / NORMAL / LOW                   │
    │  ├── user_id:          End user, if known                    │
    │  └── metadata:         Free-form tracking data               │
    └─────────────────────────────────────────────────────────────┘

A response carries the same ``correlation_id`` as its request. The bus pairs
the two by that field alone, so ``create_response`` is the safe way to build
a reply.

Usage:
    >>> msg = create_agent_message(
    ...     type=MessageType.ANALYZE_VALUE,
    ...     payload={"preferences": {"wineType": "red"}},
    ...     source_agent="sommelier-coordinator",
    ...     target_agent="value-analysis-agent",
    ...     conversation_id="conv-1",
    ...     correlation_id="sommelier-coordinator-1700000000000-ab12",
    ... )
    >>> reply = msg.create_response(
    ...     MessageType.VALUE_ANALYSIS_RESULT, {"analysis": "..."}, "value-analysis-agent"
    ... )
    >>> reply.correlation_id == msg.correlation_id
    True
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional, Union
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator

from sommelier.core.enums import Priority


# =============================================================================
# Helper Functions
# =============================================================================
def _generate_message_id() -> str:
    """Generate a unique message identifier using UUID4."""
    return uuid4().hex


def _now() -> datetime:
    """Get the current UTC timestamp."""
    return datetime.now(timezone.utc)


# =============================================================================
# Agent Message (The Envelope)
# =============================================================================
# Envelopes are frozen: handlers build new ones (create_response) rather
# than mutating what they received.
# =============================================================================
class AgentMessage(BaseModel):
    """Universal message envelope for agent communication.

    Attributes:
        id: Unique identifier for tracking. Auto-generated.
        type: Message type tag. Selects the handler on the receiving agent.
            Enum members are stored as their plain string value.
        payload: The message data. Not validated by the bus.
        source_agent: ID of the agent that created this message.
        target_agent: Recipient agent ID, or "*" for broadcast.
        conversation_id: Groups the messages of one user conversation.
        correlation_id: Links a request with its response.
        timestamp: Creation time (UTC).
        priority: Informational urgency.
        user_id: End user the message concerns, if any.
        metadata: Arbitrary key-value pairs.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        default_factory=_generate_message_id,
        description="Unique message identifier",
    )
    type: str = Field(
        description="Message type tag (selects the handler)",
    )
    payload: Any = Field(
        default=None,
        description="Message data (structure depends on type)",
    )
    source_agent: str = Field(
        description="ID of the sending agent",
    )
    target_agent: str = Field(
        default="*",
        description="ID of the receiving agent ('*' = broadcast)",
    )
    conversation_id: str = Field(
        default="",
        description="Conversation the message belongs to",
    )
    correlation_id: str = Field(
        default="",
        description="Pairs a response with its request",
    )
    timestamp: datetime = Field(
        default_factory=_now,
        description="Message creation timestamp (UTC)",
    )
    priority: Priority = Field(
        default=Priority.NORMAL,
        description="Message priority",
    )
    user_id: Optional[str] = Field(
        default=None,
        description="End user the message concerns",
    )
    metadata: Optional[dict[str, Any]] = Field(
        default=None,
        description="Arbitrary metadata",
    )

    @field_validator("type", mode="before")
    @classmethod
    def _normalise_type(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value

    def create_response(
        self,
        type: Union[str, Enum],
        payload: Any,
        source_agent: str,
    ) -> AgentMessage:
        """Create a reply linked to this message.

        The reply gets a fresh id and timestamp, keeps this message's
        correlation_id, conversation_id and user_id, and targets the
        original sender.

        Args:
            type: Type of the response message.
            payload: Response data.
            source_agent: ID of the responding agent.

        Returns:
            A new AgentMessage paired with this one.
        """
        return AgentMessage(
            type=type,
            payload=payload,
            source_agent=source_agent,
            target_agent=self.source_agent,
            conversation_id=self.conversation_id,
            correlation_id=self.correlation_id,
            priority=self.priority,
            user_id=self.user_id,
        )


# =============================================================================
# Factory
# =============================================================================
def create_agent_message(
    type: Union[str, Enum],
    payload: Any,
    source_agent: str,
    conversation_id: str,
    correlation_id: str,
    target_agent: str = "*",
    user_id: Optional[str] = None,
    priority: Priority = Priority.NORMAL,
    metadata: Optional[dict[str, Any]] = None,
) -> AgentMessage:
    """Build a new envelope with a fresh id and timestamp.

    The payload is carried as-is; receivers are responsible for checking it.
    """
    return AgentMessage(
        type=type,
        payload=payload,
        source_agent=source_agent,
        target_agent=target_agent,
        conversation_id=conversation_id,
        correlation_id=correlation_id,
        user_id=user_id,
        priority=priority,
        metadata=metadata,
    )
