"""
sommelier.orchestration - Orchestration Layer
===============================================

Components that route messages between agents and keep failures contained:

    - CircuitBreaker:                 Three-state call gating
    - RetryManager:                   Policy-driven retries through a breaker
    - Dead-letter pipeline:           Queue, handlers and processors
    - SharedContextMemory:            Per-agent context with version history
    - ConversationHistoryStore:       Recent conversation turns per user
    - AgentCommunicationBus:          Registry, pub/sub, context, LLM access
    - EnhancedAgentCommunicationBus:  Handler tables and request/response

The coordinator lives in ``sommelier.orchestration.sommelier_coordinator``.
It is an agent itself, so it is imported from there rather than re-exported
here (the agent layer imports this package).
"""

from sommelier.orchestration.circuit_breaker import CircuitBreaker
from sommelier.orchestration.communication_bus import AgentCommunicationBus, AgentInfo
from sommelier.orchestration.context_memory import ContextEntry, SharedContextMemory
from sommelier.orchestration.conversation_history import ConversationHistoryStore, ConversationTurn
from sommelier.orchestration.dead_letter import (
    BasicDeadLetterProcessor,
    DeadLetterHandler,
    DeadLetterProcessor,
    DeadLetterRecord,
    InMemoryDeadLetterQueue,
    LoggingDeadLetterHandler,
)
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus
from sommelier.orchestration.retry_manager import (
    BasicRetryManager,
    ExponentialBackoffPolicy,
    FixedDelayPolicy,
    RetryManager,
    RetryPolicy,
)

__all__ = [
    # Resilience
    "CircuitBreaker",
    "RetryManager",
    "BasicRetryManager",
    "RetryPolicy",
    "ExponentialBackoffPolicy",
    "FixedDelayPolicy",
    # Dead letters
    "DeadLetterRecord",
    "InMemoryDeadLetterQueue",
    "DeadLetterHandler",
    "LoggingDeadLetterHandler",
    "DeadLetterProcessor",
    "BasicDeadLetterProcessor",
    # Buses
    "AgentInfo",
    "AgentCommunicationBus",
    "EnhancedAgentCommunicationBus",
    "ContextEntry",
    "SharedContextMemory",
    # Conversations
    "ConversationTurn",
    "ConversationHistoryStore",
]
