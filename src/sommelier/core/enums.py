"""
sommelier.core.enums - Type-Safe Enumerations
===============================================

This module defines the enumeration types shared by the bus, the resilience
components and the agents.

All enums inherit from both `str` and `Enum`, which means:
    - They serialize to strings in JSON/YAML (Pydantic-friendly)
    - They compare equal to plain strings: MessageType.ERROR == "error"

They do NOT hash like plain strings, though (Enum hashes by member name),
so anything used as a dict key on the bus is normalised with ``as_str()``
first.

Architecture Mapping:

    ┌─────────────────────────────────────────────────────────────────┐
    │  COMMUNICATION LAYER                                            │
    │    MessageType: The tag that selects a handler on the bus       │
    │    Priority:    Envelope urgency (HIGH / NORMAL / LOW)          │
    ├─────────────────────────────────────────────────────────────────┤
    │  RESILIENCE LAYER                                               │
    │    CircuitState: CLOSED → OPEN → HALF_OPEN → CLOSED             │
    │    ErrorCode:    Taxonomy carried by every AgentError           │
    ├─────────────────────────────────────────────────────────────────┤
    │  AGENT LAYER                                                    │
    │    AgentId:         Well-known ids the coordinator addresses    │
    │    RecommendationSource: Which recommender backs the pipeline   │
    └─────────────────────────────────────────────────────────────────┘
"""

from enum import Enum
from typing import Union


def as_str(value: Union[str, Enum]) -> str:
    """Return the plain string behind a str-Enum member (or the string itself).

    Example:
        >>> as_str(MessageType.ERROR)
        'error'
        >>> as_str("error")
        'error'
    """
    if isinstance(value, Enum):
        return str(value.value)
    return value


# =============================================================================
# Message Type Enumeration
# =============================================================================
# Request types and the response types their handlers reply with. The bus
# itself only cares about one of them: ERROR, the sentinel that turns a
# response into a failed Result.
# =============================================================================
class MessageType(str, Enum):
    """Message types routed through the communication bus.

    Usage:
        >>> msg_type = MessageType.VALIDATE_INPUT
        >>> msg_type.value  # "validate_input"
    """

    # --- Pipeline requests ---
    VALIDATE_INPUT = "validate_input"
    ANALYZE_VALUE = "analyze_value"
    GET_PREFERENCES = "get_preferences"
    MCP_TOOL_CALL = "mcp_tool_call"
    GENERATE_RECOMMENDATIONS = "generate_recommendations"
    GENERATE_EXPLANATION = "generate_explanation"
    FALLBACK_REQUEST = "fallback_request"
    EMERGENCY_RECOMMENDATIONS = "emergency_recommendations"
    UPDATE_RECOMMENDATION_HISTORY = "update_recommendation_history"
    ORCHESTRATE_RECOMMENDATION_REQUEST = "orchestrate_recommendation_request"
    PREFERENCE_EXTRACTION_REQUEST = "preference_extraction_request"

    # --- Pipeline responses ---
    VALIDATION_RESULT = "validation_result"
    VALUE_ANALYSIS_RESULT = "value_analysis_result"
    PREFERENCES_RESULT = "preferences_result"
    MCP_TOOL_RESULT = "mcp_tool_result"
    RECOMMENDATIONS_RESULT = "recommendations_result"
    EXPLANATION_RESULT = "explanation_result"
    FALLBACK_RESPONSE = "fallback-response"
    FINAL_RECOMMENDATION = "final_recommendation"
    PREFERENCE_EXTRACTION_RESULT = "preference_extraction_result"

    # --- Housekeeping ---
    BROADCAST = "broadcast"
    BROADCAST_ACK = "broadcast-ack"
    ERROR = "error"


# =============================================================================
# Priority Enumeration
# =============================================================================
class Priority(str, Enum):
    """Envelope priority. Informational only; the bus does not reorder."""

    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


# =============================================================================
# Circuit State Enumeration
# =============================================================================
#   CLOSED    = requests flow through
#   OPEN      = requests are short-circuited to the fallback
#   HALF_OPEN = probing whether the protected operation has recovered
# =============================================================================
class CircuitState(str, Enum):
    """States of the circuit breaker.

    State Machine:
        CLOSED ──(failures >= failure_threshold)──> OPEN
        OPEN ──(next call after timeout)──> HALF_OPEN
        HALF_OPEN ──(successes >= success_threshold)──> CLOSED
        HALF_OPEN ──(failure)──> OPEN
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


# =============================================================================
# Error Code Enumeration
# =============================================================================
# Machine-readable codes carried by AgentError.error_code. Callers branch on
# these instead of parsing messages. The list is open: stages add their own.
# =============================================================================
class ErrorCode(str, Enum):
    """Error taxonomy shared by the bus, the agents and the coordinator."""

    # --- Bus routing ---
    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    NO_HANDLER_REGISTERED = "NO_HANDLER_REGISTERED"
    NO_MESSAGE_TYPE_HANDLER = "NO_MESSAGE_TYPE_HANDLER"
    HANDLER_EXECUTION_ERROR = "HANDLER_EXECUTION_ERROR"
    UNHANDLED_MESSAGE_TYPE = "UNHANDLED_MESSAGE_TYPE"
    DUPLICATE_CORRELATION_ID = "DUPLICATE_CORRELATION_ID"
    COMMUNICATION_ERROR = "COMMUNICATION_ERROR"

    # --- External collaborators ---
    LLM_SERVICE_ERROR = "LLM_SERVICE_ERROR"
    LLM_SERVICE_NOT_CONFIGURED = "LLM_SERVICE_NOT_CONFIGURED"
    NEO4J_QUERY_FAILED = "NEO4J_QUERY_FAILED"
    NEO4J_CONNECTION_FAILED = "NEO4J_CONNECTION_FAILED"

    # --- Resilience ---
    CIRCUIT_OPEN = "CIRCUIT_OPEN"

    # --- Agent validation ---
    MISSING_PAYLOAD = "MISSING_PAYLOAD"
    INVALID_PAYLOAD = "INVALID_PAYLOAD"
    INPUT_VALIDATION_FAILED = "INPUT_VALIDATION_FAILED"
    FALLBACK_GENERATION_ERROR = "FALLBACK_GENERATION_ERROR"

    # --- Orchestration ---
    UNKNOWN_REQUEST_TYPE = "UNKNOWN_REQUEST_TYPE"
    RECOMMENDATION_FAILED = "RECOMMENDATION_FAILED"
    ORCHESTRATION_FAILURE = "ORCHESTRATION_FAILURE"


# =============================================================================
# Agent Id Enumeration
# =============================================================================
# The coordinator addresses its collaborators by these ids. Any object that
# registers handlers on the bus under one of them takes part in the pipeline.
# =============================================================================
class AgentId(str, Enum):
    """Well-known agent ids used by the recommendation pipeline."""

    COORDINATOR = "sommelier-coordinator"
    INPUT_VALIDATION = "input-validation-agent"
    VALUE_ANALYSIS = "value-analysis-agent"
    USER_PREFERENCE = "user-preference-agent"
    MCP_ADAPTER = "mcp-adapter-agent"
    RECOMMENDATION = "recommendation-agent"
    LLM_RECOMMENDATION = "llm-recommendation-agent"
    EXPLANATION = "explanation-agent"
    FALLBACK = "fallback-agent"
    LLM_PREFERENCE_EXTRACTOR = "llm-preference-extractor-agent"


class RecommendationSource(str, Enum):
    """Backend used by the Recommendation stage."""

    KNOWLEDGE_GRAPH = "knowledge_graph"
    LLM = "llm"
