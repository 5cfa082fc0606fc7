"""
sommelier.core - Foundation Layer
===================================

The building blocks every other package depends on:

    - config:      Configuration management (SommelierConfig and its sections)
    - enums:       Type-safe enumerations (MessageType, ErrorCode, AgentId, ...)
    - exceptions:  Exception hierarchy (SommelierError, AgentError, ...)
    - messages:    The AgentMessage envelope and its factory
    - result:      Ok / Err tagged results returned by handlers
    - logging:     structlog configuration

Dependency Rule:
    core/ depends on NOTHING else in the sommelier package.
"""

from sommelier.core.config import (
    BusConfig,
    CircuitBreakerConfig,
    CoordinatorConfig,
    DeadLetterConfig,
    FallbackConfig,
    LLMConfig,
    RetryConfig,
    SommelierConfig,
    ValidationConfig,
    get_default_config,
    load_config,
)
from sommelier.core.enums import (
    AgentId,
    CircuitState,
    ErrorCode,
    MessageType,
    Priority,
    RecommendationSource,
)
from sommelier.core.exceptions import (
    AgentError,
    CircuitOpenError,
    ConfigurationError,
    MessageBusError,
    RecommendationFailedError,
    SommelierError,
)
from sommelier.core.messages import AgentMessage, create_agent_message
from sommelier.core.result import Err, Ok, Result

__all__ = [
    # Config
    "SommelierConfig",
    "BusConfig",
    "CircuitBreakerConfig",
    "RetryConfig",
    "DeadLetterConfig",
    "FallbackConfig",
    "CoordinatorConfig",
    "ValidationConfig",
    "LLMConfig",
    "load_config",
    "get_default_config",
    # Enums
    "AgentId",
    "CircuitState",
    "ErrorCode",
    "MessageType",
    "Priority",
    "RecommendationSource",
    # Exceptions
    "SommelierError",
    "AgentError",
    "CircuitOpenError",
    "ConfigurationError",
    "MessageBusError",
    "RecommendationFailedError",
    # Messages
    "AgentMessage",
    "create_agent_message",
    # Result
    "Ok",
    "Err",
    "Result",
]
