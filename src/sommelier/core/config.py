"""
sommelier.core.config - Configuration Management
==================================================

Configuration can be loaded from several sources, highest priority first:

    1. Explicit constructor arguments
    2. Environment variables (prefixed with SOMMELIER_)
    3. YAML configuration file (sommelier.yaml)
    4. Default values defined in the models below

Architecture Context:
    The top-level SommelierConfig is created once by the facade and its
    sections are handed to the components that need them:

        SommelierConfig
            ├── BusConfig            → EnhancedAgentCommunicationBus
            ├── CircuitBreakerConfig → per-stage CircuitBreakers, graph wrapper
            ├── RetryConfig          → BasicRetryManager (dead-letter replay)
            ├── DeadLetterConfig     → BasicDeadLetterProcessor
            ├── FallbackConfig       → FallbackAgent, SommelierCoordinator
            ├── CoordinatorConfig    → SommelierCoordinator
            ├── ValidationConfig     → InputValidationAgent
            └── LLMConfig            → LLM provider

Usage:
    # Load from environment variables:
    config = SommelierConfig()

    # Load from YAML file:
    config = load_config("sommelier.yaml")

Environment Variables:
    SOMMELIER_LOG_LEVEL=DEBUG
    SOMMELIER_LOG_FORMAT=json
    SOMMELIER_BUS__REQUEST_TIMEOUT_SECONDS=5
    SOMMELIER_COORDINATOR__RECOMMENDATION_SOURCE=llm
    SOMMELIER_LLM__PROVIDER=mock
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings

from sommelier.core.enums import RecommendationSource
from sommelier.core.exceptions import ConfigurationError


DEFAULT_FALLBACK_RESPONSE = (
    "Sorry, I encountered an issue and cannot provide a recommendation at this "
    "time. Please try again later."
)


# =============================================================================
# Bus Configuration
# =============================================================================
class BusConfig(BaseModel):
    """Settings for the enhanced communication bus.

    Attributes:
        request_timeout_seconds: How long send_message_and_wait_for_response
            waits before resolving with TIMEOUT_ERROR.
    """

    request_timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Default request/response timeout in seconds",
    )


# =============================================================================
# Resilience Configuration
# =============================================================================
# Breaker and retry settings. The coordinator builds one breaker per target
# agent from CircuitBreakerConfig; the dead-letter replay path uses
# RetryConfig.
# =============================================================================
class CircuitBreakerConfig(BaseModel):
    """Thresholds for every circuit breaker the system creates.

    Attributes:
        failure_threshold: Consecutive failures that open the circuit.
        success_threshold: Successful half-open calls needed to close it.
        timeout_seconds: How long an open circuit rejects calls before
            allowing a trial call.
    """

    failure_threshold: int = Field(
        default=5,
        ge=1,
        description="Consecutive failures before the circuit opens",
    )
    success_threshold: int = Field(
        default=2,
        ge=1,
        description="Half-open successes before the circuit closes",
    )
    timeout_seconds: float = Field(
        default=60.0,
        ge=0,
        description="Seconds an open circuit waits before probing",
    )


class RetryConfig(BaseModel):
    """Retry settings for the dead-letter replay path."""

    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Hard cap on attempts per operation",
    )
    base_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Base delay for exponential backoff",
    )
    max_delay_seconds: float = Field(
        default=5.0,
        ge=0,
        description="Upper bound for exponential backoff",
    )
    fixed_delay_seconds: float = Field(
        default=0.1,
        ge=0,
        description="Delay used by the fixed-delay policy",
    )


class DeadLetterConfig(BaseModel):
    """Dead-letter processor settings."""

    max_replay_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts allowed to the handlers before a record is kept",
    )


# =============================================================================
# Agent Configuration
# =============================================================================
class FallbackConfig(BaseModel):
    """Settings for the degraded-response path."""

    default_response: str = Field(
        default=DEFAULT_FALLBACK_RESPONSE,
        description="Returned when neither the LLM nor the fallback agent can help",
    )


class CoordinatorConfig(BaseModel):
    """Settings for the SommelierCoordinator pipeline.

    Attributes:
        recommendation_source: Default recommender when the request does not
            name one. "knowledge_graph" or "llm".
        stage_timeout_seconds: Per-stage request timeout. None uses the bus
            default.
        history_max_turns: Conversation turns kept per user.
    """

    recommendation_source: RecommendationSource = Field(
        default=RecommendationSource.KNOWLEDGE_GRAPH,
        description="Which agent backs the Recommendation stage",
    )
    stage_timeout_seconds: Optional[float] = Field(
        default=None,
        gt=0,
        description="Per-stage timeout in seconds (None = bus default)",
    )
    history_max_turns: int = Field(
        default=50,
        ge=1,
        description="Conversation turns remembered per user",
    )


class ValidationConfig(BaseModel):
    """Settings for the input validation agent."""

    max_message_length: int = Field(
        default=2000,
        ge=1,
        description="Longest free-text message accepted",
    )


# =============================================================================
# LLM Configuration
# =============================================================================
class LLMConfig(BaseModel):
    """Configuration for the Large Language Model provider.

    Supported Providers:
        - "mock": Mock provider for development and tests

    Attributes:
        provider: Which LLM service to use.
        model: The model to use within the provider.
        api_key: API key. Not needed by the mock provider.
        temperature: 0.0 = deterministic, higher = more varied.
        max_tokens: Maximum tokens per response.
        api_base_url: Custom API endpoint URL.
    """

    provider: str = Field(
        default="mock",
        description="LLM provider name",
    )
    model: str = Field(
        default="mock-sommelier",
        description="Model identifier within the provider",
    )
    api_key: Optional[str] = Field(
        default=None,
        description="API key for authentication (None for mock provider)",
    )
    temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="LLM temperature",
    )
    max_tokens: int = Field(
        default=1024,
        ge=1,
        le=128000,
        description="Maximum tokens per LLM response",
    )
    api_base_url: Optional[str] = Field(
        default=None,
        description="Custom API base URL",
    )


# =============================================================================
# Main Configuration
# =============================================================================
# Environment Variable Mapping:
#   SOMMELIER_LOG_LEVEL                    → config.log_level
#   SOMMELIER_BUS__REQUEST_TIMEOUT_SECONDS → config.bus.request_timeout_seconds
#   SOMMELIER_LLM__PROVIDER                → config.llm.provider
# =============================================================================
class SommelierConfig(BaseSettings):
    """Top-level configuration for the sommelier agent system.

    Attributes:
        environment: Deployment environment.
        log_level: Logging level name.
        log_format: "console" for human-readable logs, "json" for one JSON
            object per line.

    Example:
        >>> config = SommelierConfig(
        ...     log_level="DEBUG",
        ...     coordinator=CoordinatorConfig(recommendation_source="llm"),
        ... )
    """

    # -------------------------------------------------------------------------
    # General Settings
    # -------------------------------------------------------------------------
    environment: Literal["dev", "staging", "prod"] = Field(
        default="dev",
        description="Deployment environment",
    )
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL",
    )
    log_format: Literal["console", "json"] = Field(
        default="console",
        description="Log renderer",
    )

    # -------------------------------------------------------------------------
    # Nested Configurations
    # -------------------------------------------------------------------------
    bus: BusConfig = Field(default_factory=BusConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    dead_letter: DeadLetterConfig = Field(default_factory=DeadLetterConfig)
    fallback: FallbackConfig = Field(default_factory=FallbackConfig)
    coordinator: CoordinatorConfig = Field(default_factory=CoordinatorConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)

    model_config = {
        "env_prefix": "SOMMELIER_",
        "env_nested_delimiter": "__",
        "case_sensitive": False,
    }


# =============================================================================
# Configuration Loader
# =============================================================================
def load_config(path: Optional[str] = None) -> SommelierConfig:
    """Load configuration from a YAML file and/or environment variables.

    Args:
        path: Path to a YAML configuration file. If None, looks for
            'sommelier.yaml' in the current directory and falls back to
            defaults plus environment variables.

    Returns:
        A fully validated SommelierConfig instance.

    Raises:
        FileNotFoundError: If an explicit path is provided but doesn't exist.
        ConfigurationError: If the YAML cannot be parsed or fails validation.
    """
    if path is None:
        default_path = Path("sommelier.yaml")
        if default_path.exists():
            path = str(default_path)

    yaml_data: dict[str, Any] = {}
    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        try:
            with open(config_path) as f:
                raw_data = yaml.safe_load(f)
        except yaml.YAMLError as exc:
            raise ConfigurationError(
                f"Could not parse {path}: {exc}",
                details={"path": path},
            ) from exc

        if raw_data is not None and not isinstance(raw_data, dict):
            raise ConfigurationError(
                f"{path} must contain a mapping at the top level",
                details={"path": path, "found": type(raw_data).__name__},
            )
        yaml_data = raw_data or {}

    try:
        return SommelierConfig(**yaml_data)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration: {exc.error_count()} error(s)",
            details={"path": path, "errors": exc.errors(include_url=False)},
        ) from exc


def get_default_config() -> SommelierConfig:
    """Create a SommelierConfig with all defaults (plus any set env vars)."""
    return SommelierConfig()
