"""
sommelier.integrations.llm.base - Abstract LLM Provider Interface
===================================================================

The contract every LLM provider implements, plus the ``Result``-returning
helpers agents and the bus actually call.

Architecture Context:

    ┌────────────────┐  send_prompt()        ┌──────────────────┐
    │ Agents / Bus   │ ────────────────────> │  BaseLLMProvider  │
    │                │ <── Result[str] ───── │  (abstract)       │
    │                │  send_structured_     │                   │
    │                │  prompt(model) ─────> │  generate()       │
    │                │ <── Result[model] ─── │  generate_with_   │
    └────────────────┘                       │  system()         │
                                             └─────────┬────────┘
                                                       │
                                                  ┌────▼───┐
                                                  │  Mock  │
                                                  └────────┘

Subclasses implement ``generate`` / ``generate_with_system`` and may raise.
``send_prompt`` and ``send_structured_prompt`` never raise: failures come
back as ``Err(AgentError)`` with code LLM_SERVICE_ERROR.

Usage:
    >>> result = await provider.send_prompt("Describe a Barolo", correlation_id="c-1")
    >>> result = await provider.send_structured_prompt(prompt, WinePicks)
    >>> if result.success:
    ...     picks = result.data
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel, Field, ValidationError

from sommelier.core.config import LLMConfig
from sommelier.core.enums import ErrorCode
from sommelier.core.exceptions import AgentError
from sommelier.core.result import Err, Ok, Result

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


# =============================================================================
# LLM Response Model
# =============================================================================
class LLMUsage(BaseModel):
    """Token counts for one LLM call."""

    prompt_tokens: int = Field(default=0, ge=0)
    completion_tokens: int = Field(default=0, ge=0)
    total_tokens: int = Field(default=0, ge=0)


class LLMResponse(BaseModel):
    """Provider-independent response from an LLM call.

    Attributes:
        content: The generated text.
        model: Model identifier that produced it.
        usage: Token counts.
        finish_reason: "stop", "length" or "error".
        metadata: Provider-specific extras.
        created_at: When the response was produced (UTC).
    """

    content: str = Field(description="Generated text")
    model: str = Field(description="Model that produced the response")
    usage: LLMUsage = Field(default_factory=LLMUsage)
    finish_reason: str = Field(default="stop")
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence, if present."""
    match = _FENCE.match(text)
    return match.group(1) if match else text.strip()


# =============================================================================
# Abstract Base LLM Provider
# =============================================================================
class BaseLLMProvider(ABC):
    """Abstract base class for LLM providers.

    Subclasses must implement:
        - generate(): single-prompt generation
        - generate_with_system(): system + user prompt generation

    Attributes:
        _config: The LLM configuration (provider, model, api_key, ...).
    """

    def __init__(self, config: LLMConfig) -> None:
        self._config = config
        self._logger = logger.bind(component="llm_provider", provider=config.provider)

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def provider_name(self) -> str:
        return self._config.provider

    @property
    def model(self) -> str:
        return self._config.model

    @property
    def temperature(self) -> float:
        return self._config.temperature

    @property
    def max_tokens(self) -> int:
        return self._config.max_tokens

    @property
    def config(self) -> LLMConfig:
        return self._config

    # =========================================================================
    # Abstract Methods
    # =========================================================================

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop_sequences: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate text from a prompt.

        Args:
            prompt: The input prompt.
            temperature: Per-call override (None = config default).
            max_tokens: Per-call override (None = config default).
            stop_sequences: Strings that end generation.
            **kwargs: Provider-specific options.

        Raises:
            Exception: Provider-specific failures.
        """
        ...

    @abstractmethod
    async def generate_with_system(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop_sequences: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        """Generate text with a system prompt ahead of the user prompt."""
        ...

    # =========================================================================
    # Result-returning helpers
    # =========================================================================

    async def send_prompt(
        self,
        prompt: str,
        correlation_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> Result[str, AgentError]:
        """Generate text, folding any provider failure into ``Err``.

        Returns:
            Ok(text), or Err(LLM_SERVICE_ERROR) if the provider raised or
            stopped with finish_reason "error".
        """
        try:
            if system_prompt is None:
                response = await self.generate(prompt)
            else:
                response = await self.generate_with_system(system_prompt, prompt)
        except Exception as exc:
            self._logger.error(
                "llm_call_failed",
                correlation_id=correlation_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            return Err(
                AgentError(
                    f"Error communicating with LLM: {exc}",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.provider_name,
                    correlation_id=correlation_id,
                    details={"error_type": type(exc).__name__},
                )
            )

        if response.finish_reason == "error":
            self._logger.warning("llm_finished_with_error", correlation_id=correlation_id)
            return Err(
                AgentError(
                    "LLM reported a generation error",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.provider_name,
                    correlation_id=correlation_id,
                    details={"metadata": response.metadata},
                )
            )

        self._logger.debug(
            "llm_call_completed",
            correlation_id=correlation_id,
            total_tokens=response.usage.total_tokens,
        )
        return Ok(response.content)

    async def send_structured_prompt(
        self,
        prompt: str,
        output_model: type[ModelT],
        correlation_id: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> Result[ModelT, AgentError]:
        """Generate JSON and validate it into ``output_model``.

        A reply that fails validation is an ``Err`` whose details carry
        ``stage="parsing"``; a failed call carries ``stage="call"``.
        """
        result = await self.send_prompt(prompt, correlation_id, system_prompt=system_prompt)
        if isinstance(result, Err):
            result.error.details.setdefault("stage", "call")
            return result

        try:
            parsed = output_model.model_validate_json(strip_code_fence(result.data))
        except ValidationError as exc:
            self._logger.warning(
                "llm_output_invalid",
                correlation_id=correlation_id,
                output_model=output_model.__name__,
                error_count=exc.error_count(),
            )
            return Err(
                AgentError(
                    f"LLM output did not match {output_model.__name__}",
                    error_code=ErrorCode.LLM_SERVICE_ERROR,
                    agent_id=self.provider_name,
                    correlation_id=correlation_id,
                    details={
                        "stage": "parsing",
                        "errors": exc.errors(include_url=False),
                        "raw": result.data,
                    },
                )
            )
        return Ok(parsed)

    async def validate(self) -> bool:
        """Check that the provider is usable. Concrete providers override."""
        return True

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"provider={self.provider_name!r}, "
            f"model={self.model!r})"
        )
