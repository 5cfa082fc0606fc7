"""
sommelier.integrations.llm.mock - Mock LLM Provider
=====================================================

An LLM provider that never leaves the process. It is the default provider
in development and the one every test uses.

Response selection, per call:
    1. If failure simulation is on → raise RuntimeError.
    2. If responses are queued → return the next one (FIFO).
    3. Otherwise → a canned sommelier answer picked from prompt keywords.

Usage:
    >>> provider = MockLLMProvider()
    >>> provider.queue_response("A Chianti Classico would be ideal.")
    >>> (await provider.send_prompt("Suggest a wine")).data
    'A Chianti Classico would be ideal.'
    >>> provider.call_count
    1
"""

from __future__ import annotations

import json
from collections import deque
from typing import Any, Optional

import structlog

from sommelier.core.config import LLMConfig
from sommelier.integrations.llm.base import BaseLLMProvider, LLMResponse, LLMUsage

logger = structlog.get_logger()


class MockLLMProvider(BaseLLMProvider):
    """Deterministic, configurable LLM stand-in.

    Features:
        - Response queue for scripted conversations
        - Call history for assertions
        - Failure simulation
        - Keyword-based defaults for the pipeline's prompts

    Example:
        >>> provider = MockLLMProvider(default_response="Try a Rioja.")
        >>> provider.set_should_fail(True, "rate limited")
        >>> (await provider.send_prompt("anything")).success
        False
    """

    def __init__(
        self,
        config: Optional[LLMConfig] = None,
        default_response: str = "Mock LLM response",
    ) -> None:
        if config is None:
            config = LLMConfig(provider="mock", model="mock-sommelier")
        super().__init__(config)

        self._response_queue: deque[LLMResponse] = deque()
        self._call_history: list[dict[str, Any]] = []
        self._default_response = default_response

        self._should_fail: bool = False
        self._failure_message: str = "Mock LLM API error"

        self._logger = logger.bind(component="mock_llm_provider")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def call_history(self) -> list[dict[str, Any]]:
        """Recorded calls: dicts with "prompt", "system_prompt", "kwargs"."""
        return self._call_history

    @property
    def call_count(self) -> int:
        return len(self._call_history)

    @property
    def queue_size(self) -> int:
        return len(self._response_queue)

    @property
    def last_prompt(self) -> Optional[str]:
        return self._call_history[-1]["prompt"] if self._call_history else None

    # =========================================================================
    # Queue Management
    # =========================================================================

    def queue_response(
        self,
        content: str,
        *,
        finish_reason: str = "stop",
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Queue the content of the next response (FIFO)."""
        self._response_queue.append(
            LLMResponse(
                content=content,
                model=self.model,
                usage=self._estimate_usage(content),
                finish_reason=finish_reason,
                metadata=metadata or {},
            )
        )

    def queue_json(self, data: Any) -> None:
        """Queue a response whose content is ``data`` serialized as JSON."""
        self.queue_response(json.dumps(data))

    def clear_queue(self) -> None:
        self._response_queue.clear()

    def clear_history(self) -> None:
        self._call_history.clear()

    def set_should_fail(self, should_fail: bool, message: str = "Mock LLM API error") -> None:
        """Make every following call raise RuntimeError(message)."""
        self._should_fail = should_fail
        self._failure_message = message

    # =========================================================================
    # Core LLM Interface Implementation
    # =========================================================================

    async def generate(
        self,
        prompt: str,
        *,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        stop_sequences: Optional[list[str]] = None,
        **kwargs: Any,
    ) -> LLMResponse:
        return self._respond(prompt, None, kwargs)

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
        return self._respond(user_prompt, system_prompt, kwargs)

    def _respond(
        self,
        prompt: str,
        system_prompt: Optional[str],
        kwargs: dict[str, Any],
    ) -> LLMResponse:
        self._call_history.append(
            {"prompt": prompt, "system_prompt": system_prompt, "kwargs": kwargs}
        )
        self._logger.debug(
            "mock_generate_called",
            prompt_length=len(prompt),
            queue_size=len(self._response_queue),
        )

        if self._should_fail:
            raise RuntimeError(self._failure_message)

        if self._response_queue:
            return self._response_queue.popleft()

        combined = f"{system_prompt}\n\n{prompt}" if system_prompt else prompt
        content = self._smart_default(combined)
        return LLMResponse(
            content=content,
            model=self.model,
            usage=self._estimate_usage(content),
            metadata={"source": "smart_default"},
        )

    # =========================================================================
    # Canned Answers
    # =========================================================================

    def _smart_default(self, prompt: str) -> str:
        lowered = prompt.lower()
        if "json" in lowered:
            return json.dumps(
                {
                    "recommendations": ["Chianti Classico", "Barbera d'Asti"],
                    "confidence": 0.8,
                    "reasoning": "Medium-bodied Italian reds with bright acidity.",
                }
            )
        if "fallback" in lowered:
            return (
                "We could not build a full recommendation right now, but a "
                "versatile Pinot Noir is a safe choice for most dishes."
            )
        if "explain" in lowered:
            return "These wines balance acidity and fruit, which suits the dish."
        if "value" in lowered:
            return "Good value: the suggested bottles sit below the regional average price."
        return self._default_response

    @staticmethod
    def _estimate_usage(text: str) -> LLMUsage:
        # ~4 characters per token
        tokens = max(1, len(text) // 4)
        return LLMUsage(prompt_tokens=tokens, completion_tokens=tokens, total_tokens=tokens * 2)
