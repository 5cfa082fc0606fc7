"""
sommelier.integrations.llm.factory - LLM Provider Factory
===========================================================

Maps ``LLMConfig.provider`` to a concrete provider.

Usage:
    >>> provider = create_llm_provider(LLMConfig(provider="mock"))
    >>> type(provider).__name__
    'MockLLMProvider'
"""

from __future__ import annotations

from sommelier.core.config import LLMConfig
from sommelier.integrations.llm.base import BaseLLMProvider


def create_llm_provider(config: LLMConfig) -> BaseLLMProvider:
    """Create an LLM provider instance for ``config.provider``.

    Raises:
        ValueError: If the provider name is not recognized.
    """
    provider_name = config.provider.lower()

    if provider_name == "mock":
        from sommelier.integrations.llm.mock import MockLLMProvider
        return MockLLMProvider(config)

    raise ValueError(
        f"Unknown LLM provider: '{provider_name}'. Available providers: 'mock'."
    )
