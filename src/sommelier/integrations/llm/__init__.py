"""
sommelier.integrations.llm - Large Language Model Providers
=============================================================

Agents and the bus reach the LLM only through ``BaseLLMProvider``.

Available Providers:
    - MockLLMProvider: deterministic, scriptable responses (dev and tests)
"""

from sommelier.integrations.llm.base import BaseLLMProvider, LLMResponse, LLMUsage
from sommelier.integrations.llm.factory import create_llm_provider
from sommelier.integrations.llm.mock import MockLLMProvider

__all__ = [
    "BaseLLMProvider",
    "LLMResponse",
    "LLMUsage",
    "MockLLMProvider",
    "create_llm_provider",
]
