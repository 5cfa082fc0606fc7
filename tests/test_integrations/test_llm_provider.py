"""
Tests for sommelier.integrations.llm
======================================

These tests verify the LLM provider abstraction layer:
    - LLMResponse and LLMUsage models, strip_code_fence
    - MockLLMProvider (queue, smart defaults, call tracking, error simulation)
    - send_prompt / send_structured_prompt Result helpers
    - create_llm_provider factory function

All tests use the MockLLMProvider — no real API calls are made.
"""

import json

import pytest
from pydantic import BaseModel

from sommelier.core.config import LLMConfig
from sommelier.core.enums import ErrorCode
from sommelier.integrations.llm.base import BaseLLMProvider, LLMResponse, LLMUsage, strip_code_fence
from sommelier.integrations.llm.factory import create_llm_provider
from sommelier.integrations.llm.mock import MockLLMProvider


class WinePicks(BaseModel):
    recommendations: list[str]
    confidence: float = 0.5


# =============================================================================
# Tests: Models
# =============================================================================
class TestModels:
    def test_usage_defaults(self) -> None:
        usage = LLMUsage()
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (0, 0, 0)

    def test_response_defaults(self) -> None:
        response = LLMResponse(content="Barolo", model="m")
        assert response.finish_reason == "stop"
        assert response.metadata == {}
        assert response.created_at.tzinfo is not None

    @pytest.mark.parametrize(
        "raw, expected",
        [
            ('```json\n{"a": 1}\n```', '{"a": 1}'),
            ('```\n{"a": 1}\n```', '{"a": 1}'),
            ('  {"a": 1}  ', '{"a": 1}'),
        ],
    )
    def test_strip_code_fence(self, raw: str, expected: str) -> None:
        assert strip_code_fence(raw) == expected


# =============================================================================
# Tests: MockLLMProvider
# =============================================================================
class TestMockLLMProvider:
    def test_default_config(self) -> None:
        provider = MockLLMProvider()
        assert provider.provider_name == "mock"
        assert provider.model == "mock-sommelier"
        assert isinstance(provider, BaseLLMProvider)
        assert repr(provider) == "MockLLMProvider(provider='mock', model='mock-sommelier')"

    async def test_queue_is_fifo(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response("first")
        mock_llm.queue_response("second")

        assert (await mock_llm.generate("x")).content == "first"
        assert (await mock_llm.generate("x")).content == "second"
        assert mock_llm.queue_size == 0

    async def test_queue_json(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_json({"recommendations": ["Rioja"]})
        response = await mock_llm.generate("x")
        assert json.loads(response.content) == {"recommendations": ["Rioja"]}

    async def test_clear_queue(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response("dropped")
        mock_llm.clear_queue()
        assert (await mock_llm.generate("unrelated")).content == "Mock LLM response"

    @pytest.mark.parametrize(
        "prompt, fragment",
        [
            ("Reply in JSON please", "Chianti Classico"),
            ("Write a fallback message", "Pinot Noir"),
            ("Explain the pairing", "acidity and fruit"),
            ("Assess the value", "Good value"),
            ("Something else", "Mock LLM response"),
        ],
    )
    async def test_smart_defaults(self, mock_llm: MockLLMProvider, prompt: str, fragment: str) -> None:
        response = await mock_llm.generate(prompt)
        assert fragment in response.content

    async def test_smart_default_json_is_valid(self, mock_llm: MockLLMProvider) -> None:
        data = json.loads((await mock_llm.generate("json")).content)
        assert data["recommendations"] == ["Chianti Classico", "Barbera d'Asti"]
        assert data["confidence"] == 0.8

    async def test_system_prompt_considered_for_defaults(self, mock_llm: MockLLMProvider) -> None:
        response = await mock_llm.generate_with_system("Reply with JSON only.", "Suggest wines")
        assert json.loads(response.content)["recommendations"]

    async def test_calls_recorded(self, mock_llm: MockLLMProvider) -> None:
        await mock_llm.generate("first", foo="bar")
        await mock_llm.generate_with_system("sys", "second")

        assert mock_llm.call_count == 2
        assert mock_llm.call_history[0]["kwargs"] == {"foo": "bar"}
        assert mock_llm.call_history[1]["system_prompt"] == "sys"
        assert mock_llm.last_prompt == "second"

        mock_llm.clear_history()
        assert mock_llm.call_count == 0
        assert mock_llm.last_prompt is None

    async def test_should_fail_raises_and_records(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.set_should_fail(True, "rate limited")

        with pytest.raises(RuntimeError, match="rate limited"):
            await mock_llm.generate("x")
        assert mock_llm.call_count == 1

        mock_llm.set_should_fail(False)
        assert (await mock_llm.generate("x")).content

    async def test_validate(self, mock_llm: MockLLMProvider) -> None:
        assert await mock_llm.validate() is True


# =============================================================================
# Tests: Result helpers
# =============================================================================
class TestSendPrompt:
    async def test_ok_text(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response("A Sancerre.")
        result = await mock_llm.send_prompt("goat cheese?", correlation_id="c-1")
        assert result.success
        assert result.data == "A Sancerre."

    async def test_system_prompt_routed(self, mock_llm: MockLLMProvider) -> None:
        await mock_llm.send_prompt("user part", system_prompt="system part")
        assert mock_llm.call_history[-1]["system_prompt"] == "system part"

    async def test_provider_exception_becomes_err(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.set_should_fail(True, "connection reset")

        result = await mock_llm.send_prompt("x", correlation_id="c-2")

        assert result.success is False
        assert result.error.code == ErrorCode.LLM_SERVICE_ERROR.value
        assert "connection reset" in result.error.message
        assert result.error.correlation_id == "c-2"

    async def test_error_finish_reason_becomes_err(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response("", finish_reason="error", metadata={"why": "filtered"})
        result = await mock_llm.send_prompt("x")
        assert result.error.details["metadata"] == {"why": "filtered"}


class TestSendStructuredPrompt:
    async def test_valid_json_is_parsed(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response('```json\n{"recommendations": ["Barolo"], "confidence": 0.9}\n```')

        result = await mock_llm.send_structured_prompt("x", WinePicks)

        assert result.success
        assert result.data == WinePicks(recommendations=["Barolo"], confidence=0.9)

    async def test_invalid_output_is_parsing_err(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.queue_response("I recommend a nice red.")

        result = await mock_llm.send_structured_prompt("x", WinePicks)

        assert result.success is False
        assert result.error.details["stage"] == "parsing"
        assert result.error.details["raw"] == "I recommend a nice red."

    async def test_failed_call_is_call_err(self, mock_llm: MockLLMProvider) -> None:
        mock_llm.set_should_fail(True)
        result = await mock_llm.send_structured_prompt("x", WinePicks)
        assert result.error.details["stage"] == "call"


# =============================================================================
# Tests: Factory
# =============================================================================
class TestCreateLLMProvider:
    def test_mock(self) -> None:
        provider = create_llm_provider(LLMConfig(provider="MOCK", model="m1"))
        assert isinstance(provider, MockLLMProvider)
        assert provider.model == "m1"

    def test_unknown_provider(self) -> None:
        with pytest.raises(ValueError, match="Unknown LLM provider"):
            create_llm_provider(LLMConfig(provider="oracle"))
