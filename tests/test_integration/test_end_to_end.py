"""
End-to-End Integration Tests for Sommelier
============================================

These tests drive the full system through the facade: real bus, real
agents, real dead-letter pipeline, with only the LLM and the knowledge
graph replaced by their in-process stand-ins.

Test Scenarios:
    1. Ingredient request answered from the knowledge graph
    2. Unusable request dead-lettered once and answered by the fallback
    3. Knowledge graph outage surfaces as RecommendationFailedError
    4. Failing dead-letter handlers leave a record in the queue
    5. Free-text conversation for a returning user
"""

from __future__ import annotations

from typing import Any

import pytest

from sommelier import Sommelier
from sommelier.core.enums import AgentId
from sommelier.core.exceptions import RecommendationFailedError
from sommelier.orchestration.dead_letter import DeadLetterHandler


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
async def app(config, mock_llm, graph_client):
    """Initialized facade over the shared mock LLM and in-memory graph."""
    sommelier = Sommelier(config, llm_provider=mock_llm, graph_client=graph_client)
    await sommelier.initialize()
    yield sommelier
    await sommelier.shutdown()


@pytest.fixture
def dead_letter_calls(app, monkeypatch):
    """Records every call to the facade's dead-letter processor, then delegates."""
    calls: list[tuple[Any, BaseException, dict]] = []
    processor = app.dead_letter_processor
    original = processor.process

    async def spy(message, error, metadata=None):
        calls.append((message, error, dict(metadata or {})))
        await original(message, error, metadata)

    monkeypatch.setattr(processor, "process", spy)
    return calls


class BrokenHandler(DeadLetterHandler):
    def __init__(self):
        self.attempts = 0

    async def handle(self, message, error, metadata):
        self.attempts += 1
        raise IOError("dead-letter sink unavailable")


# =============================================================================
# Scenario 1: Ingredient Request
# =============================================================================

class TestIngredientRequest:
    async def test_lamb_gets_malbec(self, app, dead_letter_calls):
        """A lamb request is answered by the graph with the Malbec."""
        result = await app.recommend({"ingredients": ["lamb"]})

        assert [w["name"] for w in result["recommended_wines"]] == ["Malbec Reserva"]
        assert result["source"] == "knowledge_graph"
        assert result["explanation"]
        assert dead_letter_calls == []
        assert len(app.dead_letter_queue) == 0


# =============================================================================
# Scenario 2: Unusable Request
# =============================================================================

class TestUnusableRequest:
    async def test_empty_request_falls_back(self, app, dead_letter_calls, mock_llm):
        """Nothing usable: one dead letter, then the fallback agent answers."""
        result = await app.recommend({})

        assert len(dead_letter_calls) == 1
        message, _, metadata = dead_letter_calls[0]
        assert message == {}
        assert metadata["stage"] == "RequestTypeDetermination"
        assert metadata["source"] == "SommelierCoordinator"

        assert "Pinot Noir" in result["recommendation"]
        assert any("fallback" in call["prompt"] for call in mock_llm.call_history)

        # The logging handler absorbed the failure, so nothing was queued.
        assert len(app.dead_letter_queue) == 0

    async def test_fallback_over_bus(self, app):
        result = await app.recommend_via_bus({"conversationId": "conv-7"})
        assert "recommendation" in result


# =============================================================================
# Scenario 3: Knowledge Graph Outage
# =============================================================================

class TestGraphOutage:
    async def test_graph_failure_raises(self, app, dead_letter_calls, graph_client, mock_llm):
        """No fallback for a recommendation failure: the caller sees the error."""
        graph_client.set_should_fail(True)

        with pytest.raises(RecommendationFailedError):
            await app.recommend({"preferences": {"wineType": "red"}})

        stages = [metadata["stage"] for _, _, metadata in dead_letter_calls]
        assert stages == ["RecommendationAgent"]
        assert not any("fallback" in call["prompt"] for call in mock_llm.call_history)

    async def test_recovery_after_outage(self, app, graph_client):
        graph_client.set_should_fail(True)
        with pytest.raises(RecommendationFailedError):
            await app.recommend({"ingredients": ["lamb"]})

        graph_client.set_should_fail(False)
        result = await app.recommend({"ingredients": ["lamb"]})

        assert result["recommended_wines"][0]["name"] == "Malbec Reserva"


# =============================================================================
# Scenario 4: Failing Dead-Letter Handlers
# =============================================================================

class TestDeadLetterQueue:
    async def test_handler_failure_is_recorded(self, app, config):
        """Handlers that keep failing leave the original request in the queue."""
        broken = BrokenHandler()
        app.dead_letter_processor.handlers.append(broken)

        await app.recommend({})

        assert broken.attempts == config.retry.max_attempts
        records = app.dead_letter_queue.get_all()
        assert len(records) == 1
        assert records[0].message == {}
        assert records[0].metadata["stage"] == "RequestTypeDetermination"
        assert records[0].error

    async def test_replay_clears_record_once_handlers_recover(self, app):
        broken = BrokenHandler()
        app.dead_letter_processor.handlers.append(broken)
        await app.recommend({})
        assert len(app.dead_letter_queue) == 1

        app.dead_letter_processor.handlers.remove(broken)
        summary = await app.replay_dead_letters()

        assert summary == {"replayed": 1, "failed": 0, "exhausted": 0}
        assert len(app.dead_letter_queue) == 0

    async def test_every_failed_stage_is_recorded(self, app, graph_client, mock_llm):
        app.dead_letter_processor.handlers.append(BrokenHandler())
        mock_llm.set_should_fail(True)
        graph_client.set_should_fail(True)

        with pytest.raises(RecommendationFailedError):
            await app.recommend({"ingredients": ["lamb"]})

        stages = [record.metadata["stage"] for record in app.dead_letter_queue.get_all()]
        assert stages == ["ValueAnalysisAgent", "RecommendationAgent"]


# =============================================================================
# Scenario 5: Returning User
# =============================================================================

class TestReturningUser:
    async def test_preferences_and_history_accumulate(self, app, graph_client):
        """Stored preferences shape the second request; both land in history."""
        await app.recommend({"userId": "u1", "message": "Something white under $30"})
        second = await app.recommend({"userId": "u1", "message": "What about with oysters?"})
        await app.bus.drain()

        _, params = graph_client.queries[-1]
        assert params["wine_type"] == "white"
        assert params["max_price"] == 30.0
        assert params["ingredients"] == ["oysters"]
        assert [w["name"] for w in second["recommended_wines"]] == ["Chablis"]

        preference_agent = app.get_agent(AgentId.USER_PREFERENCE.value)
        assert len(preference_agent.get_history("u1")) == 2
