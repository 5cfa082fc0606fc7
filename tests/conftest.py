"""
Shared Test Fixtures for Sommelier
====================================

Reusable pytest fixtures, organized by layer:

    1. Configuration fixtures
    2. Time fixtures (fake clock and sleep for breaker/retry timing)
    3. Integration fixtures (mock LLM, in-memory graph)
    4. Orchestration fixtures (bus, dead-letter pipeline)
    5. Agent fixtures (every stage agent, fallback agent, coordinator)
    6. Facade fixtures (Sommelier)
"""

from __future__ import annotations

from typing import Any, Optional

import pytest

from sommelier.agents import (
    ExplanationAgent,
    FallbackAgent,
    InputValidationAgent,
    LLMRecommendationAgent,
    MCPAdapterAgent,
    RecommendationAgent,
    UserPreferenceAgent,
    ValueAnalysisAgent,
)
from sommelier.core.config import SommelierConfig
from sommelier.facade import Sommelier
from sommelier.integrations.graph import GraphCircuitWrapper, InMemoryGraphClient
from sommelier.integrations.llm import MockLLMProvider
from sommelier.orchestration.circuit_breaker import CircuitBreaker
from sommelier.orchestration.dead_letter import (
    BasicDeadLetterProcessor,
    DeadLetterProcessor,
    InMemoryDeadLetterQueue,
)
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus
from sommelier.orchestration.retry_manager import BasicRetryManager
from sommelier.orchestration.sommelier_coordinator import SommelierCoordinator


# =============================================================================
# Test Doubles
# =============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays."""

    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


class RecordingDeadLetterProcessor(DeadLetterProcessor):
    """Processor that records every ``process`` call instead of handling it."""

    def __init__(self) -> None:
        super().__init__(retry_manager=BasicRetryManager(max_attempts=1, delay=0), handlers=[])
        self.calls: list[tuple[Any, BaseException, dict[str, Any]]] = []

    async def process(
        self,
        message: Any,
        error: BaseException,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        self.calls.append((message, error, dict(metadata or {})))

    async def _handle_permanent_failure(self, message, error, metadata) -> None:
        raise AssertionError("not reachable")

    @property
    def stages(self) -> list[str]:
        return [metadata.get("stage") for _, _, metadata in self.calls]


# =============================================================================
# Configuration
# =============================================================================

@pytest.fixture
def config() -> SommelierConfig:
    """Default configuration with short timeouts for fast tests."""
    return SommelierConfig(
        bus={"request_timeout_seconds": 1.0},
        retry={"max_attempts": 2, "fixed_delay_seconds": 0, "base_delay_seconds": 0},
    )


# =============================================================================
# Time
# =============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()


# =============================================================================
# Integrations
# =============================================================================

@pytest.fixture
def mock_llm() -> MockLLMProvider:
    """Fresh MockLLMProvider with smart defaults."""
    return MockLLMProvider()


@pytest.fixture
def graph_client() -> InMemoryGraphClient:
    """In-memory knowledge graph with the default wine catalogue."""
    return InMemoryGraphClient()


@pytest.fixture
def graph(graph_client: InMemoryGraphClient) -> GraphCircuitWrapper:
    return GraphCircuitWrapper(graph_client)


# =============================================================================
# Orchestration
# =============================================================================

@pytest.fixture
async def bus(mock_llm: MockLLMProvider):
    """Enhanced bus wired to the mock LLM, closed after the test."""
    bus = EnhancedAgentCommunicationBus(llm_provider=mock_llm, default_timeout=1.0)
    yield bus
    await bus.close()


@pytest.fixture
def dead_letter_queue() -> InMemoryDeadLetterQueue:
    return InMemoryDeadLetterQueue()


@pytest.fixture
def dead_letter_processor(dead_letter_queue: InMemoryDeadLetterQueue) -> BasicDeadLetterProcessor:
    """Real processor whose retry manager never sleeps."""
    retry_manager = BasicRetryManager(
        circuit_breaker=CircuitBreaker(name="test-retry"),
        max_attempts=2,
        delay=0,
    )
    return BasicDeadLetterProcessor(dead_letter_queue, retry_manager)


@pytest.fixture
def recording_dlp() -> RecordingDeadLetterProcessor:
    return RecordingDeadLetterProcessor()


# =============================================================================
# Agents
# =============================================================================

@pytest.fixture
def stage_agents(
    bus: EnhancedAgentCommunicationBus,
    mock_llm: MockLLMProvider,
    graph: GraphCircuitWrapper,
    recording_dlp: RecordingDeadLetterProcessor,
) -> dict[str, Any]:
    """Every stage agent and the fallback agent, registered on ``bus``."""
    agents = [
        InputValidationAgent(bus),
        ValueAnalysisAgent(bus),
        UserPreferenceAgent(bus),
        MCPAdapterAgent(bus),
        RecommendationAgent(bus, graph),
        LLMRecommendationAgent(bus, mock_llm, recording_dlp),
        ExplanationAgent(bus),
        FallbackAgent(bus, mock_llm, recording_dlp),
    ]
    return {agent.agent_id: agent for agent in agents}


@pytest.fixture
def coordinator(
    bus: EnhancedAgentCommunicationBus,
    recording_dlp: RecordingDeadLetterProcessor,
    config: SommelierConfig,
    clock: FakeClock,
    stage_agents: dict[str, Any],
) -> SommelierCoordinator:
    """Coordinator over the full set of stage agents."""
    return SommelierCoordinator(bus, recording_dlp, config, clock=clock)


# =============================================================================
# Facade
# =============================================================================

@pytest.fixture
async def sommelier(config: SommelierConfig, mock_llm: MockLLMProvider):
    """Initialized Sommelier facade, shut down after the test."""
    instance = Sommelier(config, llm_provider=mock_llm)
    await instance.initialize()
    yield instance
    await instance.shutdown()
