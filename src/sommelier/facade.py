"""
sommelier.facade - Sommelier Top-Level Facade
===============================================

The composition root: builds the bus, the resilience pieces, the
integrations and every agent from one ``SommelierConfig``, and exposes the
recommendation entry points.

Architecture Context:

    ┌──────────────────────────────────────────────────────┐
    │                 Sommelier (Facade)                    │
    │                                                       │
    │  ┌─────────────────────────────────────────────────┐ │
    │  │  SommelierCoordinator                            │ │
    │  └───────────────────────┬─────────────────────────┘ │
    │                          │ EnhancedAgentCommunicationBus
    │  ┌───────────────────────▼─────────────────────────┐ │
    │  │  Agents: InputValidation, ValueAnalysis,         │ │
    │  │  UserPreference, MCPAdapter, Recommendation,     │ │
    │  │  LLMRecommendation, Explanation, Fallback,       │ │
    │  │  LLMPreferenceExtractor                          │ │
    │  └───────────────────────┬─────────────────────────┘ │
    │  ┌───────────────────────▼─────────────────────────┐ │
    │  │  Resilience: CircuitBreaker, RetryManager,       │ │
    │  │  DeadLetterProcessor + InMemoryDeadLetterQueue   │ │
    │  │  ConversationHistoryStore                        │ │
    │  └───────────────────────┬─────────────────────────┘ │
    │  ┌───────────────────────▼─────────────────────────┐ │
    │  │  Integrations: LLM provider, GraphCircuitWrapper │ │
    │  └─────────────────────────────────────────────────┘ │
    └──────────────────────────────────────────────────────┘

Usage:
    >>> async with Sommelier() as sommelier:
    ...     result = await sommelier.recommend({"ingredients": ["lamb"]})
    ...     result["recommended_wines"][0]["name"]
    'Malbec Reserva'

    >>> # Through the bus, as another agent would:
    >>> result = await sommelier.recommend_via_bus({"message": "Wine for salmon?"})
"""

from __future__ import annotations

from typing import Any, Optional

import structlog

from sommelier.agents import (
    CommunicatingAgent,
    ExplanationAgent,
    FallbackAgent,
    InputValidationAgent,
    LLMPreferenceExtractorAgent,
    LLMRecommendationAgent,
    MCPAdapterAgent,
    RecommendationAgent,
    UserPreferenceAgent,
    ValueAnalysisAgent,
)
from sommelier.core.config import SommelierConfig
from sommelier.core.enums import AgentId, MessageType
from sommelier.core.logging import configure_logging
from sommelier.core.messages import create_agent_message
from sommelier.integrations.graph import GraphCircuitWrapper, GraphClient, InMemoryGraphClient
from sommelier.integrations.llm import BaseLLMProvider, create_llm_provider
from sommelier.orchestration.conversation_history import ConversationHistoryStore
from sommelier.orchestration.dead_letter import BasicDeadLetterProcessor, InMemoryDeadLetterQueue
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus
from sommelier.orchestration.retry_manager import BasicRetryManager
from sommelier.orchestration.sommelier_coordinator import (
    RecommendationRequest,
    RequestLike,
    SommelierCoordinator,
)

logger = structlog.get_logger()

FACADE_SOURCE = "sommelier-facade"


class Sommelier:
    """Single entry point wiring the whole recommendation system.

    All collaborators are created in ``__init__``; ``initialize()`` only
    configures logging and checks the graph connection, so tests can reach
    the components before starting anything.

    Example:
        >>> sommelier = Sommelier(SommelierConfig(), llm_provider=MockLLMProvider())
        >>> await sommelier.initialize()
        >>> await sommelier.recommend({"preferences": {"wineType": "white"}})
        >>> await sommelier.shutdown()
    """

    def __init__(
        self,
        config: Optional[SommelierConfig] = None,
        *,
        llm_provider: Optional[BaseLLMProvider] = None,
        graph_client: Optional[GraphClient] = None,
        message_bus: Optional[EnhancedAgentCommunicationBus] = None,
    ) -> None:
        """Build every component.

        Args:
            config: System configuration. Defaults to SommelierConfig(),
                which reads SOMMELIER_* environment variables.
            llm_provider: LLM provider. Defaults to the one named in
                ``config.llm``.
            graph_client: Knowledge graph client. Defaults to the in-memory
                wine catalogue.
            message_bus: Enhanced bus. Defaults to a new one using
                ``config.bus.request_timeout_seconds``.
        """
        self._config = config or SommelierConfig()
        cfg = self._config

        # --- Integrations ---
        self._llm_provider = llm_provider or create_llm_provider(cfg.llm)
        self._graph = GraphCircuitWrapper(
            graph_client or InMemoryGraphClient(),
            config=cfg.circuit_breaker,
        )

        # --- Bus ---
        self._bus = message_bus or EnhancedAgentCommunicationBus(
            llm_provider=self._llm_provider,
            default_timeout=cfg.bus.request_timeout_seconds,
        )

        # --- Dead letters ---
        self._dead_letter_queue = InMemoryDeadLetterQueue()
        self._retry_manager = BasicRetryManager.from_config(cfg.retry)
        self._dead_letter_processor = BasicDeadLetterProcessor(
            self._dead_letter_queue,
            self._retry_manager,
            max_replay_attempts=cfg.dead_letter.max_replay_attempts,
        )

        # --- Conversations ---
        self._history = ConversationHistoryStore(max_turns=cfg.coordinator.history_max_turns)

        # --- Agents ---
        self._agents: dict[str, CommunicatingAgent] = {}
        for agent in (
            InputValidationAgent(self._bus, cfg.validation),
            ValueAnalysisAgent(self._bus),
            UserPreferenceAgent(self._bus),
            MCPAdapterAgent(self._bus),
            RecommendationAgent(self._bus, self._graph),
            LLMRecommendationAgent(self._bus, self._llm_provider, self._dead_letter_processor),
            ExplanationAgent(self._bus),
            FallbackAgent(self._bus, self._llm_provider, self._dead_letter_processor, cfg.fallback),
            LLMPreferenceExtractorAgent(
                self._bus, self._llm_provider, self._dead_letter_processor, self._history
            ),
        ):
            self._agents[agent.agent_id] = agent

        self._coordinator = SommelierCoordinator(
            self._bus, self._dead_letter_processor, cfg, history=self._history
        )
        self._agents[self._coordinator.agent_id] = self._coordinator

        self._initialized = False
        self._logger = logger.bind(component="sommelier")

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def config(self) -> SommelierConfig:
        return self._config

    @property
    def bus(self) -> EnhancedAgentCommunicationBus:
        return self._bus

    @property
    def coordinator(self) -> SommelierCoordinator:
        return self._coordinator

    @property
    def llm_provider(self) -> BaseLLMProvider:
        return self._llm_provider

    @property
    def graph(self) -> GraphCircuitWrapper:
        return self._graph

    @property
    def dead_letter_queue(self) -> InMemoryDeadLetterQueue:
        return self._dead_letter_queue

    @property
    def dead_letter_processor(self) -> BasicDeadLetterProcessor:
        return self._dead_letter_processor

    @property
    def retry_manager(self) -> BasicRetryManager:
        return self._retry_manager

    @property
    def history(self) -> ConversationHistoryStore:
        return self._history

    @property
    def agents(self) -> dict[str, CommunicatingAgent]:
        """Agents by id, coordinator included."""
        return dict(self._agents)

    def get_agent(self, agent_id: str) -> Optional[CommunicatingAgent]:
        return self._agents.get(agent_id)

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle Management
    # =========================================================================

    async def initialize(self) -> None:
        """Configure logging and check the graph connection. Idempotent."""
        if self._initialized:
            self._logger.debug("sommelier_already_initialized")
            return

        configure_logging(self._config.log_level, self._config.log_format)
        self._logger.info(
            "sommelier_initializing",
            environment=self._config.environment,
            llm_provider=self._llm_provider.provider_name,
            agents=sorted(self._agents),
        )

        connection = await self._graph.verify_connection()
        if not connection.success:
            # Recommendations fail until the graph recovers; fallback still works.
            self._logger.warning("graph_unavailable_at_startup", error=connection.error.message)

        self._initialized = True
        self._logger.info("sommelier_initialized")

    async def shutdown(self) -> None:
        """Close the bus and the graph client. Idempotent."""
        if not self._initialized:
            self._logger.debug("sommelier_not_initialized_skipping_shutdown")
            return

        self._logger.info("sommelier_shutting_down")
        await self._bus.close()
        try:
            await self._graph.close()
        except Exception as exc:
            self._logger.error("graph_close_failed_during_shutdown", error=str(exc))

        self._initialized = False
        self._logger.info("sommelier_shutdown_complete", dead_letters=len(self._dead_letter_queue))

    async def __aenter__(self) -> Sommelier:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.shutdown()

    # =========================================================================
    # Recommendations
    # =========================================================================

    async def recommend(self, request: RequestLike) -> dict[str, Any]:
        """Run the pipeline directly on the coordinator.

        Raises:
            RecommendationFailedError: The Recommendation stage failed.
            RuntimeError: The facade has not been initialized.
        """
        self._ensure_initialized()
        return await self._coordinator.handle_request(request)

    async def recommend_via_bus(
        self,
        request: RequestLike,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Send an orchestrate request over the bus and return the final payload.

        Raises:
            AgentError: The coordinator answered with an error (for example
                ORCHESTRATION_FAILURE) or the request timed out.
        """
        self._ensure_initialized()
        req = (
            request
            if isinstance(request, RecommendationRequest)
            else RecommendationRequest.model_validate(request)
        )
        payload = req.model_dump(mode="json", exclude_none=True)
        correlation_id = f"{FACADE_SOURCE}-{self._coordinator.generate_correlation_id()}"
        message = create_agent_message(
            type=MessageType.ORCHESTRATE_RECOMMENDATION_REQUEST,
            payload=payload,
            source_agent=FACADE_SOURCE,
            conversation_id=req.conversation_id or correlation_id,
            correlation_id=correlation_id,
            target_agent=AgentId.COORDINATOR.value,
            user_id=req.user_id,
        )
        result = await self._bus.send_message_and_wait_for_response(
            AgentId.COORDINATOR.value, message, timeout=timeout
        )
        return result.unwrap().payload

    async def replay_dead_letters(self) -> dict[str, int]:
        """Re-run the dead-letter handlers for every queued record."""
        return await self._dead_letter_processor.replay()

    # =========================================================================
    # Internal Helpers
    # =========================================================================

    def _ensure_initialized(self) -> None:
        if not self._initialized:
            raise RuntimeError(
                "Sommelier has not been initialized. "
                "Call await sommelier.initialize() or use 'async with Sommelier() as sommelier:'"
            )

    def __repr__(self) -> str:
        return (
            f"Sommelier("
            f"initialized={self._initialized}, "
            f"agents={len(self._agents)}, "
            f"dead_letters={len(self._dead_letter_queue)})"
        )
