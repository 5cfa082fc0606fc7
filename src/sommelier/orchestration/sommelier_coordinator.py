"""
sommelier.orchestration.sommelier_coordinator - Recommendation Pipeline Coordinator
=====================================================================================

The SommelierCoordinator is the agent that turns one recommendation request
into a sequence of stage calls, isolating each stage's failure.

Architecture Context:

    ┌──────────────┐ handle_request(req) ┌────────────────────────┐
    │ Sommelier    │ ──────────────────> │  SommelierCoordinator  │
    │ facade / bus │ <────────────────── │                        │
    └──────────────┘   result payload    └───────────┬────────────┘
                                                     │ per-agent CircuitBreaker
                                                     │ + bus request/response
        ┌───────────────┬──────────────┬─────────────┼──────────────┬────────────────┐
        v               v              v             v              v                v
    InputValidation  ValueAnalysis  UserPreference  MCPAdapter  Recommendation   Explanation
                     (optional)     (optional)      (optional)  (load-bearing)   (optional)

Pipeline:
    1. Request shape
         message present            → InputValidation; failure → fallback
         preferences / ingredients  → used as given
         nothing usable             → dead letter "RequestTypeDetermination",
                                      fallback
    2. ValueAnalysis → UserPreference → MCPAdapter
         each failure is dead-lettered and the pipeline continues
    3. Recommendation (knowledge graph or LLM, per recommendation_source)
         failure, or a reply carrying an "error" field, is dead-lettered and
         RecommendationFailedError is raised. No fallback here.
    4. Explanation: failure dead-lettered and tolerated
    5. Result returned; with a user id, the exchange is added to the
       conversation history and update_recommendation_history is
       published to the preference agent (fire and forget)

Fallback Path:
    fallback_request → FallbackAgent. If that agent cannot be reached, the
    configured default sentence is returned. The fallback path never raises.

Usage:
    >>> coordinator = SommelierCoordinator(bus, dead_letter_processor, config)
    >>> result = await coordinator.handle_request({"preferences": {"wineType": "red"}})
    >>> [w["name"] for w in result["recommended_wines"]]
    ['Pinot Noir', 'Malbec Reserva', 'Chianti Classico']
"""

from __future__ import annotations

import time
from typing import Any, Callable, Optional, Union

import structlog
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from sommelier.agents.base import CommunicatingAgent, HandlerTable
from sommelier.core.config import SommelierConfig
from sommelier.core.enums import AgentId, ErrorCode, MessageType, RecommendationSource
from sommelier.core.exceptions import AgentError, RecommendationFailedError
from sommelier.core.messages import AgentMessage, create_agent_message
from sommelier.core.result import Err, Ok
from sommelier.orchestration.circuit_breaker import CircuitBreaker
from sommelier.orchestration.conversation_history import ConversationHistoryStore
from sommelier.orchestration.dead_letter import DeadLetterProcessor
from sommelier.orchestration.enhanced_bus import EnhancedAgentCommunicationBus, HandlerResult

# =============================================================================
# Logger Setup
# =============================================================================
logger = structlog.get_logger()

DEAD_LETTER_SOURCE = "SommelierCoordinator"

# Conversation turns forwarded to the recommendation stage.
HISTORY_TURNS = 3


# =============================================================================
# Stage Names (dead-letter "stage" values)
# =============================================================================
class Stage:
    INPUT_VALIDATION = "InputValidation"
    REQUEST_TYPE = "RequestTypeDetermination"
    VALUE_ANALYSIS = "ValueAnalysisAgent"
    USER_PREFERENCE = "UserPreferenceAgent"
    MCP_ADAPTER = "MCPAdapterAgent"
    RECOMMENDATION = "RecommendationAgent"
    EXPLANATION = "ExplanationAgent"
    FALLBACK = "FallbackAgent"


# =============================================================================
# Request Model
# =============================================================================
class RecommendationRequest(BaseModel):
    """A recommendation request as accepted by the coordinator.

    Field names accept both snake_case and the camelCase used on the wire.
    Unknown fields are kept.
    """

    model_config = ConfigDict(extra="allow")

    user_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("user_id", "userId"),
    )
    conversation_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("conversation_id", "conversationId"),
    )
    message: Optional[str] = Field(default=None, description="Free-text request")
    preferences: Optional[dict[str, Any]] = Field(default=None)
    ingredients: Optional[list[str]] = Field(default=None)
    recommendation_source: Optional[RecommendationSource] = Field(
        default=None,
        validation_alias=AliasChoices("recommendation_source", "recommendationSource"),
    )
    conversation_history: list[dict[str, Any]] = Field(
        default_factory=list,
        validation_alias=AliasChoices("conversation_history", "conversationHistory"),
    )


RequestLike = Union[RecommendationRequest, dict[str, Any]]


class SommelierCoordinator(CommunicatingAgent):
    """Sequences the stage agents for one recommendation request.

    Attributes:
        dead_letter_processor: Receives every tolerated stage failure.
        config: Full system configuration (coordinator, fallback and
            circuit breaker sections are used).
        history: Conversation turns per user. Requests without their own
            conversation_history read the user's stored turns, and every
            completed recommendation adds a user and an assistant turn.
    """

    def __init__(
        self,
        bus: EnhancedAgentCommunicationBus,
        dead_letter_processor: DeadLetterProcessor,
        config: Optional[SommelierConfig] = None,
        clock: Callable[[], float] = time.monotonic,
        history: Optional[ConversationHistoryStore] = None,
    ) -> None:
        self.dead_letter_processor = dead_letter_processor
        self.config = config or SommelierConfig()
        self.history = history or ConversationHistoryStore()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}
        super().__init__(
            AgentId.COORDINATOR.value,
            bus,
            name="SommelierCoordinator",
            capabilities=["orchestration", "recommendation-pipeline"],
        )

    def _register_handlers(self) -> HandlerTable:
        return {MessageType.ORCHESTRATE_RECOMMENDATION_REQUEST: self._handle_orchestration_request}

    # =========================================================================
    # Circuit Breakers
    # =========================================================================

    def get_circuit_breaker(self, agent_id: str) -> CircuitBreaker:
        """Return the breaker guarding calls to ``agent_id``, creating it on first use."""
        breaker = self._breakers.get(agent_id)
        if breaker is None:
            settings = self.config.circuit_breaker
            breaker = CircuitBreaker(
                failure_threshold=settings.failure_threshold,
                success_threshold=settings.success_threshold,
                timeout=settings.timeout_seconds,
                clock=self._clock,
                name=agent_id,
            )
            self._breakers[agent_id] = breaker
        return breaker

    def get_circuit_states(self) -> dict[str, str]:
        return {agent_id: breaker.state.value for agent_id, breaker in self._breakers.items()}

    # =========================================================================
    # Bus Entry Point
    # =========================================================================

    async def _handle_orchestration_request(self, message: AgentMessage) -> HandlerResult:
        try:
            result = await self.handle_request(message.payload or {})
        except Exception as exc:
            self._logger.error(
                "orchestration_failed",
                correlation_id=message.correlation_id,
                error=str(exc),
            )
            return Err(
                AgentError(
                    f"Orchestration failed: {exc}",
                    error_code=ErrorCode.ORCHESTRATION_FAILURE,
                    agent_id=self.agent_id,
                    correlation_id=message.correlation_id,
                    recoverable=False,
                    details={
                        "original_error": str(exc),
                        "original_code": getattr(exc, "error_code", None),
                    },
                )
            )

        return Ok(message.create_response(MessageType.FINAL_RECOMMENDATION, result, self.agent_id))

    # =========================================================================
    # Pipeline
    # =========================================================================

    async def handle_request(self, request: RequestLike) -> dict[str, Any]:
        """Run the recommendation pipeline for ``request``.

        Args:
            request: A RecommendationRequest or a dict in the same shape.

        Returns:
            The recommendation payload (with "explanation" when that stage
            succeeded), or the fallback payload {"recommendation": "..."}.

        Raises:
            RecommendationFailedError: The Recommendation stage failed.
        """
        original = request
        req = (
            request
            if isinstance(request, RecommendationRequest)
            else RecommendationRequest.model_validate(request)
        )
        correlation_id = self.generate_correlation_id()
        conversation_id = req.conversation_id or correlation_id
        log = self._logger.bind(
            correlation_id=correlation_id,
            conversation_id=conversation_id,
            user_id=req.user_id,
        )
        call = _StageCaller(self, correlation_id, conversation_id, req.user_id)

        log.info("recommendation_request_started")

        preferences: dict[str, Any] = dict(req.preferences or {})
        ingredients: list[str] = list(req.ingredients or [])

        # -----------------------------------------------------------------
        # 1. Request shape
        # -----------------------------------------------------------------
        if req.message:
            validation = await call(
                AgentId.INPUT_VALIDATION,
                MessageType.VALIDATE_INPUT,
                {"message": req.message, "user_id": req.user_id},
            )
            if not validation.success:
                await self._dead_letter(original, validation.error, Stage.INPUT_VALIDATION, correlation_id)
                return await self._fallback(validation.error, req, call, original)

            processed = (validation.data.payload or {}).get("processedInput") or {}
            preferences = {**(processed.get("preferences") or {}), **preferences}
            for ingredient in processed.get("ingredients") or []:
                if ingredient not in ingredients:
                    ingredients.append(ingredient)
        elif not preferences and not ingredients:
            error = AgentError(
                "Request carries no message, preferences or ingredients",
                error_code=ErrorCode.UNKNOWN_REQUEST_TYPE,
                agent_id=self.agent_id,
                correlation_id=correlation_id,
            )
            await self._dead_letter(original, error, Stage.REQUEST_TYPE, correlation_id)
            return await self._fallback(error, req, call, original)

        # -----------------------------------------------------------------
        # 2. Enrichment (failures tolerated)
        # -----------------------------------------------------------------
        stage_input = {
            "message": req.message,
            "preferences": preferences,
            "ingredients": ingredients,
        }

        value_analysis: Optional[str] = None
        value = await call(AgentId.VALUE_ANALYSIS, MessageType.ANALYZE_VALUE, stage_input)
        if value.success:
            value_analysis = (value.data.payload or {}).get("analysis")
        else:
            await self._dead_letter(original, value.error, Stage.VALUE_ANALYSIS, correlation_id)

        stored = await call(
            AgentId.USER_PREFERENCE,
            MessageType.GET_PREFERENCES,
            {"user_id": req.user_id, "preferences": preferences},
        )
        if stored.success:
            preferences = (stored.data.payload or {}).get("preferences") or preferences
        else:
            await self._dead_letter(original, stored.error, Stage.USER_PREFERENCE, correlation_id)

        mcp = await call(AgentId.MCP_ADAPTER, MessageType.MCP_TOOL_CALL, stage_input)
        if not mcp.success:
            await self._dead_letter(original, mcp.error, Stage.MCP_ADAPTER, correlation_id)

        # -----------------------------------------------------------------
        # 3. Recommendation (load-bearing)
        # -----------------------------------------------------------------
        source = req.recommendation_source or self.config.coordinator.recommendation_source
        target = (
            AgentId.LLM_RECOMMENDATION
            if source == RecommendationSource.LLM
            else AgentId.RECOMMENDATION
        )
        recommendation = await call(
            target,
            MessageType.GENERATE_RECOMMENDATIONS,
            {
                "message": req.message,
                "preferences": preferences,
                "ingredients": ingredients,
                "conversation_history": self._conversation_history(req),
                "user_id": req.user_id,
            },
            soft_errors=True,
        )
        if not recommendation.success:
            error = recommendation.error
            await self._dead_letter(original, error, Stage.RECOMMENDATION, correlation_id)
            log.error(
                "recommendation_stage_failed",
                agent=target.value,
                error_code=error.code,
                error=error.message,
            )
            raise RecommendationFailedError(
                f"Recommendation failed: {error.message}",
                agent_id=self.agent_id,
                correlation_id=correlation_id,
                details={"stage_error": error.to_dict()},
            ) from error

        result: dict[str, Any] = dict(recommendation.data.payload or {})
        if value_analysis:
            result["value_analysis"] = value_analysis

        # -----------------------------------------------------------------
        # 4. Explanation (failure tolerated)
        # -----------------------------------------------------------------
        explanation = await call(
            AgentId.EXPLANATION,
            MessageType.GENERATE_EXPLANATION,
            {
                "recommended_wines": result.get("recommended_wines") or [],
                "context": stage_input,
            },
        )
        if explanation.success:
            result["explanation"] = (explanation.data.payload or {}).get("explanation")
        else:
            await self._dead_letter(original, explanation.error, Stage.EXPLANATION, correlation_id)

        # -----------------------------------------------------------------
        # 5. History (fire and forget)
        # -----------------------------------------------------------------
        if req.user_id:
            self._record_turns(req, result)
            self.bus.publish_to_agent(
                AgentId.USER_PREFERENCE.value,
                create_agent_message(
                    type=MessageType.UPDATE_RECOMMENDATION_HISTORY,
                    payload={"user_id": req.user_id, "recommendation": result},
                    source_agent=self.agent_id,
                    conversation_id=conversation_id,
                    correlation_id=self.generate_correlation_id(),
                    target_agent=AgentId.USER_PREFERENCE.value,
                    user_id=req.user_id,
                ),
            )

        log.info(
            "recommendation_request_completed",
            source=result.get("source"),
            wine_count=len(result.get("recommended_wines") or []),
        )
        return result

    # =========================================================================
    # Conversation History
    # =========================================================================

    def _conversation_history(self, req: RecommendationRequest) -> list[dict[str, Any]]:
        if req.conversation_history or not req.user_id:
            return req.conversation_history[-HISTORY_TURNS:]
        return [
            turn.model_dump(include={"role", "content"})
            for turn in self.history.get_history(req.user_id, limit=HISTORY_TURNS)
        ]

    def _record_turns(self, req: RecommendationRequest, result: dict[str, Any]) -> None:
        if not req.message:
            return
        self.history.add_turn(req.user_id, "user", req.message)
        wines = ", ".join(
            str(wine.get("name")) for wine in result.get("recommended_wines") or [] if isinstance(wine, dict)
        )
        self.history.add_turn(req.user_id, "assistant", result.get("explanation") or wines or "No wines found")

    # =========================================================================
    # Fallback & Dead Letters
    # =========================================================================

    async def _fallback(
        self,
        error: AgentError,
        req: RecommendationRequest,
        call: _StageCaller,
        original: Any,
    ) -> dict[str, Any]:
        reply = await call(
            AgentId.FALLBACK,
            MessageType.FALLBACK_REQUEST,
            {
                "error": error.message,
                "preferences": {"wineType": "Unknown"},
                "message": req.message,
            },
        )
        if reply.success:
            self._logger.info("fallback_response_used", correlation_id=call.correlation_id)
            return dict(reply.data.payload or {})

        await self._dead_letter(original, reply.error, Stage.FALLBACK, call.correlation_id)
        self._logger.warning(
            "fallback_agent_unreachable",
            correlation_id=call.correlation_id,
            error=reply.error.message,
        )
        return {"recommendation": self.config.fallback.default_response}

    async def _dead_letter(
        self,
        message: Any,
        error: AgentError,
        stage: str,
        correlation_id: str,
    ) -> None:
        self._logger.warning(
            "stage_failed",
            stage=stage,
            correlation_id=correlation_id,
            error_code=error.code,
            error=error.message,
        )
        await self.dead_letter_processor.process(
            message,
            error,
            {"source": DEAD_LETTER_SOURCE, "stage": stage, "correlation_id": correlation_id},
        )


class _StageCaller:
    """Sends one stage request through the target agent's circuit breaker.

    Every failure (error reply, timeout, open circuit, and with
    ``soft_errors`` a reply payload carrying "error") counts against the
    breaker and comes back as ``Err``.
    """

    def __init__(
        self,
        coordinator: SommelierCoordinator,
        correlation_id: str,
        conversation_id: str,
        user_id: Optional[str],
    ) -> None:
        self.coordinator = coordinator
        self.correlation_id = correlation_id
        self.conversation_id = conversation_id
        self.user_id = user_id

    async def __call__(
        self,
        target: AgentId,
        message_type: MessageType,
        payload: Any,
        soft_errors: bool = False,
    ) -> HandlerResult:
        coordinator = self.coordinator
        target_id = target.value
        breaker = coordinator.get_circuit_breaker(target_id)

        async def attempt() -> HandlerResult:
            result = await coordinator.send_to_agent(
                target_id,
                message_type,
                payload,
                conversation_id=self.conversation_id,
                user_id=self.user_id,
                timeout=coordinator.config.coordinator.stage_timeout_seconds,
            )
            if not result.success:
                raise result.error
            reply = result.data
            if soft_errors and isinstance(reply.payload, dict) and reply.payload.get("error"):
                raise AgentError(
                    str(reply.payload["error"]),
                    error_code=ErrorCode.RECOMMENDATION_FAILED,
                    agent_id=target_id,
                    correlation_id=self.correlation_id,
                    details={"reply": reply.payload},
                )
            return result

        try:
            return await breaker.execute(attempt)
        except AgentError as exc:
            return Err(exc)
        except Exception as exc:
            return Err(
                AgentError(
                    str(exc),
                    error_code=getattr(exc, "error_code", ErrorCode.COMMUNICATION_ERROR),
                    agent_id=target_id,
                    correlation_id=self.correlation_id,
                    details={"error_type": type(exc).__name__},
                )
            )
